"""Bridger - expose a private HTTP server through an outbound tunnel."""

__version__ = "0.1.0"
