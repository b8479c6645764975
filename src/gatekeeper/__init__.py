"""Gatekeeper: request-time security gate for ASGI applications."""

__version__ = "0.1.0"
