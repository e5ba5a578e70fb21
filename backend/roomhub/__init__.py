"""Roomhub: a single-room real-time chat hub."""

__version__ = "0.1.0"
