"""Quire: real-time direct messaging with presence, push and an HTTP fallback."""

__version__ = "0.1.0"
