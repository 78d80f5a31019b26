"""Sliding-window rate limiting reverse proxy."""

__version__ = "0.1.0"
