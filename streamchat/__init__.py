"""Streaming search/chat widget core."""

__version__ = "0.1.0"
