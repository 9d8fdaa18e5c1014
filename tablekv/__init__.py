"""tablekv - schema-less key-value tables over HTTP."""

__version__ = "0.1.0"
