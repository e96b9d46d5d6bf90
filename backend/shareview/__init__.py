"""ShareView: secure link sharing viewer backend."""

__version__ = "0.1.0"
