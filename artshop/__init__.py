"""REST backend for a single-artist online gallery shop."""

__version__ = "0.1.0"
