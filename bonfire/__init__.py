"""Beach bonfire signup API."""

__version__ = "0.2.0"
