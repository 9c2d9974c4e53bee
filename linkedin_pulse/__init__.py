"""LinkedIn credential lifecycle and engagement analytics sync service."""

__version__ = "0.1.0"
