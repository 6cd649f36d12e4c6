"""Multi-account Google Tasks credential manager."""

__version__ = "0.1.0"
