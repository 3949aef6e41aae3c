"""SACCO expense approval and budget enforcement workflow."""

__version__ = "0.1.0"
