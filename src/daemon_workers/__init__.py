"""Worker-pool job dispatch with timeout supervision and retry coordination."""

__version__ = "0.1.0"
