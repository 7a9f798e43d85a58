"""Daily notes service: note storage, sessions, and JSON backup/restore."""
__version__ = "1.0.0"
