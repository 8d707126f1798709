"""aimon: live monitor for development processes and AI assistant conversations."""

__version__ = "0.1.0"
