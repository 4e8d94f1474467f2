"""Offline-first conversation sync backend."""

__version__ = "0.1.0"
