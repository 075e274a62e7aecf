"""LifeLog sync: offline-first entry logging synchronized with the LifeLog API."""

__version__ = "0.1.0"
