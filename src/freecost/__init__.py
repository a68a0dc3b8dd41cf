"""Offline-first sync between a local kitchen-costing database and a remote store."""

__version__ = "0.1.0"
