"""Synchronization engine: discovery, resolution, reconciliation, mutation."""
