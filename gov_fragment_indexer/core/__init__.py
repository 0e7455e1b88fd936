"""Core settings, store wiring and key helpers."""
