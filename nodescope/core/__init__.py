"""Domain models and pure algorithms (no I/O)."""
