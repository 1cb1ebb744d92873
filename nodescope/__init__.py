"""Node-resident diagnostic agent: run triggering, unit scheduling, incident coalescing, export."""

__version__ = "0.1.0"
