"""SendVision: realtime dashboard core for classified message records."""

__version__ = "0.1.0"
