"""Rule synchronisation engine for VDK rule templates."""

__version__ = "1.2.0"
