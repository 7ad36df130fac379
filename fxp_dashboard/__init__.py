"""Real-time job and notification synchronization core for the FXP pattern dashboard."""

__version__ = "1.0.0"
