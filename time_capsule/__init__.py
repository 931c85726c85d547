"""Time capsule API: one message, locked until its unlock date."""

__version__ = "1.0.0"
