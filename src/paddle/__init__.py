"""paddle: webhook-driven deploy and notification daemon."""

__version__ = "0.3.0"
