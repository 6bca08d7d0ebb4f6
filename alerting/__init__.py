"""Alert and incident management core."""

__version__ = "0.1.0"
