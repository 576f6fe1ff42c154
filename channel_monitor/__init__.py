"""Channel Monitor - track new uploads on YouTube channels."""

__version__ = "0.1.0"
