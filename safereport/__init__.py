"""SafeReport: campus incident reporting with real-time case chat."""

__version__ = "0.3.0"
