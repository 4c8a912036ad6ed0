"""Department database routing and authentication for academic administration."""

__version__ = "1.0.0"
