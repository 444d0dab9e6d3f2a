"""Sift: research context capture, shopping-site matching and product extraction."""

__version__ = "1.0.0"
