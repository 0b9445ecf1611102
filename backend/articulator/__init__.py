"""Articulator - speech coaching backend and recording client."""

__version__ = "1.0.0"
