"""Embedded metadata codec for AI-generated images and character cards."""

__version__ = "0.1.0"
