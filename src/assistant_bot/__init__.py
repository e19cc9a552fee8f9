"""Slash-command Discord assistant bot."""

__version__ = "0.1.0"
