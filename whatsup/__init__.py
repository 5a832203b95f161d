"""Presence-aware team status bot."""

__version__ = "0.1.0"
