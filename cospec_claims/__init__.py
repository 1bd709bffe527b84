"""Cospec claims backend: claim lifecycle, live claim lists and notifications."""

__version__ = "0.1.0"
