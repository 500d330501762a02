"""Ambient Trigger - plays a random sound from a group now and then, with rising odds."""

__version__ = "1.0.0"
