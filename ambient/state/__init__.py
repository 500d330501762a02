"""
State persistence for the ambient trigger.

Provides persistent storage for the sound library document.
"""

from .config_store import ConfigStore

__all__ = ["ConfigStore"]
