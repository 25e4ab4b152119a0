"""
Persistence layer for the player cache.
"""

from .postgres import PlayerCacheStore

__all__ = ["PlayerCacheStore"]
