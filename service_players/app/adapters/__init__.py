"""
Adapters for systems outside the player cache.
"""

from .upstream_client import UpstreamClient

__all__ = ["UpstreamClient"]
