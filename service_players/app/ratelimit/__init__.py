"""
Rate limiting package for the player cache.

Holds the token-bucket limiter that throttles every call made to the
upstream federation API, with burst tolerance up to the configured rate.
"""

from .token_bucket import TokenBucketRateLimiter

__all__ = ["TokenBucketRateLimiter"]
