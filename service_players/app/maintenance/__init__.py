"""
Maintenance jobs that run beside the request path.
"""

from .sweeper import ExpiredRecordSweeper

__all__ = ["ExpiredRecordSweeper"]
