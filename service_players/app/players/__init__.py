"""
Player lookup layer: cache-aside orchestration and its data models.
"""

from .models import CachedRecord, PlayerError, PlayersResponse, RatingHistoryResponse
from .service import PlayerService

__all__ = [
    "CachedRecord",
    "PlayerError",
    "PlayersResponse",
    "PlayerService",
    "RatingHistoryResponse",
]
