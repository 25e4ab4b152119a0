"""
Player cache data models.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class CachedRecord:
    """Snapshot of one player for one rating period, as persisted."""

    member_id: int
    period: date
    payload: Dict[str, Any]
    fetched_at: datetime
    expires_at: Optional[datetime] = None

    def is_live(self, now: datetime) -> bool:
        """Historical rows (no expiry) are always live."""
        return self.expires_at is None or self.expires_at > now

    @property
    def fide_id(self) -> Optional[int]:
        return _positive_int(self.payload.get("fideid"))

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        period: date,
        *,
        fetched_at: datetime,
        expires_at: Optional[datetime],
    ) -> "CachedRecord":
        """Build a record keyed by the member id found in ``payload``.

        Raises ``ValueError`` when the payload carries no usable member id.
        """
        member_id = _positive_int(payload.get("id"))
        if member_id is None:
            raise ValueError(f"player payload has no member id: {payload.get('id')!r}")
        return cls(
            member_id=member_id,
            period=period,
            payload=payload,
            fetched_at=fetched_at,
            expires_at=expires_at,
        )

    def denormalized(self) -> Dict[str, Any]:
        """Scalar columns kept beside the JSON payload for auxiliary lookups."""
        elo = _mapping(self.payload.get("elo"))
        lask = _mapping(self.payload.get("lask"))
        return {
            "first_name": self.payload.get("firstName"),
            "last_name": self.payload.get("lastName"),
            "club": self.payload.get("club"),
            "club_id": _positive_int(self.payload.get("clubId")),
            "fide_id": self.fide_id,
            "elo_standard": _optional_int(elo.get("rating")),
            "elo_rapid": _optional_int(elo.get("rapidRating")),
            "elo_blitz": _optional_int(elo.get("blitzRating")),
            "lask_rating": _optional_int(lask.get("rating")),
        }


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _positive_int(value: Any) -> Optional[int]:
    number = _optional_int(value)
    if number is None or number <= 0:
        return None
    return number


class PlayerError(BaseModel):
    """Error for a single member id inside a batch response."""

    id: int = Field(..., description="Member id that failed", examples=[99999])
    error: str = Field(..., description="Failure reason", examples=["Upstream error: status=404"])


class PlayersResponse(BaseModel):
    """Batch lookup result: players in request order plus per-id errors."""

    players: List[Dict[str, Any]] = Field(default_factory=list)
    errors: List[PlayerError] = Field(default_factory=list)


class RatingHistoryResponse(BaseModel):
    """Rating history for one player, newest period first."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: int = Field(..., alias="playerId")
    ratings: List[Dict[str, Any]] = Field(default_factory=list)
