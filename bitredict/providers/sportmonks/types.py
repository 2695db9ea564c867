"""SportMonks v3 payload models.

Only the fields the adapter maps are declared; everything else in the
payload is ignored.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ScoreValue(_Model):
    goals: Optional[int] = None
    participant: Optional[str] = None


class Score(_Model):
    description: str
    score: ScoreValue = Field(default_factory=ScoreValue)
    participant_id: Optional[int] = None


class State(_Model):
    id: Optional[int] = None
    state: Optional[str] = None
    short_name: Optional[str] = None
    developer_name: Optional[str] = None

    @property
    def code(self) -> str:
        return (self.developer_name or self.state or self.short_name or "").upper()


class ParticipantMeta(_Model):
    location: Optional[str] = None


class Participant(_Model):
    id: int
    name: Optional[str] = None
    meta: ParticipantMeta = Field(default_factory=ParticipantMeta)


class Country(_Model):
    id: Optional[int] = None
    name: Optional[str] = None


class League(_Model):
    id: int
    name: Optional[str] = None
    country: Optional[Country] = None


class Odd(_Model):
    market_id: Optional[int] = None
    bookmaker_id: Optional[int] = None
    label: Optional[str] = None
    value: Optional[float] = None
    total: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _parse_value(cls, value):
        if value in (None, ""):
            return None
        return float(value)

    @field_validator("total", mode="before")
    @classmethod
    def _parse_total(cls, value):
        if value in (None, ""):
            return None
        return str(value)


class Fixture(_Model):
    id: int
    name: Optional[str] = None
    league_id: Optional[int] = None
    starting_at: Optional[str] = None
    starting_at_timestamp: Optional[int] = None
    length: Optional[int] = None
    state: Optional[State] = None
    scores: List[Score] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)
    league: Optional[League] = None
    odds: List[Odd] = Field(default_factory=list)

    @property
    def state_code(self) -> str:
        return self.state.code if self.state else ""

    @property
    def kickoff(self) -> Optional[datetime]:
        if self.starting_at_timestamp:
            return datetime.fromtimestamp(int(self.starting_at_timestamp), tz=timezone.utc)
        if self.starting_at:
            parsed = datetime.fromisoformat(self.starting_at.replace(" ", "T"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return None

    def participant_name(self, location: str) -> Optional[str]:
        for participant in self.participants:
            if participant.meta.location == location:
                return participant.name
        return None


__all__ = [
    "ScoreValue",
    "Score",
    "State",
    "Participant",
    "League",
    "Odd",
    "Fixture",
]
