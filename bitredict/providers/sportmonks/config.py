from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class SportMonksConfig(BaseModel):
    base_url: str = "https://api.sportmonks.com/v3/football"
    result_includes: List[str] = Field(default_factory=lambda: ["scores", "participants", "state"])
    fixture_includes: List[str] = Field(
        default_factory=lambda: ["participants", "league.country", "state", "odds"]
    )
    terminal_states: List[str] = Field(default_factory=lambda: ["FT", "AET", "PEN", "FT_PEN"])
    # states whose CURRENT score includes extra time
    extra_time_states: List[str] = Field(default_factory=lambda: ["AET", "PEN", "FT_PEN"])
    penalty_states: List[str] = Field(default_factory=lambda: ["PEN", "FT_PEN"])
    batch_size: int = Field(default=25, ge=1, le=50)
    per_page: int = Field(default=50, ge=1, le=50)
    max_pages: int = Field(default=40, ge=1)
    terminal_guard_minutes: int = Field(
        default=15,
        ge=0,
        description="Minimum minutes between the terminal event and marking a fixture finished.",
    )
    regulation_minutes: int = Field(default=90, ge=1)
    half_time_break_minutes: int = Field(default=15, ge=0)
    penalty_shootout_minutes: int = Field(default=15, ge=0)
    fulltime_result_market_id: int = 1
    goals_over_under_market_id: int = 80
    bookmaker_id: Optional[int] = None

    @model_validator(mode="after")
    def _validate_states(self) -> "SportMonksConfig":
        terminal = set(self.terminal_states)
        for name in ("extra_time_states", "penalty_states"):
            extra = set(getattr(self, name)) - terminal
            if extra:
                raise ValueError(f"{name} must be a subset of terminal_states: {sorted(extra)}")
        return self


__all__ = ["SportMonksConfig"]
