"""Validation schema for Kora match rules."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .deck import DECK_SIZE

# Per-turn countdown presets, in seconds.
TIMER_PRESETS: dict[str, int] = {
    "blitz": 30,
    "rapid": 60,
    "classic": 120,
    "extended": 300,
}

DEFAULT_TURN_TIMEOUT = TIMER_PRESETS["rapid"]


class MatchRules(BaseModel):
    hand_size: int = Field(5, ge=1, description="Cards dealt to each player.")
    kora_multipliers: dict[int, int] = Field(
        default_factory=lambda: {5: 4, 4: 3, 3: 2},
        description="Stake multiplier keyed by the number of tricks the winner took.",
    )
    concession_multiplier: int = Field(1, ge=1)
    turn_timeout_seconds: Optional[float] = Field(
        DEFAULT_TURN_TIMEOUT,
        gt=0,
        description="Per-turn countdown; None disables the timer.",
    )
    expiry_policy: Literal["auto_play", "forfeit"] = Field(
        "auto_play",
        description="What happens when a player's countdown runs out.",
    )
    house_fee_rate: Decimal = Field(Decimal("0"), ge=0, lt=1, description="Share of the winnings kept by the house.")

    model_config = {"frozen": True}

    @field_validator("hand_size")
    @classmethod
    def ensure_hand_fits(cls, value: int) -> int:
        if 2 * value > DECK_SIZE:
            raise ValueError(f"Two hands of {value} cards do not fit a {DECK_SIZE}-card deck.")
        if value % 2 == 0:
            raise ValueError("Hand size must be odd so a match cannot end level.")
        return value

    @field_validator("kora_multipliers")
    @classmethod
    def validate_multipliers(cls, value: dict[int, int]) -> dict[int, int]:
        for tricks, multiplier in value.items():
            if multiplier < 1:
                raise ValueError(f"Multiplier for {tricks} tricks must be at least 1.")
        return value

    @model_validator(mode="after")
    def ensure_every_majority_scored(self) -> "MatchRules":
        majority = self.hand_size // 2 + 1
        missing = [count for count in range(majority, self.hand_size + 1) if count not in self.kora_multipliers]
        if missing:
            raise ValueError(f"No multiplier configured for winning trick counts {missing}.")
        return self

    @property
    def timer_enabled(self) -> bool:
        return self.turn_timeout_seconds is not None

    def multiplier_for(self, tricks: int) -> int:
        return self.kora_multipliers[tricks]


def rules_with_timer(preset: Optional[str], **overrides: object) -> MatchRules:
    """Build rules using a named timer preset, or ``None`` to disable the timer."""
    if preset is None:
        return MatchRules(turn_timeout_seconds=None, **overrides)
    try:
        seconds = TIMER_PRESETS[preset]
    except KeyError as exc:
        raise ValueError(f"Unknown timer preset: {preset!r}") from exc
    return MatchRules(turn_timeout_seconds=seconds, **overrides)


DEFAULT_RULES = MatchRules()
