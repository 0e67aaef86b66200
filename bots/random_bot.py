"""Random baseline bot, used for the easy tier and for expired turns."""

from __future__ import annotations

from random import Random
from typing import Sequence

from kora.cards import Card

from .base import BotStrategy, PublicState


class RandomBot(BotStrategy):
    name = "Random"

    def choose(self, legal: Sequence[Card], view: PublicState, rng: Random) -> Card:
        return rng.choice(list(legal))
