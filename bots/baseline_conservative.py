"""Baseline bot that saves high cards and wins tricks as cheaply as it can."""

from __future__ import annotations

from random import Random
from typing import Sequence

from kora.cards import Card, lowest
from kora.trick import beats

from .base import BotStrategy, PublicState


class ConservativeBot(BotStrategy):
    name = "Conservative"

    def choose(self, legal: Sequence[Card], view: PublicState, rng: Random) -> Card:
        lead = view.lead_card
        if lead is None:
            return self.lead(legal, view)
        winners = [card for card in legal if beats(card, lead, lead.suit)]
        if winners:
            return lowest(winners)
        return lowest(legal)

    def lead(self, legal: Sequence[Card], view: PublicState) -> Card:
        return lowest(legal)
