"""Baseline bot that leads into suits the opponent has shown to be void in."""

from __future__ import annotations

from typing import Sequence

from kora.cards import Card, lowest

from .base import PublicState
from .baseline_conservative import ConservativeBot


class VoidTrackerBot(ConservativeBot):
    name = "VoidTracker"

    def lead(self, legal: Sequence[Card], view: PublicState) -> Card:
        # An opponent void in the led suit must discard and cannot take the trick.
        voids = view.opponent_voids()
        forcing = [card for card in legal if card.suit in voids]
        if forcing:
            return lowest(forcing)
        return super().lead(legal, view)
