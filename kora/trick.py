"""Trick representation and resolution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .cards import Card, Suit


class TrickError(RuntimeError):
    """Raised when trick play breaks ordering constraints."""


def beats(candidate: Card, current: Card, demanded: Suit) -> bool:
    """Return True if ``candidate`` takes the trick from ``current``.

    Only a higher card of the demanded suit wins; an off-suit card never
    beats the demanded suit, whatever its rank.
    """
    if candidate.suit is not demanded:
        return False
    if current.suit is not demanded:
        return True
    return candidate.rank > current.rank


@dataclass(frozen=True)
class Trick:
    leader: str
    plays: Tuple[Tuple[str, Card], ...] = ()

    def is_empty(self) -> bool:
        return not self.plays

    def is_full(self) -> bool:
        return len(self.plays) == 2

    def demanded_suit(self) -> Optional[Suit]:
        return self.plays[0][1].suit if self.plays else None

    def lead_card(self) -> Optional[Card]:
        return self.plays[0][1] if self.plays else None

    def with_play(self, player: str, card: Card) -> "Trick":
        if self.is_full():
            raise TrickError("Trick already complete.")
        if not self.plays and player != self.leader:
            raise TrickError("Only the leader can start the trick.")
        if self.plays and player == self.plays[0][0]:
            raise TrickError("Leader cannot play twice in the same trick.")
        return Trick(leader=self.leader, plays=self.plays + ((player, card),))

    def winning_play(self) -> Tuple[str, Card]:
        if not self.plays:
            raise TrickError("Cannot determine winner on empty trick.")
        demanded = self.demanded_suit()
        assert demanded is not None
        winning_player, winning_card = self.plays[0]
        for player, card in self.plays[1:]:
            if beats(card, winning_card, demanded):
                winning_player, winning_card = player, card
        return winning_player, winning_card

    def losing_play(self) -> Tuple[str, Card]:
        if not self.is_full():
            raise TrickError("Trick is not complete.")
        winner, _ = self.winning_play()
        return next((player, card) for player, card in self.plays if player != winner)
