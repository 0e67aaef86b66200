"""Common bot strategy interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from random import Random
from typing import Optional, Sequence, Tuple

from kora.cards import Card, Suit
from kora.state import MatchState, Play


@dataclass(frozen=True)
class PublicState:
    """What a seated player can see of a match besides their own hand."""

    player_id: str
    opponent_id: str
    lead_card: Optional[Card] = None
    completed_tricks: Tuple[Tuple[Play, Play], ...] = ()
    opponent_cards_left: int = 0

    @property
    def is_leading(self) -> bool:
        return self.lead_card is None

    def seen_cards(self) -> Tuple[Card, ...]:
        cards = [play.card for pair in self.completed_tricks for play in pair]
        if self.lead_card is not None:
            cards.append(self.lead_card)
        return tuple(cards)

    def opponent_voids(self) -> frozenset[Suit]:
        """Suits the opponent failed to follow; a hand never regains cards, so they stay void."""
        voids = set()
        for lead, follow in self.completed_tricks:
            if lead.player_id == self.player_id and follow.card.suit is not lead.card.suit:
                voids.add(lead.card.suit)
        return frozenset(voids)


def public_state_for(state: MatchState, player_id: str) -> PublicState:
    opponent = state.opponent_of(player_id)
    lead = state.current_trick.lead_card() if state.current_trick is not None else None
    return PublicState(
        player_id=player_id,
        opponent_id=opponent,
        lead_card=lead,
        completed_tricks=state.completed_tricks(),
        opponent_cards_left=len(state.hand_of(opponent)),
    )


class BotStrategy:
    """Base class for bot policies.

    Strategies only ever see the legal cards, so whatever they return is a
    move the rule engine accepts.
    """

    name: str = "BaseBot"

    def choose(self, legal: Sequence[Card], view: PublicState, rng: Random) -> Card:
        """Return one of ``legal``."""
        return legal[0]
