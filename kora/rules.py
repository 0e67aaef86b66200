"""Legal move generation and play validation for Kora.

Everything here is pure: the same functions run on the client replica and on
the server authority, so both sides always agree on what is legal.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .cards import Card, Suit, card_sort_key, cards_in_suit
from .errors import IllegalMoveError, NotYourTurnError
from .trick import Trick


def legal_cards(hand: Iterable[Card], demanded_suit: Optional[Suit]) -> List[Card]:
    """Return the cards that may be played, lowest first.

    A player holding the demanded suit must follow it; anyone else may play
    any card.
    """
    cards = list(hand)
    if demanded_suit is not None:
        following = cards_in_suit(cards, demanded_suit)
        if following:
            return sorted(following, key=card_sort_key)
    return sorted(cards, key=card_sort_key)


def is_legal(card: Card, hand: Iterable[Card], demanded_suit: Optional[Suit]) -> bool:
    return card in legal_cards(hand, demanded_suit)


def check_play(
    *,
    player_id: str,
    current_player_id: Optional[str],
    card: Card,
    hand: Iterable[Card],
    trick: Trick,
) -> None:
    """Raise if ``player_id`` may not play ``card`` right now."""
    if player_id != current_player_id:
        raise NotYourTurnError(f"It is not {player_id}'s turn.")
    cards = list(hand)
    if card not in cards:
        raise IllegalMoveError(f"{card} is not in {player_id}'s hand.")
    demanded = trick.demanded_suit()
    if not is_legal(card, cards, demanded):
        raise IllegalMoveError(f"{card} does not follow the demanded suit {demanded}.")
