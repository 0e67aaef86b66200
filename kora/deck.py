"""Deck creation and seeded dealing for Kora."""

from __future__ import annotations

from random import Random
from typing import List, Optional, Sequence, Tuple, Union

from .cards import RANKS, SUIT_ORDER, Card
from .errors import InvalidSeedError

Seed = Union[int, str]

DECK_SIZE = len(RANKS) * len(SUIT_ORDER)
HAND_SIZE = 5


def build_deck() -> List[Card]:
    """Return the ordered 32-card deck."""
    return [Card(rank, suit) for suit in SUIT_ORDER for rank in RANKS]


def validate_seed(seed: object) -> Seed:
    """Return the seed unchanged, or raise ``InvalidSeedError`` if it is malformed."""
    if seed is None:
        raise InvalidSeedError("A shuffle seed is required.")
    # bool is an int subclass; True/False are never intended as seeds.
    if isinstance(seed, bool):
        raise InvalidSeedError("Boolean values are not valid seeds.")
    if isinstance(seed, int):
        if seed < 0:
            raise InvalidSeedError("Integer seeds must be non-negative.")
        return seed
    if isinstance(seed, str):
        if not seed.strip():
            raise InvalidSeedError("String seeds must not be blank.")
        return seed
    raise InvalidSeedError(f"Unsupported seed type: {type(seed).__name__}")


def shuffled_deck(seed: object) -> List[Card]:
    """Return the deck permuted deterministically from ``seed``."""
    cards = build_deck()
    Random(validate_seed(seed)).shuffle(cards)
    return cards


def deal(
    seed: object = None,
    *,
    deck: Optional[Sequence[Card]] = None,
    hand_size: int = HAND_SIZE,
) -> Tuple[List[Card], List[Card], List[Card]]:
    """Deal two hands, alternating draws, starting with the first player.

    Either ``seed`` or a pre-ordered ``deck`` must be supplied. Returns
    ``(first_hand, second_hand, remaining_deck)``.
    """
    if deck is not None:
        cards = list(deck)
        if len(cards) != DECK_SIZE or set(cards) != set(build_deck()):
            raise ValueError("Deck must be a permutation of the 32-card deck.")
    else:
        cards = shuffled_deck(seed)

    if hand_size < 1 or 2 * hand_size > len(cards):
        raise ValueError(f"Cannot deal two hands of {hand_size} cards.")

    drawn = cards[: 2 * hand_size]
    first_hand = drawn[0::2]
    second_hand = drawn[1::2]
    remaining = cards[2 * hand_size :]
    return first_hand, second_hand, remaining


def stack_deck(first_hand: Sequence[Card], second_hand: Sequence[Card]) -> List[Card]:
    """Build a full deck that deals exactly the two given hands.

    Cards are interleaved in draw order and the rest of the deck follows in
    its natural order.
    """
    if len(first_hand) != len(second_hand):
        raise ValueError("Both hands must have the same size.")
    chosen = list(first_hand) + list(second_hand)
    if len(set(chosen)) != len(chosen):
        raise ValueError("A card cannot be dealt twice.")
    ordered: List[Card] = []
    for first, second in zip(first_hand, second_hand):
        ordered.extend((first, second))
    ordered.extend(card for card in build_deck() if card not in chosen)
    return ordered
