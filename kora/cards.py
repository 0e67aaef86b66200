"""Card-related data structures and helpers for Kora."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Mapping, Optional


class Suit(Enum):
    SPADES = "spades"
    CLUBS = "clubs"
    HEARTS = "hearts"
    DIAMONDS = "diamonds"

    def __str__(self) -> str:
        return self.value


# Ranks 3 through 10, no face cards.
RANKS: tuple[int, ...] = tuple(range(3, 11))

SUIT_ORDER: list[Suit] = [Suit.SPADES, Suit.CLUBS, Suit.HEARTS, Suit.DIAMONDS]

SUIT_INDEX: dict[Suit, int] = {suit: index for index, suit in enumerate(SUIT_ORDER)}

SUIT_SYMBOLS: dict[Suit, str] = {
    Suit.SPADES: "♠",
    Suit.CLUBS: "♣",
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
}

SUIT_LETTERS: dict[str, Suit] = {
    "S": Suit.SPADES,
    "C": Suit.CLUBS,
    "H": Suit.HEARTS,
    "D": Suit.DIAMONDS,
}


@dataclass(frozen=True)
class Card:
    """Immutable representation of a playing card."""

    rank: int
    suit: Suit

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Rank must be between 3 and 10, got {self.rank!r}.")
        if not isinstance(self.suit, Suit):
            raise ValueError(f"Unknown suit: {self.suit!r}")

    def __str__(self) -> str:
        return f"{self.rank}{SUIT_SYMBOLS[self.suit]}"


def card_sort_key(card: Card) -> tuple[int, int]:
    """Order cards by rank first, then by suit, so the lowest card sorts first."""
    return card.rank, SUIT_INDEX[card.suit]


def lowest(cards: Iterable[Card]) -> Card:
    return min(cards, key=card_sort_key)


def cards_in_suit(cards: Iterable[Card], suit: Optional[Suit]) -> List[Card]:
    return [card for card in cards if card.suit is suit]


def serialize_card(card: Card) -> dict[str, object]:
    return {"rank": card.rank, "suit": card.suit.value}


def deserialize_card(payload: Mapping[str, object]) -> Card:
    try:
        rank = int(payload["rank"])  # type: ignore[arg-type]
        suit = Suit(str(payload["suit"]).lower())
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Malformed card payload: {dict(payload)!r}") from exc
    return Card(rank, suit)


def parse_card(code: str) -> Card:
    """Parse a short code such as ``"3S"`` or ``"10H"``."""
    text = code.strip().upper()
    if len(text) < 2 or text[-1] not in SUIT_LETTERS:
        raise ValueError(f"Malformed card code: {code!r}")
    try:
        rank = int(text[:-1])
    except ValueError as exc:
        raise ValueError(f"Malformed card code: {code!r}") from exc
    return Card(rank, SUIT_LETTERS[text[-1]])


def parse_cards(codes: str) -> List[Card]:
    return [parse_card(code) for code in codes.split()]


def card_label(card: Card) -> str:
    return f"{card.rank} of {card.suit.value.title()}"
