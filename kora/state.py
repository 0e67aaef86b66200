"""Match state values for Kora.

Every record here is immutable. Engine calls take a ``MatchState`` and return
a new one, so several matches (an active one and a spectated one, say) can be
held side by side without interfering.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .cards import Card, Suit
from .deck import Seed
from .errors import UnknownPlayerError
from .trick import Trick

CENT = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike) -> Decimal:
    """Return ``value`` as a Decimal rounded to cents.

    Floats go through their shortest repr, so ``0.1`` becomes ``0.10``.
    """
    if isinstance(value, bool):
        raise ValueError("Amounts must be numbers.")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class MatchStatus(str, Enum):
    WAITING = "waiting"
    DEALT = "dealt"
    PLAYING = "playing"
    FINISHED = "finished"


class VictoryType(str, Enum):
    KORA_SIMPLE = "kora-simple"
    KORA_DOUBLE = "kora-double"
    KORA_TRIPLE = "kora-triple"
    CONCESSION = "concession"


class PlayerKind(str, Enum):
    HUMAN = "human"
    AI = "ai"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass(frozen=True)
class Player:
    player_id: str
    kind: PlayerKind = PlayerKind.HUMAN
    difficulty: Optional[Difficulty] = None
    display_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.player_id:
            raise ValueError("Player id must not be empty.")
        if self.kind is PlayerKind.AI and self.difficulty is None:
            raise ValueError("AI players need a difficulty.")

    @property
    def is_bot(self) -> bool:
        return self.kind is PlayerKind.AI


@dataclass(frozen=True)
class Play:
    match_id: str
    turn: int
    player_id: str
    card: Card
    played_at: float = 0.0

    def same_action(self, other: "Play") -> bool:
        """Return True when ``other`` is a resubmission of this play."""
        return (
            self.match_id == other.match_id
            and self.turn == other.turn
            and self.player_id == other.player_id
            and self.card == other.card
        )


@dataclass(frozen=True)
class TurnResult:
    match_id: str
    turn: int
    winner_id: str
    winning_card: Card
    loser_id: str
    losing_card: Card


@dataclass(frozen=True)
class Transaction:
    match_id: str
    account_id: str
    amount: Decimal
    kind: str
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_money(self.amount))


@dataclass(frozen=True)
class MatchState:
    match_id: str
    players: Tuple[Player, Player]
    bet_amount: Decimal
    status: MatchStatus = MatchStatus.WAITING
    seed: Optional[Seed] = None
    first_player_id: Optional[str] = None
    hands: Tuple[Tuple[Card, ...], Tuple[Card, ...]] = ((), ())
    current_turn: int = 0
    current_player_id: Optional[str] = None
    current_trick: Optional[Trick] = None
    plays: Tuple[Play, ...] = ()
    turn_results: Tuple[TurnResult, ...] = ()
    tricks_won: Tuple[int, int] = (0, 0)
    winner_id: Optional[str] = None
    victory_type: Optional[VictoryType] = None
    kora_multiplier: int = 1
    conceded_by: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.players) != 2:
            raise ValueError("A match needs exactly two players.")
        if self.players[0].player_id == self.players[1].player_id:
            raise ValueError("Both seats cannot hold the same player.")
        object.__setattr__(self, "bet_amount", to_money(self.bet_amount))
        if self.bet_amount < 0:
            raise ValueError("Bet amount cannot be negative.")

    # Seats -----------------------------------------------------------------

    @property
    def player_ids(self) -> Tuple[str, str]:
        return self.players[0].player_id, self.players[1].player_id

    def seat_of(self, player_id: str) -> int:
        try:
            return self.player_ids.index(player_id)
        except ValueError:
            raise UnknownPlayerError(f"{player_id!r} is not seated in match {self.match_id}.") from None

    def player(self, player_id: str) -> Player:
        return self.players[self.seat_of(player_id)]

    def opponent_of(self, player_id: str) -> str:
        return self.player_ids[1 - self.seat_of(player_id)]

    def hand_of(self, player_id: str) -> Tuple[Card, ...]:
        return self.hands[self.seat_of(player_id)]

    def tricks_of(self, player_id: str) -> int:
        return self.tricks_won[self.seat_of(player_id)]

    # Progress --------------------------------------------------------------

    @property
    def demanded_suit(self) -> Optional[Suit]:
        if self.current_trick is None:
            return None
        return self.current_trick.demanded_suit()

    @property
    def is_finished(self) -> bool:
        return self.status is MatchStatus.FINISHED

    @property
    def is_active(self) -> bool:
        return self.status in (MatchStatus.DEALT, MatchStatus.PLAYING)

    def hands_empty(self) -> bool:
        return all(len(hand) == 0 for hand in self.hands)

    def completed_tricks(self) -> Tuple[Tuple[Play, Play], ...]:
        """Return the (lead, follow) plays of every resolved trick."""
        resolved = len(self.turn_results) * 2
        pairs = []
        for index in range(0, resolved, 2):
            pairs.append((self.plays[index], self.plays[index + 1]))
        return tuple(pairs)

    def result_for_turn(self, turn: int) -> Optional[TurnResult]:
        for result in self.turn_results:
            if result.turn == turn:
                return result
        return None

    def evolve(self, **changes: object) -> "MatchState":
        return replace(self, **changes)  # type: ignore[arg-type]

    def summary(self) -> Dict[str, Union[str, int, float, None]]:
        return {
            "match_id": self.match_id,
            "status": self.status.value,
            "current_turn": self.current_turn,
            "current_player_id": self.current_player_id,
            "winner_id": self.winner_id,
            "victory_type": self.victory_type.value if self.victory_type else None,
            "kora_multiplier": self.kora_multiplier,
        }
