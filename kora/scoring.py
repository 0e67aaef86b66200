"""Match scoring and settlement for Kora."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence, Tuple

from .config import MatchRules
from .state import CENT, MatchState, Transaction, VictoryType


class ScoringError(ValueError):
    """Base class for scoring issues."""


@dataclass(frozen=True)
class MatchScore:
    winner_seat: int
    victory_type: VictoryType
    kora_multiplier: int


def classify_victory(tricks: int, hand_size: int) -> VictoryType:
    """Return the kora tier earned by a winner holding ``tricks`` tricks."""
    if tricks == hand_size:
        return VictoryType.KORA_TRIPLE
    if tricks == hand_size - 1:
        return VictoryType.KORA_DOUBLE
    return VictoryType.KORA_SIMPLE


def score_tricks(tricks_won: Sequence[int], rules: MatchRules) -> MatchScore:
    if len(tricks_won) != 2:
        raise ScoringError("Exactly two players are supported.")
    if sum(tricks_won) != rules.hand_size:
        raise ScoringError(f"Tricks {list(tricks_won)} do not add up to {rules.hand_size}.")
    winner_seat = 0 if tricks_won[0] > tricks_won[1] else 1
    tricks = tricks_won[winner_seat]
    return MatchScore(
        winner_seat=winner_seat,
        victory_type=classify_victory(tricks, rules.hand_size),
        kora_multiplier=rules.multiplier_for(tricks),
    )


def score_concession(conceding_seat: int, rules: MatchRules) -> MatchScore:
    return MatchScore(
        winner_seat=1 - conceding_seat,
        victory_type=VictoryType.CONCESSION,
        kora_multiplier=rules.concession_multiplier,
    )


def stake_at_risk(state: MatchState) -> Decimal:
    return state.bet_amount * state.kora_multiplier


def house_fee(stake: Decimal, rules: MatchRules) -> Decimal:
    return (stake * rules.house_fee_rate).quantize(CENT, rounding=ROUND_HALF_UP)


def settle(state: MatchState, rules: MatchRules, *, house_account: str = "house") -> Tuple[Transaction, ...]:
    """Return the ledger entries for a finished match.

    The loser is debited the multiplied stake and the winner credited the
    same amount less the house fee. A non-zero fee is booked to
    ``house_account`` so the full set of entries always sums to zero.
    """
    if not state.is_finished or state.winner_id is None or state.victory_type is None:
        raise ScoringError("Only finished matches can be settled.")

    loser_id = state.opponent_of(state.winner_id)
    stake = stake_at_risk(state)
    fee = house_fee(stake, rules)
    label = state.victory_type.value

    entries = [
        Transaction(
            match_id=state.match_id,
            account_id=state.winner_id,
            amount=stake - fee,
            kind="win",
            description=f"Won {stake - fee} ({label}, x{state.kora_multiplier})",
        ),
        Transaction(
            match_id=state.match_id,
            account_id=loser_id,
            amount=-stake,
            kind="loss",
            description=f"Lost {stake} ({label}, x{state.kora_multiplier})",
        ),
    ]
    if fee:
        entries.append(
            Transaction(
                match_id=state.match_id,
                account_id=house_account,
                amount=fee,
                kind="fee",
                description=f"House fee on match {state.match_id}",
            )
        )
    return tuple(entries)
