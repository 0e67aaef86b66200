"""Match state machine for Kora.

``MatchEngine`` holds only the rules; every method takes a ``MatchState`` and
returns a fresh one, leaving the input untouched. Failed calls raise before
anything is built, so a rejected play never produces a half-updated state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from .cards import Card
from .config import DEFAULT_RULES, MatchRules
from .deck import Seed, deal
from .errors import (
    KoraError,
    MatchAlreadyDealtError,
    MatchFinishedError,
    MatchNotDealtError,
    ReplayDivergenceError,
)
from .rules import check_play, legal_cards
from .scoring import MatchScore, score_concession, score_tricks
from .state import MatchState, MatchStatus, MoneyLike, Play, Player, TurnResult
from .trick import Trick

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayOutcome:
    state: MatchState
    play: Play
    turn_result: Optional[TurnResult] = None

    @property
    def trick_completed(self) -> bool:
        return self.turn_result is not None

    @property
    def match_finished(self) -> bool:
        return self.state.is_finished


def new_match(match_id: str, players: Sequence[Player], bet_amount: MoneyLike) -> MatchState:
    """Create a match in the ``waiting`` state."""
    if not match_id:
        raise ValueError("Match id must not be empty.")
    return MatchState(match_id=match_id, players=(players[0], players[1]), bet_amount=bet_amount)


class MatchEngine:
    """Apply deals, plays and concessions to match states."""

    def __init__(self, rules: Optional[MatchRules] = None) -> None:
        self.rules = rules or DEFAULT_RULES

    # Lifecycle -------------------------------------------------------------

    def deal(
        self,
        state: MatchState,
        seed: Optional[Seed] = None,
        *,
        deck: Optional[Sequence[Card]] = None,
        first_player_id: Optional[str] = None,
    ) -> MatchState:
        if state.status is not MatchStatus.WAITING:
            raise MatchAlreadyDealtError(f"Match {state.match_id} has already been dealt.")
        first = first_player_id or state.player_ids[0]
        first_seat = state.seat_of(first)
        first_hand, second_hand, _ = deal(seed, deck=deck, hand_size=self.rules.hand_size)
        hands = [tuple(first_hand), tuple(second_hand)]
        if first_seat == 1:
            hands.reverse()
        logger.info("Dealt match %s, %s leads", state.match_id, first)
        return state.evolve(
            status=MatchStatus.DEALT,
            seed=seed,
            first_player_id=first,
            hands=(hands[0], hands[1]),
            current_turn=0,
            current_player_id=first,
            current_trick=Trick(leader=first),
        )

    def legal_moves(self, state: MatchState, player_id: str) -> List[Card]:
        """Return the cards ``player_id`` may play now; empty when it is not their turn."""
        if not state.is_active or state.current_player_id != player_id or state.current_trick is None:
            return []
        return legal_cards(state.hand_of(player_id), state.current_trick.demanded_suit())

    def play(
        self,
        state: MatchState,
        player_id: str,
        card: Card,
        *,
        played_at: Optional[float] = None,
    ) -> PlayOutcome:
        self._ensure_playable(state)
        seat = state.seat_of(player_id)
        assert state.current_trick is not None
        check_play(
            player_id=player_id,
            current_player_id=state.current_player_id,
            card=card,
            hand=state.hands[seat],
            trick=state.current_trick,
        )

        play = Play(
            match_id=state.match_id,
            turn=state.current_turn,
            player_id=player_id,
            card=card,
            played_at=time.time() if played_at is None else played_at,
        )
        hands = list(state.hands)
        hands[seat] = tuple(held for held in hands[seat] if held != card)
        trick = state.current_trick.with_play(player_id, card)

        updated = state.evolve(
            status=MatchStatus.PLAYING,
            hands=(hands[0], hands[1]),
            current_turn=state.current_turn + 1,
            current_player_id=state.opponent_of(player_id),
            current_trick=trick,
            plays=state.plays + (play,),
        )
        logger.debug("Match %s turn %d: %s played %s", state.match_id, play.turn, player_id, card)

        if not trick.is_full():
            return PlayOutcome(state=updated, play=play)

        result = self._resolve_trick(updated, trick, play.turn)
        tricks = list(updated.tricks_won)
        tricks[updated.seat_of(result.winner_id)] += 1
        updated = updated.evolve(
            current_player_id=result.winner_id,
            current_trick=Trick(leader=result.winner_id),
            turn_results=updated.turn_results + (result,),
            tricks_won=(tricks[0], tricks[1]),
        )
        logger.info(
            "Match %s trick %d won by %s with %s",
            state.match_id,
            len(updated.turn_results),
            result.winner_id,
            result.winning_card,
        )
        if updated.hands_empty():
            updated = self._finish(updated, score_tricks(updated.tricks_won, self.rules))
        return PlayOutcome(state=updated, play=play, turn_result=result)

    def concede(self, state: MatchState, player_id: str) -> MatchState:
        """End the match at once in favour of ``player_id``'s opponent."""
        self._ensure_playable(state)
        seat = state.seat_of(player_id)
        logger.info("Match %s conceded by %s at turn %d", state.match_id, player_id, state.current_turn)
        conceded = state.evolve(conceded_by=player_id)
        return self._finish(conceded, score_concession(seat, self.rules))

    # Replay ----------------------------------------------------------------

    def replay(
        self,
        dealt: MatchState,
        plays: Iterable[Play],
        *,
        conceded_by: Optional[str] = None,
    ) -> MatchState:
        """Re-derive a match by folding the ordered play log over its dealt state.

        Raises ``ReplayDivergenceError`` when the log cannot have been produced
        by this engine from that deal.
        """
        if dealt.status is not MatchStatus.DEALT or dealt.plays:
            raise ReplayDivergenceError(f"Match {dealt.match_id} replay must start from a fresh deal.")
        if set(dealt.hands[0]) & set(dealt.hands[1]):
            raise ReplayDivergenceError(f"Match {dealt.match_id} deals the same card to both hands.")

        state = dealt
        for play in plays:
            if play.match_id != dealt.match_id:
                raise ReplayDivergenceError(
                    f"Play for match {play.match_id} found in the log of {dealt.match_id}."
                )
            if play.turn != state.current_turn:
                problem = "duplicate" if play.turn < state.current_turn else "missing"
                raise ReplayDivergenceError(
                    f"Match {dealt.match_id} log has a {problem} turn: expected {state.current_turn}, got {play.turn}."
                )
            try:
                state = self.play(state, play.player_id, play.card, played_at=play.played_at).state
            except KoraError as exc:
                raise ReplayDivergenceError(
                    f"Match {dealt.match_id} turn {play.turn} does not replay: {exc}"
                ) from exc

        if conceded_by is not None:
            try:
                state = self.concede(state, conceded_by)
            except KoraError as exc:
                raise ReplayDivergenceError(f"Match {dealt.match_id} concession does not replay: {exc}") from exc
        return state

    # Helpers ---------------------------------------------------------------

    def _ensure_playable(self, state: MatchState) -> None:
        if state.status is MatchStatus.FINISHED:
            raise MatchFinishedError(f"Match {state.match_id} is finished.")
        if state.status is MatchStatus.WAITING:
            raise MatchNotDealtError(f"Match {state.match_id} has not been dealt yet.")

    def _resolve_trick(self, state: MatchState, trick: Trick, turn: int) -> TurnResult:
        winner_id, winning_card = trick.winning_play()
        loser_id, losing_card = trick.losing_play()
        return TurnResult(
            match_id=state.match_id,
            turn=turn,
            winner_id=winner_id,
            winning_card=winning_card,
            loser_id=loser_id,
            losing_card=losing_card,
        )

    def _finish(self, state: MatchState, score: MatchScore) -> MatchState:
        winner_id = state.player_ids[score.winner_seat]
        logger.info(
            "Match %s finished: %s wins by %s (x%d)",
            state.match_id,
            winner_id,
            score.victory_type.value,
            score.kora_multiplier,
        )
        return state.evolve(
            status=MatchStatus.FINISHED,
            current_player_id=None,
            current_trick=None,
            winner_id=winner_id,
            victory_type=score.victory_type,
            kora_multiplier=score.kora_multiplier,
        )
