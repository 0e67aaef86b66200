"""Authoritative match log and the optimistic client replica that follows it.

The server side (``MatchAuthority``) owns the ordered play log in a
``MatchStore`` and accepts a play only when the submitted turn token matches
the stored ``current_turn``. The client side (``MatchReplica``) keeps two
states: ``confirmed_state``, rebuilt only from the authoritative log, and
``predicted_state``, which is the confirmed state plus local plays that have
not been acknowledged yet.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from random import Random
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from bots.policy import choose_for_player, turn_rng

from .cards import Card
from .config import MatchRules
from .deck import Seed
from .errors import (
    IllegalMoveError,
    KoraError,
    MatchFinishedError,
    NotYourTurnError,
    ReplayDivergenceError,
    StaleTurnError,
)
from .events import EventBus, EventKind, MatchEvent
from .match import MatchEngine, PlayOutcome, new_match
from .scoring import settle
from .state import MatchState, MatchStatus, MoneyLike, Play, Player, TurnResult, VictoryType
from .store import MatchRecord, MatchStore
from .timer import TurnTimer

logger = logging.getLogger(__name__)

BotPolicy = Callable[[MatchState, Player, Random], Card]


def default_bot_policy(state: MatchState, player: Player, rng: Random) -> Card:
    assert player.difficulty is not None
    return choose_for_player(state, player.player_id, player.difficulty, rng)


@dataclass(frozen=True)
class SubmitResult:
    play: Play
    turn_result: Optional[TurnResult]
    state: MatchState
    duplicate: bool = False


@dataclass(frozen=True)
class SubmitReceipt:
    """What a client learns from a submission over the wire."""

    play: Play
    turn_result: Optional[TurnResult]
    current_turn: int
    duplicate: bool = False


@dataclass(frozen=True)
class MatchLog:
    match_id: str
    plays: Tuple[Play, ...]
    current_turn: int
    status: MatchStatus
    conceded_by: Optional[str] = None


# Server ---------------------------------------------------------------------


class MatchAuthority:
    """Server-side owner of match records and play logs."""

    def __init__(
        self,
        store: MatchStore,
        rules: Optional[MatchRules] = None,
        *,
        timer: Optional[TurnTimer] = None,
        events: Optional[EventBus] = None,
        bot_policy: Optional[BotPolicy] = default_bot_policy,
    ) -> None:
        self.store = store
        self.engine = MatchEngine(rules)
        self.rules = self.engine.rules
        self.timer = timer or TurnTimer(self.rules)
        self.events = events or EventBus()
        self.bot_policy = bot_policy

    # Creation and reads ------------------------------------------------------

    def create_match(
        self,
        players: Sequence[Player],
        bet_amount: MoneyLike,
        *,
        match_id: Optional[str] = None,
        seed: Optional[Seed] = None,
        deck: Optional[Sequence[Card]] = None,
        first_player_id: Optional[str] = None,
    ) -> MatchState:
        """Bind two players, deal, and persist the match."""
        match_id = match_id or uuid.uuid4().hex
        if seed is None and deck is None:
            seed = uuid.uuid4().hex
        waiting = new_match(match_id, players, bet_amount)
        dealt = self.engine.deal(waiting, seed, deck=deck, first_player_id=first_player_id)
        self.store.create_match(MatchRecord.from_state(dealt, deck=deck))
        self.events.emit(
            MatchEvent(EventKind.MATCH_DEALT, match_id, dealt.current_turn, {"first_player_id": dealt.first_player_id})
        )
        self.timer.start_turn(dealt)
        return self._drive_bots(dealt)

    def load(self, match_id: str) -> MatchState:
        return self._load(match_id)[1]

    def log(self, match_id: str, since_turn: int = 0) -> MatchLog:
        record = self.store.get_match(match_id)
        return MatchLog(
            match_id=match_id,
            plays=tuple(self.store.list_plays(match_id, since_turn)),
            current_turn=record.current_turn,
            status=record.status,
            conceded_by=record.conceded_by,
        )

    def dealt_state(self, record: MatchRecord) -> MatchState:
        waiting = new_match(record.match_id, record.players, record.bet_amount)
        return self.engine.deal(waiting, record.seed, deck=record.deck, first_player_id=record.first_player_id)

    # Commands ------------------------------------------------------------------

    def submit_play(self, match_id: str, expected_turn: int, card: Card, player_id: str) -> SubmitResult:
        """Accept ``card`` from ``player_id`` if ``expected_turn`` is still current.

        A resubmission of a play already stored at ``expected_turn`` returns
        the original result and appends nothing.
        """
        record, state = self._load(match_id)
        if expected_turn < state.current_turn:
            return self._resubmission(state, expected_turn, player_id, card)
        if state.is_finished:
            raise MatchFinishedError(f"Match {match_id} is finished.")
        if expected_turn != state.current_turn:
            raise StaleTurnError(
                f"Turn {expected_turn} is not current for match {match_id}.",
                expected_turn=expected_turn,
                current_turn=state.current_turn,
            )

        outcome = self.engine.play(state, player_id, card)
        if not self._append(record, outcome):
            # Lost the race; a retry of this very play may have won it.
            _, latest = self._load(match_id)
            if latest.is_finished and expected_turn >= latest.current_turn:
                raise MatchFinishedError(f"Match {match_id} is finished.")
            return self._resubmission(latest, expected_turn, player_id, card)

        after = self._after_play(outcome)
        return SubmitResult(play=outcome.play, turn_result=outcome.turn_result, state=after)

    def concede(self, match_id: str, player_id: str, *, expected_turn: Optional[int] = None) -> MatchState:
        record, state = self._load(match_id)
        if expected_turn is not None and expected_turn != state.current_turn:
            raise StaleTurnError(
                f"Turn {expected_turn} is not current for match {match_id}.",
                expected_turn=expected_turn,
                current_turn=state.current_turn,
            )
        finished = self.engine.concede(state, player_id)
        if not self.store.update_match(
            record.updated_from(finished), expected_turn=state.current_turn, expected_status=state.status
        ):
            latest = self.store.get_match(match_id)
            raise StaleTurnError(
                f"Match {match_id} changed while conceding.",
                expected_turn=state.current_turn,
                current_turn=latest.current_turn,
            )
        self.events.emit(MatchEvent(EventKind.MATCH_CONCEDED, match_id, finished.current_turn, {"player_id": player_id}))
        self._finish(finished)
        return finished

    def tick(self, match_id: str, now: Optional[float] = None) -> Optional[MatchState]:
        """Advance the turn timer; returns the new state if it acted."""
        state = self.load(match_id)
        action = self.timer.tick(state, now)
        if action is None:
            return None
        try:
            if action.is_forfeit:
                return self.concede(match_id, action.player_id, expected_turn=action.turn)
            assert action.card is not None
            return self.submit_play(match_id, action.turn, action.card, action.player_id).state
        except StaleTurnError:
            logger.info("Match %s turn %d was played before the timer fired", match_id, action.turn)
            return None

    # Internals -----------------------------------------------------------------

    def _load(self, match_id: str) -> Tuple[MatchRecord, MatchState]:
        record = self.store.get_match(match_id)
        plays = self.store.list_plays(match_id)
        state = self.engine.replay(self.dealt_state(record), plays, conceded_by=record.conceded_by)
        if state.current_turn != record.current_turn:
            raise ReplayDivergenceError(
                f"Match {match_id} record is at turn {record.current_turn} but its log replays to {state.current_turn}."
            )
        return record, state

    def _resubmission(self, state: MatchState, turn: int, player_id: str, card: Card) -> SubmitResult:
        existing = self.store.get_play(state.match_id, turn)
        candidate = Play(match_id=state.match_id, turn=turn, player_id=player_id, card=card)
        if existing is None or not existing.same_action(candidate):
            raise StaleTurnError(
                f"Turn {turn} of match {state.match_id} was already played differently.",
                expected_turn=turn,
                current_turn=state.current_turn,
            )
        logger.info("Duplicate submission for match %s turn %d ignored", state.match_id, turn)
        # The first call may have stopped right after its append; finish its follow-up work.
        self.timer.start_turn(state)
        state = self._drive_bots(state)
        return SubmitResult(play=existing, turn_result=state.result_for_turn(turn), state=state, duplicate=True)

    def _append(self, record: MatchRecord, outcome: PlayOutcome) -> bool:
        appended = self.store.append_play(outcome.play, record.updated_from(outcome.state), outcome.turn_result)
        if not appended:
            logger.info("Match %s turn %d lost a concurrent submission", outcome.play.match_id, outcome.play.turn)
        return appended

    def _announce(self, outcome: PlayOutcome) -> None:
        play = outcome.play
        self.events.emit(
            MatchEvent(
                EventKind.CARD_PLAYED,
                play.match_id,
                play.turn,
                {"player_id": play.player_id, "card": str(play.card)},
            )
        )
        result = outcome.turn_result
        if result is not None:
            self.events.emit(
                MatchEvent(
                    EventKind.TRICK_RESOLVED,
                    play.match_id,
                    play.turn,
                    {"winner_id": result.winner_id, "winning_card": str(result.winning_card)},
                )
            )

    def _after_play(self, outcome: PlayOutcome) -> MatchState:
        self._announce(outcome)
        state = outcome.state
        if state.is_finished:
            self._finish(state)
            return state
        self.timer.start_turn(state)
        return self._drive_bots(state)

    def _finish(self, state: MatchState) -> None:
        self.timer.cancel(state.match_id)
        if state.victory_type is not None and state.victory_type is not VictoryType.CONCESSION:
            self.events.emit(
                MatchEvent(
                    EventKind.KORA_ACHIEVED,
                    state.match_id,
                    state.current_turn,
                    {"victory_type": state.victory_type.value, "kora_multiplier": state.kora_multiplier},
                )
            )
        entries = settle(state, self.rules)
        if self.store.add_transactions(state.match_id, entries):
            logger.info("Match %s settled with %d ledger entries", state.match_id, len(entries))
        self.events.emit(MatchEvent(EventKind.MATCH_FINISHED, state.match_id, state.current_turn, state.summary()))

    def _drive_bots(self, state: MatchState) -> MatchState:
        if self.bot_policy is None:
            return state
        while state.is_active and state.current_player_id is not None:
            player = state.player(state.current_player_id)
            if not player.is_bot:
                break
            card = self.bot_policy(state, player, turn_rng(state))
            outcome = self.engine.play(state, player.player_id, card)
            record = self.store.get_match(state.match_id)
            if not self._append(record, outcome):
                state = self.load(state.match_id)
                continue
            self._announce(outcome)
            state = outcome.state
            if state.is_finished:
                self._finish(state)
            else:
                self.timer.start_turn(state)
        return state


# Client ---------------------------------------------------------------------


class PlayTransport(Protocol):
    """Network boundary between a replica and the authority."""

    async def submit_play(self, match_id: str, expected_turn: int, player_id: str, card: Card) -> SubmitReceipt:
        ...

    async def concede(self, match_id: str, player_id: str, expected_turn: int) -> None:
        ...

    async def fetch_log(self, match_id: str, since_turn: int = 0) -> MatchLog:
        ...


@dataclass
class PendingPlay:
    play: Play
    needs_sync: bool = True


class MatchReplica:
    """Client-side copy of one match.

    UI code reads ``predicted_state``. Local plays are applied to it at once
    and queued; ``flush`` sends them in order and folds the authoritative log
    back into ``confirmed_state``. Whenever the server disagrees, the queue is
    dropped and the prediction is rebuilt from the server's log.
    """

    def __init__(
        self,
        dealt: MatchState,
        player_id: str,
        transport: PlayTransport,
        *,
        engine: Optional[MatchEngine] = None,
        submit_timeout: float = 10.0,
        max_attempts: int = 3,
    ) -> None:
        dealt.seat_of(player_id)
        self.dealt = dealt
        self.player_id = player_id
        self.transport = transport
        self.engine = engine or MatchEngine()
        self.submit_timeout = submit_timeout
        self.max_attempts = max_attempts
        self.confirmed_state = dealt
        self.predicted_state = dealt
        self.pending: List[PendingPlay] = []

    @property
    def match_id(self) -> str:
        return self.dealt.match_id

    def needs_sync(self) -> List[Play]:
        return [pending.play for pending in self.pending if pending.needs_sync]

    def play(self, card: Card) -> MatchState:
        """Apply ``card`` optimistically; raises locally if it is not legal."""
        outcome = self.engine.play(self.predicted_state, self.player_id, card)
        self.pending.append(PendingPlay(outcome.play))
        self.predicted_state = outcome.state
        return self.predicted_state

    async def flush(self) -> MatchState:
        """Send queued plays in order, then fold in the authoritative log."""
        while self.pending:
            head = self.pending[0]
            if head.play.turn != self.confirmed_state.current_turn:
                await self.sync()
                continue
            try:
                await self._submit(head.play)
            except (StaleTurnError, IllegalMoveError, NotYourTurnError, MatchFinishedError) as exc:
                logger.info("Server rejected match %s turn %d (%s); reconciling", self.match_id, head.play.turn, exc)
                self.pending.clear()
                await self.sync()
                break
            head.needs_sync = False
            await self.sync()
        return self.predicted_state

    async def concede(self) -> MatchState:
        self.pending.clear()
        await self.transport.concede(self.match_id, self.player_id, self.confirmed_state.current_turn)
        return await self.sync()

    async def sync(self) -> MatchState:
        """Fold any new authoritative plays into the confirmed state."""
        log = await self.transport.fetch_log(self.match_id, since_turn=self.confirmed_state.current_turn)
        try:
            self.confirmed_state = self._fold(self.confirmed_state, log)
        except KoraError as exc:
            logger.warning("Incremental sync of match %s failed (%s); replaying full log", self.match_id, exc)
            return await self.reconcile()
        self._rebuild_prediction()
        return self.predicted_state

    async def reconcile(self) -> MatchState:
        """Discard local state and replay the complete authoritative log."""
        log = await self.transport.fetch_log(self.match_id)
        self.confirmed_state = self.engine.replay(self.dealt, log.plays, conceded_by=log.conceded_by)
        self._rebuild_prediction()
        return self.predicted_state

    async def reconnect(self) -> MatchState:
        """Compare turns with the server after a disconnect and converge."""
        log = await self.transport.fetch_log(self.match_id, since_turn=self.confirmed_state.current_turn)
        if log.current_turn == self.confirmed_state.current_turn and log.status is not MatchStatus.FINISHED:
            return await self.flush()
        logger.info(
            "Server is ahead for match %s (%d > %d); dropping %d speculative plays",
            self.match_id,
            log.current_turn,
            self.confirmed_state.current_turn,
            len(self.pending),
        )
        self.pending.clear()
        try:
            self.confirmed_state = self._fold(self.confirmed_state, log)
        except KoraError:
            return await self.reconcile()
        self._rebuild_prediction()
        return self.predicted_state

    async def _submit(self, play: Play) -> SubmitReceipt:
        # Timeouts are retried with the same turn token; the server treats the
        # repeat as a duplicate if the first attempt landed.
        attempt = 0
        while True:
            attempt += 1
            try:
                return await asyncio.wait_for(
                    self.transport.submit_play(self.match_id, play.turn, play.player_id, play.card),
                    timeout=self.submit_timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Submission for match %s turn %d timed out (attempt %d/%d)",
                    self.match_id,
                    play.turn,
                    attempt,
                    self.max_attempts,
                )
                if attempt >= self.max_attempts:
                    raise

    def _fold(self, state: MatchState, log: MatchLog) -> MatchState:
        for play in log.plays:
            if play.turn < state.current_turn:
                continue
            if play.turn != state.current_turn:
                raise ReplayDivergenceError(
                    f"Match {self.match_id} log skips from turn {state.current_turn} to {play.turn}."
                )
            state = self.engine.play(state, play.player_id, play.card, played_at=play.played_at).state
        if log.conceded_by is not None and not state.is_finished:
            state = self.engine.concede(state, log.conceded_by)
        return state

    def _rebuild_prediction(self) -> None:
        confirmed = self.confirmed_state
        speculative: List[PendingPlay] = []
        for pending in self.pending:
            turn = pending.play.turn
            if turn < len(confirmed.plays):
                if confirmed.plays[turn].same_action(pending.play):
                    continue
                logger.info("Match %s turn %d was decided differently by the server", self.match_id, turn)
                speculative = []
                break
            speculative.append(pending)

        predicted = confirmed
        kept: List[PendingPlay] = []
        for pending in speculative:
            if pending.play.turn != predicted.current_turn:
                break
            try:
                predicted = self.engine.play(
                    predicted, pending.play.player_id, pending.play.card, played_at=pending.play.played_at
                ).state
            except KoraError:
                break
            kept.append(pending)
        if len(kept) < len(speculative):
            logger.info("Dropped %d speculative plays for match %s", len(speculative) - len(kept), self.match_id)
        self.pending = kept
        self.predicted_state = predicted
