"""Per-turn countdown that plays or forfeits on behalf of an idle player."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set, Tuple

from bots.policy import choose_for_player, turn_rng

from .cards import Card
from .config import DEFAULT_RULES, MatchRules
from .state import Difficulty, MatchState

logger = logging.getLogger(__name__)

TurnKey = Tuple[str, int]


@dataclass(frozen=True)
class TimerAction:
    """What the state machine should do for a player whose time ran out."""

    match_id: str
    turn: int
    player_id: str
    policy: str
    card: Optional[Card] = None

    @property
    def is_forfeit(self) -> bool:
        return self.policy == "forfeit"


class TurnTimer:
    """Cooperative countdown keyed by ``(match_id, current_turn)``.

    The countdown starts the first time a turn is seen (or explicitly via
    ``start_turn``) and fires at most once per turn token. A new turn gets a
    fresh countdown, so repeated timeouts never compound. With the timer
    disabled in the rules every method is inert. One timer serves every match
    of an authority, so its bookkeeping is guarded by a lock.
    """

    def __init__(
        self,
        rules: Optional[MatchRules] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rules = rules or DEFAULT_RULES
        self._clock = clock
        self._lock = threading.Lock()
        self._deadlines: Dict[TurnKey, float] = {}
        self._fired: Set[TurnKey] = set()

    @property
    def enabled(self) -> bool:
        return self.rules.timer_enabled

    def start_turn(self, state: MatchState, now: Optional[float] = None) -> Optional[float]:
        """Begin the countdown for the state's current turn; returns the deadline."""
        if not self.enabled or not state.is_active:
            return None
        with self._lock:
            return self._deadline(state, now)

    def remaining(self, state: MatchState, now: Optional[float] = None) -> Optional[float]:
        deadline = self.start_turn(state, now)
        if deadline is None:
            return None
        current = self._clock() if now is None else now
        return max(0.0, deadline - current)

    def tick(self, state: MatchState, now: Optional[float] = None) -> Optional[TimerAction]:
        """Return the action to take if the current turn has just expired."""
        if not self.enabled or not state.is_active:
            return None
        key = (state.match_id, state.current_turn)
        with self._lock:
            deadline = self._deadline(state, now)
            current = self._clock() if now is None else now
            if current < deadline or key in self._fired:
                return None
            self._fired.add(key)

        player_id = state.current_player_id
        assert player_id is not None
        logger.warning("Match %s turn %d expired for %s", state.match_id, state.current_turn, player_id)
        if self.rules.expiry_policy == "forfeit":
            return TimerAction(state.match_id, state.current_turn, player_id, "forfeit")

        card = choose_for_player(state, player_id, Difficulty.EASY, turn_rng(state))
        return TimerAction(state.match_id, state.current_turn, player_id, "auto_play", card)

    def cancel(self, match_id: str) -> None:
        """Drop every countdown held for ``match_id``."""
        with self._lock:
            for key in [key for key in self._deadlines if key[0] == match_id]:
                del self._deadlines[key]
            self._fired.difference_update([key for key in self._fired if key[0] == match_id])

    def _deadline(self, state: MatchState, now: Optional[float]) -> float:
        # Caller holds the lock.
        key = (state.match_id, state.current_turn)
        if key not in self._deadlines:
            stale = [old for old in self._deadlines if old[0] == state.match_id and old[1] < state.current_turn]
            for old in stale:
                del self._deadlines[old]
                self._fired.discard(old)
            assert self.rules.turn_timeout_seconds is not None
            start = self._clock() if now is None else now
            self._deadlines[key] = start + self.rules.turn_timeout_seconds
        return self._deadlines[key]
