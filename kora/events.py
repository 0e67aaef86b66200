"""State-change events handed to the real-time transport."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    MATCH_DEALT = "match_dealt"
    CARD_PLAYED = "card_played"
    TRICK_RESOLVED = "trick_resolved"
    KORA_ACHIEVED = "kora_achieved"
    MATCH_CONCEDED = "match_conceded"
    MATCH_FINISHED = "match_finished"


@dataclass(frozen=True)
class MatchEvent:
    kind: EventKind
    match_id: str
    turn: int
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[MatchEvent], None]


class EventBus:
    """Fan events out to listeners; one failing listener does not stop the others."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def add_listener(self, callback: Listener) -> None:
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def emit(self, event: MatchEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s for match %s", listener, event.kind.value, event.match_id)
