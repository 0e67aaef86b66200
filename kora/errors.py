"""Exception taxonomy for the Kora match engine."""

from __future__ import annotations


class KoraError(RuntimeError):
    """Base class for every error raised by the engine."""


class InvalidSeedError(KoraError, ValueError):
    """Raised when a shuffle seed is absent or malformed."""


class UnknownPlayerError(KoraError):
    """Raised when a player id is not seated in the match."""


class MatchNotDealtError(KoraError):
    """Raised when a play is attempted before the hands are dealt."""


class MatchAlreadyDealtError(KoraError):
    """Raised when dealing a match that already has hands."""


class NotYourTurnError(KoraError):
    """Raised when a player acts while the opponent is to play."""


class IllegalMoveError(KoraError):
    """Raised when a card is not held or breaks the follow-suit rule."""


class StaleTurnError(KoraError):
    """Raised when the submitted turn token no longer matches the match."""

    def __init__(self, message: str, *, expected_turn: int, current_turn: int) -> None:
        super().__init__(message)
        self.expected_turn = expected_turn
        self.current_turn = current_turn


class MatchFinishedError(KoraError):
    """Raised when acting on a match that has already finished."""


class MatchNotFoundError(KoraError, LookupError):
    """Raised when the store holds no record for a match id."""


class ReplayDivergenceError(KoraError):
    """Raised when a stored play log cannot be replayed deterministically.

    This signals a storage integrity problem (missing or duplicated turns,
    cards that were never dealt) and is not recoverable by retrying.
    """


ERROR_CODES: dict[type[KoraError], str] = {
    InvalidSeedError: "invalid_seed",
    UnknownPlayerError: "unknown_player",
    MatchNotDealtError: "match_not_dealt",
    MatchAlreadyDealtError: "match_already_dealt",
    NotYourTurnError: "not_your_turn",
    IllegalMoveError: "illegal_move",
    StaleTurnError: "stale_turn",
    MatchFinishedError: "match_finished",
    MatchNotFoundError: "match_not_found",
    ReplayDivergenceError: "replay_divergence",
}


def error_code(exc: KoraError) -> str:
    for cls in type(exc).__mro__:
        if cls in ERROR_CODES:
            return ERROR_CODES[cls]  # type: ignore[index]
    return "kora_error"


def error_from_code(code: str, message: str, *, expected_turn: int = -1, current_turn: int = -1) -> KoraError:
    """Rebuild the exception a remote authority reported."""
    for cls, name in ERROR_CODES.items():
        if name == code:
            if cls is StaleTurnError:
                return StaleTurnError(message, expected_turn=expected_turn, current_turn=current_turn)
            return cls(message)
    return KoraError(message)
