"""JSON-friendly encoding of engine records, shared by the store and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .cards import deserialize_card, serialize_card
from .state import Difficulty, Play, Player, PlayerKind, Transaction, TurnResult


def player_to_dict(player: Player) -> Dict[str, Any]:
    return {
        "player_id": player.player_id,
        "kind": player.kind.value,
        "difficulty": player.difficulty.value if player.difficulty else None,
        "display_name": player.display_name,
    }


def player_from_dict(payload: Mapping[str, Any]) -> Player:
    difficulty = payload.get("difficulty")
    return Player(
        player_id=str(payload["player_id"]),
        kind=PlayerKind(payload.get("kind", PlayerKind.HUMAN.value)),
        difficulty=Difficulty(difficulty) if difficulty else None,
        display_name=payload.get("display_name"),
    )


def play_to_dict(play: Play) -> Dict[str, Any]:
    return {
        "match_id": play.match_id,
        "turn": play.turn,
        "player_id": play.player_id,
        "card": serialize_card(play.card),
        "played_at": play.played_at,
    }


def play_from_dict(payload: Mapping[str, Any]) -> Play:
    return Play(
        match_id=str(payload["match_id"]),
        turn=int(payload["turn"]),
        player_id=str(payload["player_id"]),
        card=deserialize_card(payload["card"]),
        played_at=float(payload.get("played_at", 0.0)),
    )


def turn_result_to_dict(result: Optional[TurnResult]) -> Optional[Dict[str, Any]]:
    if result is None:
        return None
    return {
        "match_id": result.match_id,
        "turn": result.turn,
        "winner_id": result.winner_id,
        "winning_card": serialize_card(result.winning_card),
        "loser_id": result.loser_id,
        "losing_card": serialize_card(result.losing_card),
    }


def turn_result_from_dict(payload: Optional[Mapping[str, Any]]) -> Optional[TurnResult]:
    if payload is None:
        return None
    return TurnResult(
        match_id=str(payload["match_id"]),
        turn=int(payload["turn"]),
        winner_id=str(payload["winner_id"]),
        winning_card=deserialize_card(payload["winning_card"]),
        loser_id=str(payload["loser_id"]),
        losing_card=deserialize_card(payload["losing_card"]),
    )


def transaction_to_dict(entry: Transaction) -> Dict[str, Any]:
    return {
        "match_id": entry.match_id,
        "account_id": entry.account_id,
        "amount": str(entry.amount),
        "kind": entry.kind,
        "description": entry.description,
    }
