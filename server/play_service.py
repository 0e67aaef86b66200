"""REST service exposing the authoritative Kora match log."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from bots.policy import bot_player
from kora.cards import serialize_card
from kora.codec import play_to_dict, player_to_dict, turn_result_to_dict
from kora.config import MatchRules, rules_with_timer
from kora.errors import (
    IllegalMoveError,
    InvalidSeedError,
    KoraError,
    MatchAlreadyDealtError,
    MatchFinishedError,
    MatchNotDealtError,
    MatchNotFoundError,
    NotYourTurnError,
    ReplayDivergenceError,
    StaleTurnError,
    UnknownPlayerError,
    error_code,
)
from kora.service import MatchService
from kora.state import Difficulty, Player, PlayerKind
from kora.store import InMemoryMatchStore, MatchStore, SqliteMatchStore
from kora.sync import MatchAuthority

logger = logging.getLogger(__name__)

STATUS_CODES: Dict[type, int] = {
    InvalidSeedError: 400,
    IllegalMoveError: 400,
    UnknownPlayerError: 400,
    NotYourTurnError: 403,
    MatchNotFoundError: 404,
    StaleTurnError: 409,
    MatchFinishedError: 409,
    MatchAlreadyDealtError: 409,
    MatchNotDealtError: 409,
    ReplayDivergenceError: 500,
}


class PlayerRequest(BaseModel):
    player_id: str
    kind: PlayerKind = PlayerKind.HUMAN
    difficulty: Optional[Difficulty] = None
    display_name: Optional[str] = None


class CreateMatchRequest(BaseModel):
    players: List[PlayerRequest] = Field(..., min_length=1, max_length=2)
    bet_amount: Decimal = Field(..., ge=0)
    opponent_difficulty: Optional[Difficulty] = Field(
        None, description="Seat the house bot of this tier when only one player is given."
    )
    seed: Optional[str] = None
    first_player_id: Optional[str] = None


class CardPayload(BaseModel):
    rank: int
    suit: str


class PlayRequest(BaseModel):
    player_id: str
    expected_turn: int = Field(..., ge=0)
    card: CardPayload


class ConcedeRequest(BaseModel):
    player_id: str
    expected_turn: Optional[int] = None


def to_http_error(exc: KoraError) -> HTTPException:
    status = next((code for cls, code in STATUS_CODES.items() if isinstance(exc, cls)), 400)
    detail: Dict[str, object] = {"error": error_code(exc), "message": str(exc)}
    if isinstance(exc, StaleTurnError):
        detail["expected_turn"] = exc.expected_turn
        detail["current_turn"] = exc.current_turn
    if status >= 500:
        logger.error("Match log integrity failure: %s", exc)
    return HTTPException(status_code=status, detail=detail)


def default_store() -> MatchStore:
    db_path = os.environ.get("KORA_DB_PATH")
    if db_path:
        return SqliteMatchStore(db_path)
    return InMemoryMatchStore()


def default_rules() -> MatchRules:
    preset = os.environ.get("KORA_TIMER", "rapid")
    return rules_with_timer(None if preset == "off" else preset)


def create_app(authority: Optional[MatchAuthority] = None) -> FastAPI:
    authority = authority or MatchAuthority(default_store(), default_rules())
    service = MatchService(authority)

    app = FastAPI(title="Kora Match Service")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.authority = authority

    @app.post("/matches")
    def create_match(request: CreateMatchRequest) -> Dict[str, object]:
        try:
            players = [
                Player(
                    player_id=item.player_id,
                    kind=item.kind,
                    difficulty=item.difficulty,
                    display_name=item.display_name,
                )
                for item in request.players
            ]
        except ValueError as exc:
            raise HTTPException(status_code=400, detail={"error": "invalid_player", "message": str(exc)}) from exc
        if len(players) == 1:
            if request.opponent_difficulty is None:
                raise HTTPException(
                    status_code=400,
                    detail={"error": "invalid_player", "message": "Two players or an opponent difficulty are required."},
                )
            players.append(bot_player(request.opponent_difficulty))
        try:
            state = service.start_match(
                players,
                request.bet_amount,
                seed=request.seed,
                first_player_id=request.first_player_id,
            )
        except KoraError as exc:
            raise to_http_error(exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail={"error": "invalid_match", "message": str(exc)}) from exc
        return {"match_id": state.match_id, "match": state.summary()}

    @app.get("/matches/{match_id}")
    def get_match(match_id: str, perspective: str) -> Dict[str, object]:
        try:
            return asdict(service.get_match_view(match_id, perspective))
        except KoraError as exc:
            raise to_http_error(exc) from exc

    @app.get("/matches/{match_id}/setup")
    def get_setup(match_id: str) -> Dict[str, object]:
        try:
            record = authority.store.get_match(match_id)
        except KoraError as exc:
            raise to_http_error(exc) from exc
        return {
            "match_id": record.match_id,
            "players": [player_to_dict(player) for player in record.players],
            "bet_amount": str(record.bet_amount),
            "seed": record.seed,
            "deck": [serialize_card(card) for card in record.deck] if record.deck is not None else None,
            "first_player_id": record.first_player_id,
        }

    @app.get("/matches/{match_id}/log")
    def get_log(match_id: str, since_turn: int = 0) -> Dict[str, object]:
        try:
            log = authority.log(match_id, since_turn)
        except KoraError as exc:
            raise to_http_error(exc) from exc
        return {
            "match_id": log.match_id,
            "plays": [play_to_dict(play) for play in log.plays],
            "current_turn": log.current_turn,
            "status": log.status.value,
            "conceded_by": log.conceded_by,
        }

    @app.post("/matches/{match_id}/plays")
    def submit_play(match_id: str, request: PlayRequest) -> Dict[str, object]:
        try:
            result = service.play_card(match_id, request.player_id, request.expected_turn, request.card.model_dump())
        except KoraError as exc:
            raise to_http_error(exc) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail={"error": "illegal_move", "message": str(exc)}) from exc
        return {
            "play": play_to_dict(result.play),
            "turn_result": turn_result_to_dict(result.turn_result),
            "current_turn": result.state.current_turn,
            "duplicate": result.duplicate,
            "match": result.state.summary(),
        }

    @app.post("/matches/{match_id}/concede")
    def concede(match_id: str, request: ConcedeRequest) -> Dict[str, object]:
        try:
            state = service.concede(match_id, request.player_id, request.expected_turn)
        except KoraError as exc:
            raise to_http_error(exc) from exc
        return {"match": state.summary()}

    @app.post("/matches/{match_id}/tick")
    def tick(match_id: str) -> Dict[str, object]:
        try:
            state = authority.tick(match_id)
        except KoraError as exc:
            raise to_http_error(exc) from exc
        return {"acted": state is not None, "match": state.summary() if state else None}

    @app.get("/matches/{match_id}/transactions")
    def get_transactions(match_id: str) -> Dict[str, object]:
        try:
            return {"transactions": service.transactions(match_id)}
        except KoraError as exc:
            raise to_http_error(exc) from exc

    return app


app = create_app()
