"""Transports connecting a ``MatchReplica`` to a ``MatchAuthority``."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from .cards import Card, deserialize_card, serialize_card
from .codec import play_from_dict, player_from_dict, turn_result_from_dict
from .errors import error_from_code
from .match import MatchEngine, new_match
from .state import MatchState, MatchStatus
from .sync import MatchAuthority, MatchLog, SubmitReceipt


class LocalTransport:
    """In-process transport; each call yields once to mimic a network hop."""

    def __init__(self, authority: MatchAuthority) -> None:
        self.authority = authority

    async def submit_play(self, match_id: str, expected_turn: int, player_id: str, card: Card) -> SubmitReceipt:
        await asyncio.sleep(0)
        result = self.authority.submit_play(match_id, expected_turn, card, player_id)
        return SubmitReceipt(
            play=result.play,
            turn_result=result.turn_result,
            current_turn=result.state.current_turn,
            duplicate=result.duplicate,
        )

    async def concede(self, match_id: str, player_id: str, expected_turn: int) -> None:
        await asyncio.sleep(0)
        self.authority.concede(match_id, player_id, expected_turn=expected_turn)

    async def fetch_log(self, match_id: str, since_turn: int = 0) -> MatchLog:
        await asyncio.sleep(0)
        return self.authority.log(match_id, since_turn)

    async def fetch_dealt(self, match_id: str, engine: Optional[MatchEngine] = None) -> MatchState:
        await asyncio.sleep(0)
        return self.authority.dealt_state(self.authority.store.get_match(match_id))


class HttpTransport:
    """Talks to the FastAPI play service."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def submit_play(self, match_id: str, expected_turn: int, player_id: str, card: Card) -> SubmitReceipt:
        data = await self._request(
            "POST",
            f"/matches/{match_id}/plays",
            json={"player_id": player_id, "expected_turn": expected_turn, "card": serialize_card(card)},
        )
        return SubmitReceipt(
            play=play_from_dict(data["play"]),
            turn_result=turn_result_from_dict(data.get("turn_result")),
            current_turn=data["current_turn"],
            duplicate=data.get("duplicate", False),
        )

    async def concede(self, match_id: str, player_id: str, expected_turn: int) -> None:
        await self._request(
            "POST",
            f"/matches/{match_id}/concede",
            json={"player_id": player_id, "expected_turn": expected_turn},
        )

    async def fetch_log(self, match_id: str, since_turn: int = 0) -> MatchLog:
        data = await self._request("GET", f"/matches/{match_id}/log", params={"since_turn": since_turn})
        return MatchLog(
            match_id=data["match_id"],
            plays=tuple(play_from_dict(item) for item in data["plays"]),
            current_turn=data["current_turn"],
            status=MatchStatus(data["status"]),
            conceded_by=data.get("conceded_by"),
        )

    async def fetch_dealt(self, match_id: str, engine: MatchEngine) -> MatchState:
        """Rebuild the dealt state locally from the match setup."""
        data = await self._request("GET", f"/matches/{match_id}/setup")
        players = [player_from_dict(item) for item in data["players"]]
        deck = data.get("deck")
        waiting = new_match(data["match_id"], players, data["bet_amount"])
        return engine.deal(
            waiting,
            data.get("seed"),
            deck=[deserialize_card(card) for card in deck] if deck is not None else None,
            first_player_id=data.get("first_player_id"),
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        response = await self.client.request(method, url, **kwargs)
        if response.is_success:
            return response.json()
        detail: Optional[Dict[str, Any]] = None
        try:
            body = response.json()
            detail = body.get("detail") if isinstance(body, dict) else None
        except ValueError:
            detail = None
        if not isinstance(detail, dict) or "error" not in detail:
            response.raise_for_status()
        assert detail is not None
        raise error_from_code(
            detail["error"],
            detail.get("message", ""),
            expected_turn=detail.get("expected_turn", -1),
            current_turn=detail.get("current_turn", -1),
        )
