"""Persistent storage for match records and their append-only play logs."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, Union

from .cards import Card, deserialize_card, serialize_card
from .codec import player_from_dict, player_to_dict, play_from_dict, play_to_dict
from .deck import Seed
from .errors import MatchNotFoundError
from .state import MatchState, MatchStatus, Play, Player, Transaction, TurnResult, VictoryType, to_money


@dataclass(frozen=True)
class MatchRecord:
    """Header row for a match: everything needed to rebuild its dealt state."""

    match_id: str
    players: Tuple[Player, Player]
    bet_amount: Decimal
    seed: Optional[Seed]
    first_player_id: Optional[str]
    deck: Optional[Tuple[Card, ...]] = None
    status: MatchStatus = MatchStatus.WAITING
    current_turn: int = 0
    current_player_id: Optional[str] = None
    conceded_by: Optional[str] = None
    winner_id: Optional[str] = None
    victory_type: Optional[VictoryType] = None
    kora_multiplier: int = 1
    tricks_won: Tuple[int, int] = (0, 0)

    @classmethod
    def from_state(cls, state: MatchState, *, deck: Optional[Sequence[Card]] = None) -> "MatchRecord":
        return cls(
            match_id=state.match_id,
            players=state.players,
            bet_amount=state.bet_amount,
            seed=state.seed,
            first_player_id=state.first_player_id,
            deck=tuple(deck) if deck is not None else None,
        ).updated_from(state)

    def updated_from(self, state: MatchState) -> "MatchRecord":
        return replace(
            self,
            status=state.status,
            current_turn=state.current_turn,
            current_player_id=state.current_player_id,
            conceded_by=state.conceded_by,
            winner_id=state.winner_id,
            victory_type=state.victory_type,
            kora_multiplier=state.kora_multiplier,
            tricks_won=state.tricks_won,
        )


class MatchStore(Protocol):
    """Storage the synchronization layer relies on.

    ``append_play`` and ``update_match`` are conditional on the stored
    ``current_turn``; that check is the only serialization between concurrent
    submissions for the same match.
    """

    def create_match(self, record: MatchRecord) -> None:
        ...

    def get_match(self, match_id: str) -> MatchRecord:
        """Return the record or raise ``MatchNotFoundError``."""
        ...

    def append_play(self, play: Play, record: MatchRecord, result: Optional[TurnResult] = None) -> bool:
        """Insert ``play`` and replace the record if the stored turn is still ``play.turn``.

        Never appends to a finished match.
        """
        ...

    def update_match(self, record: MatchRecord, *, expected_turn: int, expected_status: MatchStatus) -> bool:
        """Replace the record if the stored turn and status are still the expected ones."""
        ...

    def get_play(self, match_id: str, turn: int) -> Optional[Play]:
        ...

    def list_plays(self, match_id: str, since_turn: int = 0) -> List[Play]:
        """Return plays with ``turn >= since_turn`` ordered by turn."""
        ...

    def list_turn_results(self, match_id: str) -> List[TurnResult]:
        ...

    def add_transactions(self, match_id: str, entries: Sequence[Transaction]) -> bool:
        """Record settlement once; returns False if the match was already settled."""
        ...

    def list_transactions(self, match_id: str) -> List[Transaction]:
        ...


class InMemoryMatchStore:
    """Dictionary-backed store guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._matches: Dict[str, MatchRecord] = {}
        self._plays: Dict[str, Dict[int, Play]] = {}
        self._results: Dict[str, List[TurnResult]] = {}
        self._transactions: Dict[str, List[Transaction]] = {}

    def create_match(self, record: MatchRecord) -> None:
        with self._lock:
            if record.match_id in self._matches:
                raise ValueError(f"Match {record.match_id} already exists.")
            self._matches[record.match_id] = record
            self._plays[record.match_id] = {}
            self._results[record.match_id] = []

    def get_match(self, match_id: str) -> MatchRecord:
        with self._lock:
            return self._require(match_id)

    def append_play(self, play: Play, record: MatchRecord, result: Optional[TurnResult] = None) -> bool:
        with self._lock:
            stored = self._require(play.match_id)
            plays = self._plays[play.match_id]
            if stored.status is MatchStatus.FINISHED or stored.current_turn != play.turn or play.turn in plays:
                return False
            plays[play.turn] = play
            self._matches[play.match_id] = record
            if result is not None:
                self._results[play.match_id].append(result)
            return True

    def update_match(self, record: MatchRecord, *, expected_turn: int, expected_status: MatchStatus) -> bool:
        with self._lock:
            stored = self._require(record.match_id)
            if stored.current_turn != expected_turn or stored.status is not expected_status:
                return False
            self._matches[record.match_id] = record
            return True

    def get_play(self, match_id: str, turn: int) -> Optional[Play]:
        with self._lock:
            self._require(match_id)
            return self._plays[match_id].get(turn)

    def list_plays(self, match_id: str, since_turn: int = 0) -> List[Play]:
        with self._lock:
            self._require(match_id)
            plays = self._plays[match_id]
            return [plays[turn] for turn in sorted(plays) if turn >= since_turn]

    def list_turn_results(self, match_id: str) -> List[TurnResult]:
        with self._lock:
            self._require(match_id)
            return list(self._results[match_id])

    def add_transactions(self, match_id: str, entries: Sequence[Transaction]) -> bool:
        with self._lock:
            self._require(match_id)
            if match_id in self._transactions:
                return False
            self._transactions[match_id] = list(entries)
            return True

    def list_transactions(self, match_id: str) -> List[Transaction]:
        with self._lock:
            return list(self._transactions.get(match_id, []))

    def _require(self, match_id: str) -> MatchRecord:
        try:
            return self._matches[match_id]
        except KeyError:
            raise MatchNotFoundError(f"Match {match_id} not found.") from None


SCHEMA = """
CREATE TABLE IF NOT EXISTS matches (
    match_id TEXT PRIMARY KEY,
    current_turn INTEGER NOT NULL,
    status TEXT NOT NULL,
    payload TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS plays (
    match_id TEXT NOT NULL REFERENCES matches(match_id),
    turn INTEGER NOT NULL,
    player_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    PRIMARY KEY (match_id, turn)
);
CREATE TABLE IF NOT EXISTS turn_results (
    match_id TEXT NOT NULL REFERENCES matches(match_id),
    turn INTEGER NOT NULL,
    winner_id TEXT NOT NULL,
    winning_card TEXT NOT NULL,
    loser_id TEXT NOT NULL,
    losing_card TEXT NOT NULL,
    PRIMARY KEY (match_id, turn)
);
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    match_id TEXT NOT NULL REFERENCES matches(match_id),
    account_id TEXT NOT NULL,
    amount TEXT NOT NULL,
    kind TEXT NOT NULL,
    description TEXT NOT NULL,
    UNIQUE (match_id, account_id)
);
"""


def record_to_json(record: MatchRecord) -> str:
    return json.dumps(
        {
            "match_id": record.match_id,
            "players": [player_to_dict(player) for player in record.players],
            "bet_amount": str(record.bet_amount),
            "seed": record.seed,
            "first_player_id": record.first_player_id,
            "deck": [serialize_card(card) for card in record.deck] if record.deck is not None else None,
            "status": record.status.value,
            "current_turn": record.current_turn,
            "current_player_id": record.current_player_id,
            "conceded_by": record.conceded_by,
            "winner_id": record.winner_id,
            "victory_type": record.victory_type.value if record.victory_type else None,
            "kora_multiplier": record.kora_multiplier,
            "tricks_won": list(record.tricks_won),
        }
    )


def record_from_json(text: str) -> MatchRecord:
    data = json.loads(text)
    players = [player_from_dict(item) for item in data["players"]]
    deck = data.get("deck")
    tricks = data.get("tricks_won", [0, 0])
    return MatchRecord(
        match_id=data["match_id"],
        players=(players[0], players[1]),
        bet_amount=to_money(data["bet_amount"]),
        seed=data.get("seed"),
        first_player_id=data.get("first_player_id"),
        deck=tuple(deserialize_card(card) for card in deck) if deck is not None else None,
        status=MatchStatus(data["status"]),
        current_turn=data["current_turn"],
        current_player_id=data.get("current_player_id"),
        conceded_by=data.get("conceded_by"),
        winner_id=data.get("winner_id"),
        victory_type=VictoryType(data["victory_type"]) if data.get("victory_type") else None,
        kora_multiplier=data.get("kora_multiplier", 1),
        tricks_won=(tricks[0], tricks[1]),
    )


class SqliteMatchStore:
    """SQLite-backed store with one connection per thread."""

    def __init__(self, db_path: Union[str, Path] = "kora_matches.db") -> None:
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._init_schema()

    def _get_connection(self) -> sqlite3.Connection:
        if not hasattr(self._local, "connection"):
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA busy_timeout = 30000")
            self._local.connection = conn
        return self._local.connection

    def _init_schema(self) -> None:
        conn = self._get_connection()
        conn.executescript(SCHEMA)
        conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection

    # Matches -----------------------------------------------------------------

    def create_match(self, record: MatchRecord) -> None:
        try:
            with self.transaction() as conn:
                conn.execute(
                    "INSERT INTO matches (match_id, current_turn, status, payload) VALUES (?, ?, ?, ?)",
                    (record.match_id, record.current_turn, record.status.value, record_to_json(record)),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Match {record.match_id} already exists.") from exc

    def get_match(self, match_id: str) -> MatchRecord:
        row = self._get_connection().execute(
            "SELECT payload FROM matches WHERE match_id = ?", (match_id,)
        ).fetchone()
        if row is None:
            raise MatchNotFoundError(f"Match {match_id} not found.")
        return record_from_json(row["payload"])

    def append_play(self, play: Play, record: MatchRecord, result: Optional[TurnResult] = None) -> bool:
        try:
            with self.transaction() as conn:
                cursor = conn.execute(
                    """
                    UPDATE matches SET current_turn = ?, status = ?, payload = ?
                    WHERE match_id = ? AND current_turn = ? AND status != ?
                    """,
                    (
                        record.current_turn,
                        record.status.value,
                        record_to_json(record),
                        play.match_id,
                        play.turn,
                        MatchStatus.FINISHED.value,
                    ),
                )
                if cursor.rowcount != 1:
                    return False
                conn.execute(
                    "INSERT INTO plays (match_id, turn, player_id, payload) VALUES (?, ?, ?, ?)",
                    (play.match_id, play.turn, play.player_id, json.dumps(play_to_dict(play))),
                )
                if result is not None:
                    conn.execute(
                        """
                        INSERT INTO turn_results (match_id, turn, winner_id, winning_card, loser_id, losing_card)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            result.match_id,
                            result.turn,
                            result.winner_id,
                            json.dumps(serialize_card(result.winning_card)),
                            result.loser_id,
                            json.dumps(serialize_card(result.losing_card)),
                        ),
                    )
        except sqlite3.IntegrityError:
            return False
        return True

    def update_match(self, record: MatchRecord, *, expected_turn: int, expected_status: MatchStatus) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE matches SET current_turn = ?, status = ?, payload = ?
                WHERE match_id = ? AND current_turn = ? AND status = ?
                """,
                (
                    record.current_turn,
                    record.status.value,
                    record_to_json(record),
                    record.match_id,
                    expected_turn,
                    expected_status.value,
                ),
            )
            return cursor.rowcount == 1

    # Plays -------------------------------------------------------------------

    def get_play(self, match_id: str, turn: int) -> Optional[Play]:
        self.get_match(match_id)
        row = self._get_connection().execute(
            "SELECT payload FROM plays WHERE match_id = ? AND turn = ?", (match_id, turn)
        ).fetchone()
        return play_from_dict(json.loads(row["payload"])) if row else None

    def list_plays(self, match_id: str, since_turn: int = 0) -> List[Play]:
        self.get_match(match_id)
        rows = self._get_connection().execute(
            "SELECT payload FROM plays WHERE match_id = ? AND turn >= ? ORDER BY turn",
            (match_id, since_turn),
        ).fetchall()
        return [play_from_dict(json.loads(row["payload"])) for row in rows]

    def list_turn_results(self, match_id: str) -> List[TurnResult]:
        self.get_match(match_id)
        rows = self._get_connection().execute(
            "SELECT * FROM turn_results WHERE match_id = ? ORDER BY turn", (match_id,)
        ).fetchall()
        return [
            TurnResult(
                match_id=row["match_id"],
                turn=row["turn"],
                winner_id=row["winner_id"],
                winning_card=deserialize_card(json.loads(row["winning_card"])),
                loser_id=row["loser_id"],
                losing_card=deserialize_card(json.loads(row["losing_card"])),
            )
            for row in rows
        ]

    # Ledger ------------------------------------------------------------------

    def add_transactions(self, match_id: str, entries: Sequence[Transaction]) -> bool:
        try:
            with self.transaction() as conn:
                existing = conn.execute(
                    "SELECT COUNT(*) AS n FROM transactions WHERE match_id = ?", (match_id,)
                ).fetchone()
                if existing["n"]:
                    return False
                conn.executemany(
                    """
                    INSERT INTO transactions (match_id, account_id, amount, kind, description)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [(e.match_id, e.account_id, str(e.amount), e.kind, e.description) for e in entries],
                )
        except sqlite3.IntegrityError:
            return False
        return True

    def list_transactions(self, match_id: str) -> List[Transaction]:
        rows = self._get_connection().execute(
            "SELECT * FROM transactions WHERE match_id = ? ORDER BY id", (match_id,)
        ).fetchall()
        return [
            Transaction(
                match_id=row["match_id"],
                account_id=row["account_id"],
                amount=to_money(row["amount"]),
                kind=row["kind"],
                description=row["description"],
            )
            for row in rows
        ]
