import pytest

from bots.policy import bot_player
from kora.cards import parse_card, parse_cards
from kora.deck import stack_deck
from kora.errors import (
    IllegalMoveError,
    KoraError,
    MatchNotFoundError,
    StaleTurnError,
    error_code,
    error_from_code,
)
from kora.match import new_match
from kora.state import MatchStatus, Play, Player
from kora.store import InMemoryMatchStore, MatchRecord, record_from_json, record_to_json

from conftest import P1, P2


def test_record_survives_json(engine, stacked):
    deck = stack_deck(parse_cards("3S 7H 10D 4C 9S"), parse_cards("5S 6H 8D 10C 3C"))
    state = engine.concede(stacked("3S 7H 10D 4C 9S", "5S 6H 8D 10C 3C"), P2)
    record = MatchRecord.from_state(state, deck=deck)
    assert record_from_json(record_to_json(record)) == record


def test_bot_player_survives_json(engine):
    state = engine.deal(new_match("m-bot", (Player(P1), bot_player("easy")), 5), 99)
    record = MatchRecord.from_state(state)
    restored = record_from_json(record_to_json(record))
    assert restored.players[1] == bot_player("easy")
    assert restored.seed == 99


def test_in_memory_append_is_conditional(engine, stacked):
    store = InMemoryMatchStore()
    dealt = stacked("3S 7H 10D 4C 9S", "5S 6H 8D 10C 3C")
    record = MatchRecord.from_state(dealt)
    store.create_match(record)

    outcome = engine.play(dealt, P1, parse_card("3S"))
    assert store.append_play(outcome.play, record.updated_from(outcome.state))
    assert not store.append_play(outcome.play, record.updated_from(outcome.state))
    late = Play("m-1", 0, P1, parse_card("7H"))
    assert not store.append_play(late, record)
    assert store.get_match("m-1").current_turn == 1
    assert store.list_plays("m-1", since_turn=1) == []

    with pytest.raises(ValueError):
        store.create_match(record)
    with pytest.raises(MatchNotFoundError):
        store.get_play("m-unknown", 0)


def test_in_memory_update_checks_status(stacked):
    store = InMemoryMatchStore()
    record = MatchRecord.from_state(stacked("3S 7H 10D 4C 9S", "5S 6H 8D 10C 3C"))
    store.create_match(record)
    assert not store.update_match(record, expected_turn=0, expected_status=MatchStatus.PLAYING)
    assert store.update_match(record, expected_turn=0, expected_status=MatchStatus.DEALT)


def test_error_codes_round_trip():
    stale = StaleTurnError("late", expected_turn=2, current_turn=4)
    assert error_code(stale) == "stale_turn"
    rebuilt = error_from_code("stale_turn", "late", expected_turn=2, current_turn=4)
    assert isinstance(rebuilt, StaleTurnError)
    assert (rebuilt.expected_turn, rebuilt.current_turn) == (2, 4)
    assert isinstance(error_from_code("illegal_move", "no"), IllegalMoveError)
    assert type(error_from_code("teapot", "?")) is KoraError
