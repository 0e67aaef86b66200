import threading
from dataclasses import replace
from decimal import Decimal

import pytest

from bots.policy import bot_player
from kora.cards import parse_card, parse_cards
from kora.config import MatchRules
from kora.deck import stack_deck
from kora.errors import (
    IllegalMoveError,
    MatchFinishedError,
    MatchNotFoundError,
    ReplayDivergenceError,
    StaleTurnError,
)
from kora.events import EventKind
from kora.state import MatchStatus, Player, VictoryType
from kora.store import InMemoryMatchStore, SqliteMatchStore
from kora.sync import MatchAuthority
from kora.timer import TurnTimer

from conftest import P1, P2

HAND1 = "3S 7H 10D 4C 9S"
HAND2 = "5S 6H 8D 10C 3C"


def make_authority(store=None, **rules):
    rules.setdefault("turn_timeout_seconds", None)
    return MatchAuthority(store or InMemoryMatchStore(), MatchRules(**rules))


def create(authority, hand1=HAND1, hand2=HAND2, players=(Player(P1), Player(P2)), first=P1):
    deck = stack_deck(parse_cards(hand1), parse_cards(hand2))
    return authority.create_match(players, 100.0, match_id="m-1", deck=deck, first_player_id=first)


def finish_triple(authority):
    create(authority, "10S 9S 8S 7S 6S", "3H 4H 5H 6H 7H")
    turn = 0
    for lead, follow in zip(["10S", "9S", "8S", "7S", "6S"], ["3H", "4H", "5H", "6H", "7H"]):
        authority.submit_play("m-1", turn, parse_card(lead), P1)
        state = authority.submit_play("m-1", turn + 1, parse_card(follow), P2).state
        turn += 2
    return state


def test_accepted_play_advances_stored_turn():
    authority = make_authority()
    dealt = create(authority)
    assert dealt.status is MatchStatus.DEALT

    result = authority.submit_play("m-1", 0, parse_card("3S"), P1)
    assert not result.duplicate
    assert result.play.turn == 0
    assert result.state.current_turn == 1
    assert authority.store.get_match("m-1").current_turn == 1
    assert authority.store.get_match("m-1").status is MatchStatus.PLAYING


def test_stale_turn_is_rejected():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)

    with pytest.raises(StaleTurnError) as excinfo:
        authority.submit_play("m-1", 0, parse_card("7H"), P1)
    assert excinfo.value.current_turn == 1

    with pytest.raises(StaleTurnError):
        authority.submit_play("m-1", 4, parse_card("5S"), P2)


def test_resubmission_is_idempotent():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    first = authority.submit_play("m-1", 1, parse_card("5S"), P2)
    again = authority.submit_play("m-1", 1, parse_card("5S"), P2)

    assert again.duplicate
    assert again.play == first.play
    assert again.turn_result == first.turn_result
    assert len(authority.store.list_plays("m-1")) == 2
    assert len(authority.store.list_turn_results("m-1")) == 1


def test_illegal_play_never_reaches_the_store():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("9S"), P1)
    with pytest.raises(IllegalMoveError):
        authority.submit_play("m-1", 1, parse_card("6H"), P2)
    assert len(authority.store.list_plays("m-1")) == 1
    assert authority.store.get_match("m-1").current_turn == 1


def test_concurrent_submissions_for_one_turn():
    authority = make_authority()
    create(authority)
    barrier = threading.Barrier(2)
    outcomes = []

    def submit(code):
        barrier.wait()
        try:
            authority.submit_play("m-1", 0, parse_card(code), P1)
            outcomes.append("accepted")
        except StaleTurnError:
            outcomes.append("stale")

    threads = [threading.Thread(target=submit, args=(code,)) for code in ("3S", "7H")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["accepted", "stale"]
    assert len(authority.store.list_plays("m-1")) == 1
    assert authority.load("m-1").current_turn == 1


def test_concurrent_retries_of_the_same_play():
    authority = make_authority()
    create(authority)
    barrier = threading.Barrier(2)
    results = []

    def submit():
        barrier.wait()
        results.append(authority.submit_play("m-1", 0, parse_card("3S"), P1))

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(result.duplicate for result in results) == [False, True]
    assert len(authority.store.list_plays("m-1")) == 1


def test_concession_finishes_and_settles():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    finished = authority.concede("m-1", P2)

    assert finished.winner_id == P1
    assert finished.victory_type is VictoryType.CONCESSION
    assert authority.log("m-1").conceded_by == P2
    assert authority.load("m-1") == finished
    amounts = {entry.account_id: entry.amount for entry in authority.store.list_transactions("m-1")}
    assert amounts == {P1: Decimal("100"), P2: Decimal("-100")}

    with pytest.raises(MatchFinishedError):
        authority.submit_play("m-1", 1, parse_card("5S"), P2)
    with pytest.raises(MatchFinishedError):
        authority.concede("m-1", P1)


def test_concession_with_stale_turn_is_rejected():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    with pytest.raises(StaleTurnError):
        authority.concede("m-1", P2, expected_turn=0)
    assert authority.load("m-1").status is MatchStatus.PLAYING


def test_match_settles_exactly_once():
    authority = make_authority()
    state = finish_triple(authority)
    assert state.victory_type is VictoryType.KORA_TRIPLE

    entries = authority.store.list_transactions("m-1")
    assert {entry.account_id: entry.amount for entry in entries} == {P1: Decimal("400"), P2: Decimal("-400")}
    assert not authority.store.add_transactions("m-1", entries)
    assert len(authority.store.list_transactions("m-1")) == 2


def test_events_follow_the_match():
    authority = make_authority()
    seen = []
    authority.events.add_listener(lambda event: seen.append(event.kind))
    finish_triple(authority)

    assert seen[0] is EventKind.MATCH_DEALT
    assert seen.count(EventKind.CARD_PLAYED) == 10
    assert seen.count(EventKind.TRICK_RESOLVED) == 5
    assert seen[-2:] == [EventKind.KORA_ACHIEVED, EventKind.MATCH_FINISHED]


def test_failing_listener_does_not_block_play():
    authority = make_authority()
    seen = []

    def broken(event):
        raise RuntimeError("socket closed")

    authority.events.add_listener(broken)
    authority.events.add_listener(lambda event: seen.append(event.kind))
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    assert seen == [EventKind.MATCH_DEALT, EventKind.CARD_PLAYED]


def test_bot_seat_is_driven_by_the_authority():
    authority = make_authority()
    bot = bot_player("medium")
    state = create(authority, players=(Player(P1), bot), first=bot.player_id)

    assert state.current_turn == 1
    assert state.plays[0].player_id == bot.player_id
    while not state.is_finished:
        assert state.current_player_id == P1
        card = authority.engine.legal_moves(state, P1)[0]
        state = authority.submit_play("m-1", state.current_turn, card, P1).state

    assert sum(state.tricks_won) == 5
    assert authority.load("m-1") == state
    assert len(authority.store.list_transactions("m-1")) == 2


def test_unknown_match():
    authority = make_authority()
    with pytest.raises(MatchNotFoundError):
        authority.load("missing")


def test_tampered_record_is_detected():
    authority = make_authority()
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    record = authority.store.get_match("m-1")
    authority.store.update_match(
        replace(record, current_turn=5), expected_turn=1, expected_status=MatchStatus.PLAYING
    )
    with pytest.raises(ReplayDivergenceError):
        authority.load("m-1")


def test_sqlite_store_persists_the_log(tmp_path):
    path = tmp_path / "kora.db"
    authority = make_authority(SqliteMatchStore(path))
    create(authority)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    authority.submit_play("m-1", 1, parse_card("5S"), P2)
    authority.submit_play("m-1", 1, parse_card("5S"), P2)

    reopened = make_authority(SqliteMatchStore(path))
    state = reopened.load("m-1")
    assert state.current_turn == 2
    assert state.tricks_won == (0, 1)
    assert [play.card for play in reopened.store.list_plays("m-1", since_turn=1)] == [parse_card("5S")]
    assert reopened.store.list_turn_results("m-1")[0].winner_id == P2

    with pytest.raises(StaleTurnError):
        reopened.submit_play("m-1", 1, parse_card("3C"), P2)
    finished = reopened.concede("m-1", P1)
    assert finished.winner_id == P2
    assert {entry.account_id for entry in reopened.store.list_transactions("m-1")} == {P1, P2}


def test_sqlite_store_refuses_stale_append(tmp_path):
    authority = make_authority(SqliteMatchStore(tmp_path / "kora.db"))
    create(authority)
    first = authority.submit_play("m-1", 0, parse_card("3S"), P1)
    record = authority.store.get_match("m-1")
    assert not authority.store.append_play(replace(first.play, card=parse_card("7H")), record)


class InterruptedTimer(TurnTimer):
    """Fails once when asked to start turn 1, after the play has been stored."""

    def __init__(self, rules):
        super().__init__(rules)
        self.failed = False

    def start_turn(self, state, now=None):
        if state.current_turn == 1 and not self.failed:
            self.failed = True
            raise RuntimeError("timer unavailable")
        return super().start_turn(state, now)


def test_retry_after_interrupted_submission_lets_the_bot_move():
    rules = MatchRules(turn_timeout_seconds=None)
    authority = MatchAuthority(InMemoryMatchStore(), rules, timer=InterruptedTimer(rules))
    bot = bot_player("medium")
    create(authority, players=(Player(P1), bot))

    with pytest.raises(RuntimeError):
        authority.submit_play("m-1", 0, parse_card("9S"), P1)
    assert authority.load("m-1").current_player_id == bot.player_id

    retry = authority.submit_play("m-1", 0, parse_card("9S"), P1)
    assert retry.duplicate
    assert retry.state.current_turn == 2
    assert retry.state.plays[1].card == parse_card("5S")
    assert authority.load("m-1") == retry.state


def test_removed_listener_hears_nothing():
    authority = make_authority()
    seen = []
    listener = seen.append
    authority.events.add_listener(listener)
    create(authority)
    authority.events.remove_listener(listener)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    assert [event.kind for event in seen] == [EventKind.MATCH_DEALT]
