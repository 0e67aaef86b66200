import asyncio

import pytest

from bots.policy import bot_player
from kora.cards import parse_card, parse_cards
from kora.config import MatchRules
from kora.deck import stack_deck
from kora.errors import IllegalMoveError
from kora.state import MatchStatus, Player, VictoryType
from kora.store import InMemoryMatchStore
from kora.sync import MatchAuthority, MatchReplica
from kora.transport import LocalTransport

from conftest import P1, P2

HAND1 = "3S 7H 10D 4C 9S"
HAND2 = "5S 6H 8D 10C 3C"


class SlowTransport(LocalTransport):
    """Delays responses; ``lose_first`` lets only the first reply go missing."""

    def __init__(self, authority, *, lose_first=True, deliver=True):
        super().__init__(authority)
        self.lose_first = lose_first
        self.deliver = deliver
        self.calls = 0

    async def submit_play(self, match_id, expected_turn, player_id, card):
        self.calls += 1
        receipt = None
        if self.deliver:
            receipt = await super().submit_play(match_id, expected_turn, player_id, card)
        if self.calls == 1 or not self.lose_first:
            await asyncio.sleep(1)
        return receipt


def setup(players=(Player(P1), Player(P2)), first=P1):
    authority = MatchAuthority(InMemoryMatchStore(), MatchRules(turn_timeout_seconds=None))
    deck = stack_deck(parse_cards(HAND1), parse_cards(HAND2))
    authority.create_match(players, 100.0, match_id="m-1", deck=deck, first_player_id=first)
    return authority


def replica_for(authority, player_id, transport=None, **kwargs):
    transport = transport or LocalTransport(authority)
    dealt = asyncio.run(transport.fetch_dealt("m-1"))
    return MatchReplica(dealt, player_id, transport, engine=authority.engine, **kwargs)


def test_local_play_is_predicted_then_confirmed():
    authority = setup()
    replica = replica_for(authority, P1)

    predicted = replica.play(parse_card("3S"))
    assert predicted.current_turn == 1
    assert replica.confirmed_state.current_turn == 0
    assert [play.card for play in replica.needs_sync()] == [parse_card("3S")]

    state = asyncio.run(replica.flush())
    assert state.current_turn == 1
    assert replica.confirmed_state.current_turn == 1
    assert replica.pending == []
    assert authority.load("m-1").plays[0].card == parse_card("3S")


def test_illegal_local_play_is_not_queued():
    authority = setup()
    replica = replica_for(authority, P1)
    with pytest.raises(IllegalMoveError):
        replica.play(parse_card("5S"))
    assert replica.pending == []
    assert replica.predicted_state.current_turn == 0


def test_opponent_plays_arrive_through_sync():
    authority = setup()
    first = replica_for(authority, P1)
    second = replica_for(authority, P2)

    first.play(parse_card("3S"))
    asyncio.run(first.flush())
    asyncio.run(second.sync())
    assert second.predicted_state.demanded_suit is not None

    second.play(parse_card("5S"))
    asyncio.run(second.flush())
    asyncio.run(first.sync())
    assert first.confirmed_state.tricks_won == (0, 1)
    assert first.confirmed_state == authority.load("m-1")


def test_server_ahead_drops_speculative_play():
    authority = setup()
    replica = replica_for(authority, P1)
    replica.play(parse_card("3S"))
    authority.submit_play("m-1", 0, parse_card("7H"), P1)

    state = asyncio.run(replica.flush())
    assert replica.pending == []
    assert state == replica.confirmed_state
    assert state.plays[0].card == parse_card("7H")


def test_reconnect_converges_on_server_log():
    authority = setup()
    replica = replica_for(authority, P1)
    replica.play(parse_card("3S"))
    authority.submit_play("m-1", 0, parse_card("9S"), P1)
    authority.submit_play("m-1", 1, parse_card("5S"), P2)

    state = asyncio.run(replica.reconnect())
    assert replica.pending == []
    assert state.current_turn == 2
    assert state.tricks_won == (1, 0)


def test_reconnect_flushes_when_server_is_level():
    authority = setup()
    replica = replica_for(authority, P1)
    replica.play(parse_card("3S"))
    state = asyncio.run(replica.reconnect())
    assert state.current_turn == 1
    assert authority.store.get_match("m-1").current_turn == 1


def test_timeout_retries_with_same_turn_token():
    authority = setup()
    transport = SlowTransport(authority)
    replica = replica_for(authority, P1, transport, submit_timeout=0.05)
    replica.play(parse_card("3S"))

    state = asyncio.run(replica.flush())
    assert transport.calls == 2
    assert state.current_turn == 1
    assert len(authority.store.list_plays("m-1")) == 1


def test_timeouts_give_up_after_max_attempts():
    authority = setup()
    transport = SlowTransport(authority, lose_first=False, deliver=False)
    replica = replica_for(authority, P1, transport, submit_timeout=0.01, max_attempts=3)
    replica.play(parse_card("3S"))

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(replica.flush())
    assert transport.calls == 3
    assert len(replica.needs_sync()) == 1
    assert authority.store.list_plays("m-1") == []


def test_bot_reply_is_folded_after_flush():
    bot = bot_player("medium")
    authority = setup(players=(Player(P1), bot))
    replica = replica_for(authority, P1)

    replica.play(parse_card("9S"))
    state = asyncio.run(replica.flush())
    assert state.current_turn == 2
    assert state.plays[1].player_id == bot.player_id
    assert state.plays[1].card == parse_card("5S")


def test_replica_concession():
    authority = setup()
    replica = replica_for(authority, P2)
    state = asyncio.run(replica.concede())
    assert state.status is MatchStatus.FINISHED
    assert state.victory_type is VictoryType.CONCESSION
    assert state.winner_id == P1


def test_reconcile_rebuilds_from_full_log():
    authority = setup()
    replica = replica_for(authority, P1)
    authority.submit_play("m-1", 0, parse_card("3S"), P1)
    authority.submit_play("m-1", 1, parse_card("5S"), P2)
    assert asyncio.run(replica.reconcile()) == authority.load("m-1")
