"""Shared fixtures for the Kora engine tests."""

import pytest

from kora.cards import parse_cards
from kora.config import MatchRules
from kora.deck import stack_deck
from kora.match import MatchEngine, new_match
from kora.state import MoneyLike, Player

P1 = "player-1"
P2 = "player-2"


@pytest.fixture
def players():
    return (Player(P1), Player(P2))


@pytest.fixture
def engine():
    return MatchEngine(MatchRules(turn_timeout_seconds=None))


@pytest.fixture
def stacked(engine, players):
    """Return a dealt match where player 1 holds ``hand1`` and leads."""

    def _deal(hand1: str, hand2: str, *, bet_amount: MoneyLike = 100, match_id: str = "m-1"):
        deck = stack_deck(parse_cards(hand1), parse_cards(hand2))
        return engine.deal(new_match(match_id, players, bet_amount), deck=deck, first_player_id=P1)

    return _deal
