import pytest

from kora.cards import Suit, parse_card, parse_cards
from kora.errors import IllegalMoveError, NotYourTurnError
from kora.rules import check_play, legal_cards
from kora.trick import Trick, beats


def test_any_card_is_legal_when_leading():
    hand = parse_cards("9S 3H 7D")
    assert legal_cards(hand, None) == parse_cards("3H 7D 9S")


def test_must_follow_demanded_suit_when_holding_it():
    hand = parse_cards("5S 6H 8D")
    assert legal_cards(hand, Suit.SPADES) == [parse_card("5S")]


def test_void_in_demanded_suit_frees_every_card():
    hand = parse_cards("5D 6H 8D")
    assert legal_cards(hand, Suit.SPADES) == parse_cards("5D 6H 8D")


def test_higher_card_of_demanded_suit_wins():
    trick = Trick(leader="a").with_play("a", parse_card("5S")).with_play("b", parse_card("9S"))
    assert trick.winning_play() == ("b", parse_card("9S"))
    assert trick.losing_play() == ("a", parse_card("5S"))


def test_off_suit_never_beats_demanded_suit():
    trick = Trick(leader="a").with_play("a", parse_card("3S")).with_play("b", parse_card("10H"))
    assert trick.winning_play() == ("a", parse_card("3S"))
    assert not beats(parse_card("10H"), parse_card("3S"), Suit.SPADES)


def test_demanded_suit_set_by_first_card():
    trick = Trick(leader="a")
    assert trick.demanded_suit() is None
    assert trick.with_play("a", parse_card("4C")).demanded_suit() is Suit.CLUBS


def test_check_play_rejects_out_of_turn():
    with pytest.raises(NotYourTurnError):
        check_play(
            player_id="b",
            current_player_id="a",
            card=parse_card("3S"),
            hand=parse_cards("3S"),
            trick=Trick(leader="a"),
        )


def test_check_play_rejects_card_not_held():
    with pytest.raises(IllegalMoveError):
        check_play(
            player_id="a",
            current_player_id="a",
            card=parse_card("3S"),
            hand=parse_cards("4S"),
            trick=Trick(leader="a"),
        )


def test_check_play_rejects_renege():
    trick = Trick(leader="a").with_play("a", parse_card("9S"))
    with pytest.raises(IllegalMoveError):
        check_play(
            player_id="b",
            current_player_id="b",
            card=parse_card("6H"),
            hand=parse_cards("5S 6H"),
            trick=trick,
        )
