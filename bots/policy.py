"""Difficulty tiers and the single entry point used to pick a bot's card."""

from __future__ import annotations

from dataclasses import dataclass
from random import Random
from typing import Dict, Iterable, Optional, Union

from kora.cards import Card, Suit
from kora.errors import IllegalMoveError, NotYourTurnError
from kora.rules import is_legal, legal_cards
from kora.state import Difficulty, MatchState, Player, PlayerKind

from .base import BotStrategy, PublicState, public_state_for
from .baseline_conservative import ConservativeBot
from .baseline_void_tracker import VoidTrackerBot
from .random_bot import RandomBot


@dataclass(frozen=True)
class BotProfile:
    bot_id: str
    display_name: str
    difficulty: Difficulty


BOT_PROFILES: Dict[Difficulty, BotProfile] = {
    Difficulty.EASY: BotProfile("ai-bindi", "Bindi du Tierqua", Difficulty.EASY),
    Difficulty.MEDIUM: BotProfile("ai-ndoss", "Le Ndoss", Difficulty.MEDIUM),
    Difficulty.HARD: BotProfile("ai-bandi", "Le Grand Bandi", Difficulty.HARD),
}

STRATEGIES: Dict[Difficulty, BotStrategy] = {
    Difficulty.EASY: RandomBot(),
    Difficulty.MEDIUM: ConservativeBot(),
    Difficulty.HARD: VoidTrackerBot(),
}


def bot_player(difficulty: Union[Difficulty, str]) -> Player:
    """Return the seat for the house bot of the given tier."""
    profile = BOT_PROFILES[Difficulty(difficulty)]
    return Player(
        player_id=profile.bot_id,
        kind=PlayerKind.AI,
        difficulty=profile.difficulty,
        display_name=profile.display_name,
    )


def turn_rng(state: MatchState) -> Random:
    """Seeded source for a bot move, reproducible from the match log."""
    return Random(f"{state.seed}:{state.match_id}:{state.current_turn}")


def choose_card(
    hand: Iterable[Card],
    demanded_suit: Optional[Suit],
    difficulty: Union[Difficulty, str],
    public_state: PublicState,
    rng: Optional[Random] = None,
) -> Card:
    """Pick a card for a bot; the result is always legal for ``hand``."""
    cards = list(hand)
    legal = legal_cards(cards, demanded_suit)
    if not legal:
        raise IllegalMoveError("Bot has no card to play.")
    strategy = STRATEGIES[Difficulty(difficulty)]
    choice = strategy.choose(legal, public_state, rng or Random())
    if not is_legal(choice, cards, demanded_suit):
        raise IllegalMoveError(f"{strategy.name} chose illegal card {choice}.")
    return choice


def choose_for_player(
    state: MatchState,
    player_id: str,
    difficulty: Union[Difficulty, str],
    rng: Optional[Random] = None,
) -> Card:
    """Pick a card for ``player_id`` straight from a match state."""
    if state.current_player_id != player_id:
        raise NotYourTurnError(f"It is not {player_id}'s turn.")
    return choose_card(
        state.hand_of(player_id),
        state.demanded_suit,
        difficulty,
        public_state_for(state, player_id),
        rng,
    )
