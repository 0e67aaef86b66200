"""Bot strategies for Kora."""

from .base import BotStrategy, PublicState, public_state_for
from .baseline_conservative import ConservativeBot
from .baseline_void_tracker import VoidTrackerBot
from .policy import BOT_PROFILES, STRATEGIES, bot_player, choose_card, choose_for_player
from .random_bot import RandomBot

__all__ = [
    "BOT_PROFILES",
    "STRATEGIES",
    "BotStrategy",
    "ConservativeBot",
    "PublicState",
    "RandomBot",
    "VoidTrackerBot",
    "bot_player",
    "choose_card",
    "choose_for_player",
    "public_state_for",
]
