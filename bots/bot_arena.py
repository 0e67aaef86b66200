"""Simple bot arena for Kora."""

from __future__ import annotations

import argparse
from decimal import Decimal
from random import Random
from typing import Dict, Iterable, Optional

from kora.config import MatchRules
from kora.match import MatchEngine, new_match
from kora.scoring import settle
from kora.state import Difficulty, MatchState, MoneyLike, Player, PlayerKind

from .policy import choose_for_player


def play_match(
    engine: MatchEngine,
    difficulty_a: Difficulty,
    difficulty_b: Difficulty,
    *,
    seed: str,
    bet_amount: MoneyLike = 100,
    first_player_id: Optional[str] = None,
) -> MatchState:
    players = (
        Player("bot-a", PlayerKind.AI, difficulty_a),
        Player("bot-b", PlayerKind.AI, difficulty_b),
    )
    state = engine.deal(new_match(f"arena-{seed}", players, bet_amount), seed, first_player_id=first_player_id)
    rng = Random(seed)
    while not state.is_finished:
        assert state.current_player_id is not None
        player = state.player(state.current_player_id)
        assert player.difficulty is not None
        card = choose_for_player(state, player.player_id, player.difficulty, rng)
        state = engine.play(state, player.player_id, card).state
    return state


def run_match(
    difficulty_a: Difficulty,
    difficulty_b: Difficulty,
    *,
    n_matches: int = 10,
    seed: int | None = None,
    rules: Optional[MatchRules] = None,
) -> dict:
    engine = MatchEngine(rules)
    base = Random(seed)
    wins = {"bot-a": 0, "bot-b": 0}
    balances = {"bot-a": Decimal("0"), "bot-b": Decimal("0")}
    history = []
    for idx in range(n_matches):
        match_seed = f"{base.getrandbits(32)}"
        first = "bot-a" if idx % 2 == 0 else "bot-b"
        state = play_match(engine, difficulty_a, difficulty_b, seed=match_seed, first_player_id=first)
        assert state.winner_id is not None
        wins[state.winner_id] += 1
        for entry in settle(state, engine.rules):
            if entry.account_id in balances:
                balances[entry.account_id] += entry.amount
        history.append(
            {
                "seed": match_seed,
                "winner": state.winner_id,
                "victory_type": state.victory_type.value if state.victory_type else None,
                "tricks_won": state.tricks_won,
            }
        )
    return {"wins": wins, "balances": balances, "history": history}


DIFFICULTIES: Dict[str, Difficulty] = {difficulty.value: difficulty for difficulty in Difficulty}


def main(argv: Iterable[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run bot-versus-bot Kora matches.")
    parser.add_argument("--bot-a", default="medium", choices=DIFFICULTIES.keys())
    parser.add_argument("--bot-b", default="easy", choices=DIFFICULTIES.keys())
    parser.add_argument("--n", type=int, default=100, help="Number of matches to play.")
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args(list(argv) if argv is not None else None)

    results = run_match(DIFFICULTIES[args.bot_a], DIFFICULTIES[args.bot_b], n_matches=args.n, seed=args.seed)

    print(f"Wins after {args.n} matches: {results['wins']}")
    balances = {player: str(amount) for player, amount in results["balances"].items()}
    print(f"Net balances: {balances}")
    koras = sum(1 for entry in results["history"] if entry["victory_type"] == "kora-triple")
    print(f"Triple koras: {koras}/{len(results['history'])}")


if __name__ == "__main__":
    main()
