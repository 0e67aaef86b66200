from kora.config import MatchRules
from kora.match import MatchEngine
from kora.state import Difficulty

from bots.bot_arena import main, play_match, run_match


def test_play_match_runs_to_completion():
    engine = MatchEngine(MatchRules(turn_timeout_seconds=None))
    state = play_match(engine, Difficulty.HARD, Difficulty.EASY, seed="arena-1")
    assert state.is_finished
    assert sum(state.tricks_won) == 5
    assert state.winner_id in ("bot-a", "bot-b")


def test_run_match_is_reproducible_and_zero_sum():
    first = run_match(Difficulty.MEDIUM, Difficulty.EASY, n_matches=12, seed=5)
    second = run_match(Difficulty.MEDIUM, Difficulty.EASY, n_matches=12, seed=5)
    assert first == second
    assert sum(first["wins"].values()) == 12
    assert sum(first["balances"].values()) == 0
    assert {entry["victory_type"] for entry in first["history"]} <= {"kora-simple", "kora-double", "kora-triple"}


def test_cli_prints_summary(capsys):
    main(["--bot-a", "hard", "--bot-b", "medium", "--n", "4", "--seed", "1"])
    out = capsys.readouterr().out
    assert "Wins after 4 matches" in out
    assert "Net balances" in out
