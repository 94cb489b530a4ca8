"""Tests for the draw simulator CLI."""

import json
import random

import pytest

from giveaway_bot.simulator import SimulationResults, main, run_simulation


def test_run_simulation_matches_ticket_share():
    results = run_simulation(
        {"a": 1.0, "b": 3.0}, draws=4000, rng=random.Random(11)
    )

    assert results.win_counts["a"] + results.win_counts["b"] == 4000
    assert results.expected_rate("b") == pytest.approx(30 / 40)
    assert results.max_deviation() < 0.03


def test_multi_winner_rates_are_not_compared():
    results = run_simulation(
        {"a": 1.0, "b": 1.0}, draws=10, winners_per_draw=2, rng=random.Random(1)
    )
    assert results.win_rate("a") == 1.0
    assert results.max_deviation() == 0.0


def test_negative_draws_rejected():
    with pytest.raises(ValueError):
        run_simulation({"a": 1.0}, draws=-1)


def test_empty_results():
    results = SimulationResults(draws=0, winners_per_draw=1, scores={"a": 1.0})
    assert results.win_rate("a") == 0.0
    assert results.to_dict()["entrants"]["a"]["tickets"] == 10


def test_main_prints_summary_and_exports_json(tmp_path, capsys):
    out = tmp_path / "results.json"

    code = main(
        ["--scores", "1", "5", "--draws", "200", "--seed", "3", "--json", str(out)]
    )

    assert code == 0
    printed = capsys.readouterr().out
    assert "GIVEAWAY DRAW SIMULATION" in printed
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["draws"] == 200
    assert set(data["entrants"]) == {"user1", "user2"}
    assert data["entrants"]["user2"]["tickets"] == 50
