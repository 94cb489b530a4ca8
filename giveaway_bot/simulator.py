"""
Giveaway Draw Simulation

Runs the weighted draw many times over a fixed set of entrant scores and
compares each entrant's observed win rate with the share of tickets they hold.
Useful for checking a config change before rolling it out::

    python -m giveaway_bot.simulator --scores 1 1 2.5 5 --draws 5000
"""

from __future__ import annotations

import argparse
import json
import random
import statistics
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field

from .selection import select_winners, ticket_count


@dataclass
class SimulationResults:
    draws: int
    winners_per_draw: int
    scores: dict[str, float]
    win_counts: dict[str, int] = field(default_factory=dict)

    def win_rate(self, user_id: str) -> float:
        if self.draws == 0:
            return 0.0
        return self.win_counts.get(user_id, 0) / self.draws

    def expected_rate(self, user_id: str) -> float:
        """Expected single-winner rate: the user's share of all tickets."""
        total = sum(ticket_count(score) for score in self.scores.values())
        if total == 0:
            return 0.0
        return ticket_count(self.scores[user_id]) / total

    def max_deviation(self) -> float:
        if self.winners_per_draw != 1:
            return 0.0
        return max(
            (abs(self.win_rate(uid) - self.expected_rate(uid)) for uid in self.scores),
            default=0.0,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "draws": self.draws,
            "winners_per_draw": self.winners_per_draw,
            "entrants": {
                uid: {
                    "score": score,
                    "tickets": ticket_count(score),
                    "wins": self.win_counts.get(uid, 0),
                    "win_rate": round(self.win_rate(uid), 4),
                }
                for uid, score in self.scores.items()
            },
        }


def run_simulation(
    scores: dict[str, float],
    *,
    draws: int = 1000,
    winners_per_draw: int = 1,
    rng: random.Random | None = None,
) -> SimulationResults:
    if draws < 0:
        raise ValueError("Number of draws cannot be negative")
    rng = rng or random.Random()
    counts: Counter[str] = Counter()
    for _ in range(draws):
        counts.update(
            select_winners(scores.keys(), scores.__getitem__, winners_per_draw, rng=rng)
        )
    return SimulationResults(
        draws=draws,
        winners_per_draw=winners_per_draw,
        scores=dict(scores),
        win_counts=dict(counts),
    )


def print_results_summary(results: SimulationResults) -> None:
    print("=" * 60)
    print("GIVEAWAY DRAW SIMULATION")
    print("=" * 60)
    print(f"Draws: {results.draws}  Winners per draw: {results.winners_per_draw}")
    print(f"{'entrant':>10} {'score':>7} {'tickets':>8} {'wins':>7} {'rate':>7}")
    for uid, score in results.scores.items():
        print(
            f"{uid:>10} {score:>7.2f} {ticket_count(score):>8} "
            f"{results.win_counts.get(uid, 0):>7} {results.win_rate(uid):>7.2%}"
        )
    rates = [results.win_rate(uid) for uid in results.scores]
    if len(rates) > 1:
        print(f"Win rate std dev: {statistics.stdev(rates):.4f}")
    if results.winners_per_draw == 1:
        print(f"Max deviation from ticket share: {results.max_deviation():.4f}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--scores",
        type=float,
        nargs="+",
        default=[1.0, 5.0],
        help="Activity score of each simulated entrant",
    )
    parser.add_argument("--draws", type=int, default=1000)
    parser.add_argument("--winners", type=int, default=1)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--json", dest="json_path", default=None)
    args = parser.parse_args(argv)

    scores = {f"user{idx + 1}": score for idx, score in enumerate(args.scores)}
    results = run_simulation(
        scores,
        draws=args.draws,
        winners_per_draw=args.winners,
        rng=random.Random(args.seed),
    )
    print_results_summary(results)
    if args.json_path:
        with open(args.json_path, "w", encoding="utf-8") as fh:
            json.dump(results.to_dict(), fh, indent=2)
        print(f"Results exported to {args.json_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
