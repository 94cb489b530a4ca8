"""Entry point for running the giveaway bot via python -m bots"""

from bots.giveaway import run

if __name__ == "__main__":
    run()
