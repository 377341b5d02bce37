"""Index Rebalancer - Entry Point.

Usage:
    python main.py run
    python main.py monitor-once
    python main.py drift idx_1a2b3c4d5e6f
    python main.py construct idx_1a2b3c4d5e6f --amount 100
    python main.py rebalance idx_1a2b3c4d5e6f
"""

from rebalancer.cli import create_app

app = create_app()


if __name__ == "__main__":
    app()
