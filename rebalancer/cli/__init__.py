"""CLI interface using Typer.

Usage:
    rebalancer run
    rebalancer monitor-once
    rebalancer list --status ACTIVE
    rebalancer drift idx_1a2b3c4d5e6f
    rebalancer construct idx_1a2b3c4d5e6f --amount 100
    rebalancer rebalance idx_1a2b3c4d5e6f
    rebalancer pause idx_1a2b3c4d5e6f
"""

import typer


def create_app() -> typer.Typer:
    """Create the main CLI application.

    Lazy import로 서비스 모듈은 명령 실행 시에만 로드합니다.
    """
    from rebalancer.cli.commands import app

    app.info.name = "rebalancer"
    app.info.help = "Crypto index rebalancing engine"
    return app


def main() -> None:
    """Entry point for the ``rebalancer`` console script."""
    app = create_app()
    app()
