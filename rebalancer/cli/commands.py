"""Typer CLI for the rebalancing engine.

Commands:
    - run: 드리프트 모니터 서비스 실행 (Ctrl+C로 종료)
    - monitor-once: 드리프트 모니터 1회 실행
    - list: Index 목록
    - drift: 현재 드리프트 계산
    - construct: 초기 포트폴리오 구성
    - rebalance: 수동 리밸런싱
    - pause / resume: 자동 리밸런싱 중지/재개
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Annotated, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rebalancer.app import open_container, run_service
from rebalancer.core.exceptions import RebalancerError
from rebalancer.core.logger import setup_logger
from rebalancer.models.types import IndexStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from contextlib import AbstractAsyncContextManager

    from rebalancer.app import Container
    from rebalancer.lifecycle.index_service import RebalanceResult
    from rebalancer.models.drift import DriftAnalysis
    from rebalancer.models.index import Index

app = typer.Typer(no_args_is_help=True)
console = Console()

# 테스트에서 fake Container로 교체
container_factory: Callable[[], AbstractAsyncContextManager[Container]] = open_container

_STATUS_COLORS: dict[IndexStatus, str] = {
    IndexStatus.ACTIVE: "green",
    IndexStatus.PAUSED: "yellow",
    IndexStatus.PENDING: "cyan",
    IndexStatus.PENDING_FUNDING: "cyan",
    IndexStatus.DELETED: "dim",
}

VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-V", help="Enable verbose output")
]


T = TypeVar("T")


def _execute(operation: Callable[[Container], Awaitable[T]]) -> T:
    """Container를 열고 비동기 작업 실행. 도메인 오류는 exit code 1."""

    async def _run() -> T:
        async with container_factory() as container:
            return await operation(container)

    try:
        return asyncio.run(_run())
    except RebalancerError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _print_drift(analysis: DriftAnalysis, threshold: float | None = None) -> None:
    table = Table(title=f"Drift Analysis (total ${analysis.total_value:,.2f})")
    table.add_column("Symbol", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("USD", justify="right")
    table.add_column("Current %", justify="right")
    table.add_column("Target %", justify="right")
    table.add_column("Drift (pp)", justify="right")

    for a in analysis.allocations:
        over = threshold is not None and a.drift > threshold
        table.add_row(
            a.symbol,
            f"{a.amount:.6f}",
            f"{a.usd_value:,.2f}",
            f"{a.current_percentage:.2f}",
            f"{a.target_percentage:.2f}",
            f"[red]{a.drift:.2f}[/red]" if over else f"{a.drift:.2f}",
        )
    console.print(table)
    console.print(f"Max drift: [bold]{analysis.max_drift:.2f}pp[/bold]")
    if analysis.unpriced_symbols:
        console.print(f"[yellow]Unpriced: {', '.join(analysis.unpriced_symbols)}[/yellow]")
    for action in analysis.rebalancing_actions:
        console.print(
            f"  {action.action} {action.amount_delta:.6f} {action.symbol} "
            f"(${action.usd_value:,.2f})"
        )


def _print_result(result: RebalanceResult) -> None:
    color = "green" if result.rebalanced else "yellow"
    console.print(f"[{color}]{result.message}[/{color}]")
    if result.rebalance is not None:
        console.print(
            f"Rebalance {result.rebalance.rebalance_id}: {result.rebalance.status} "
            f"({result.rebalance.completed_trades_count}/{result.rebalance.trades_count} trades)"
        )
    if not result.trades:
        return
    table = Table(title="Trades")
    table.add_column("Trade", style="dim")
    table.add_column("Action")
    table.add_column("From → To")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    table.add_column("Error")
    for t in result.trades:
        status_color = "green" if t.status == "COMPLETED" else "red"
        table.add_row(
            t.trade_id,
            t.action,
            f"{t.from_asset} → {t.to_asset}",
            f"{t.amount:.6f}",
            f"[{status_color}]{t.status}[/{status_color}]",
            t.error or "",
        )
    console.print(table)


@app.command()
def run(verbose: VerboseOption = False) -> None:
    """드리프트 모니터 서비스 실행 (Ctrl+C로 종료)."""
    setup_logger(console_level="DEBUG" if verbose else "INFO")
    console.print("[bold cyan]Index Rebalancer[/bold cyan]")
    console.print("[dim]Press Ctrl+C to stop gracefully.[/dim]")
    _execute(run_service)


@app.command("monitor-once")
def monitor_once(verbose: VerboseOption = False) -> None:
    """드리프트 모니터를 1회 실행하고 요약 출력."""
    setup_logger(console_level="DEBUG" if verbose else "WARNING")
    summary = _execute(lambda c: c.monitor.execute())
    table = Table(title="Drift Monitor Run")
    for column in ("Total", "Evaluated", "Rebalanced", "Failed"):
        table.add_column(column, justify="right")
    table.add_row(
        str(summary.total), str(summary.evaluated), str(summary.rebalanced), str(summary.failed)
    )
    console.print(table)


@app.command(name="list")
def list_indexes(
    status: Annotated[
        IndexStatus | None, typer.Option("--status", "-s", help="Filter by status")
    ] = None,
) -> None:
    """Index 목록."""
    setup_logger(console_level="WARNING", enable_file=False)
    indexes: list[Index] = _execute(lambda c: c.lifecycle.list_indexes(status))

    table = Table(title=f"Indexes ({len(indexes)})")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Status")
    table.add_column("Method")
    table.add_column("Value", justify="right")
    table.add_column("Drift (pp)", justify="right")
    table.add_column("Last Rebalance")
    for index in indexes:
        color = _STATUS_COLORS.get(index.status, "white")
        table.add_row(
            index.index_id,
            index.name,
            f"[{color}]{index.status}[/{color}]",
            index.rebalancing_config.method,
            f"${index.total_value:,.2f}",
            f"{index.total_drift:.2f}",
            index.last_rebalance.isoformat(timespec="seconds") if index.last_rebalance else "-",
        )
    console.print(table)


@app.command()
def drift(
    index_id: Annotated[str, typer.Argument(help="Index ID")],
    verbose: VerboseOption = False,
) -> None:
    """현재 드리프트 계산 (거래 없음)."""
    setup_logger(console_level="DEBUG" if verbose else "WARNING")

    async def _op(c: Container) -> tuple[DriftAnalysis, float]:
        analysis = await c.lifecycle.calculate_current_drift(index_id)
        index = await c.lifecycle.get_index(index_id)
        return analysis, index.rebalancing_config.drift_threshold

    analysis, threshold = _execute(_op)
    _print_drift(analysis, threshold)


@app.command()
def construct(
    index_id: Annotated[str, typer.Argument(help="Index ID")],
    amount: Annotated[
        float | None,
        typer.Option("--amount", "-a", help="Base currency amount (default: account balance)"),
    ] = None,
    base_asset_id: Annotated[
        str | None, typer.Option("--base-asset-id", help="Explicit base currency asset ID")
    ] = None,
    verbose: VerboseOption = False,
) -> None:
    """초기 포트폴리오 구성."""
    setup_logger(console_level="DEBUG" if verbose else "INFO")
    result = _execute(
        lambda c: c.lifecycle.construct_initial_portfolio(index_id, amount, base_asset_id)
    )
    _print_result(result)


@app.command()
def rebalance(
    index_id: Annotated[str, typer.Argument(help="Index ID")],
    verbose: VerboseOption = False,
) -> None:
    """수동 리밸런싱 (드리프트가 임계값 미만이면 아무것도 하지 않음)."""
    setup_logger(console_level="DEBUG" if verbose else "INFO")
    result = _execute(lambda c: c.lifecycle.execute_rebalancing(index_id))
    if result.analysis is not None:
        _print_drift(result.analysis)
    _print_result(result)


@app.command()
def pause(index_id: Annotated[str, typer.Argument(help="Index ID")]) -> None:
    """자동 리밸런싱 일시 정지 (ACTIVE → PAUSED)."""
    setup_logger(console_level="WARNING", enable_file=False)
    index = _execute(lambda c: c.lifecycle.pause_index(index_id))
    console.print(f"[yellow]Index {index.index_id} paused[/yellow]")


@app.command()
def resume(index_id: Annotated[str, typer.Argument(help="Index ID")]) -> None:
    """자동 리밸런싱 재개 (PAUSED → ACTIVE)."""
    setup_logger(console_level="WARNING", enable_file=False)
    index = _execute(lambda c: c.lifecycle.resume_index(index_id))
    console.print(f"[green]Index {index.index_id} resumed[/green]")
