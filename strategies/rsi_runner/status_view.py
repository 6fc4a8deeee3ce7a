from __future__ import annotations

from typing import Dict, Iterable, Optional

from rich import box
from rich.console import Console
from rich.table import Table


def build_status_table(
    rows: Iterable[Dict],
    *,
    title: str = "📊 RSI Runners",
    executor_summary: Optional[Dict] = None,
) -> Table:
    table = Table(title=title, box=box.ROUNDED)
    if executor_summary:
        s = executor_summary
        table.caption = (
            f"{str(s.get('mode', '-')).upper()} orders={s.get('orders', 0)} "
            f"errors={s.get('errors', 0)} last={s.get('last') or '-'}"
        )
    table.add_column("Symbol", style="cyan", no_wrap=True)
    table.add_column("Candles", justify="right")
    table.add_column("RSI", justify="right", style="yellow")
    table.add_column("Bands", justify="center")
    table.add_column("Position", justify="right", style="green")
    table.add_column("Cycle", justify="center", style="magenta")
    table.add_column("Inflight", justify="center")

    for row in rows:
        rsi = row.get("rsi")
        rsi_txt = rsi if isinstance(rsi, str) else f"{rsi:.2f}"
        cycle = f"{row.get('active_band', '-')} {row.get('orders_in_cycle', 0)}/{row.get('max_orders_per_cycle', '-')}"
        if not row.get("armed", True):
            cycle += " (disarmed)"
        table.add_row(
            str(row.get("symbol")),
            str(row.get("candles", 0)),
            rsi_txt,
            f"{row.get('low'):g}/{row.get('high'):g}",
            f"{row.get('side', '-')} {row.get('qty_abs', 0):g}",
            cycle,
            "⏳" if row.get("inflight") else "-",
        )
    return table


def print_status(console: Console, rows: Iterable[Dict], executor_summary: Optional[Dict] = None) -> None:
    rows = list(rows)
    if not rows:
        console.print("[dim]no runners enabled[/dim]")
        return
    console.print(build_status_table(rows, executor_summary=executor_summary))
