# fscrawl/cli/ui.py
"""
Rich console helpers shared by CLI commands.
"""

from __future__ import annotations

import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Detect if we can use Unicode safely (not Windows legacy console)
CAN_USE_UNICODE = sys.platform != "win32" or (sys.stdout.encoding or "").lower() in (
    "utf-8",
    "utf8",
)

CHECK = "✓" if CAN_USE_UNICODE else "[OK]"
CROSS = "✗" if CAN_USE_UNICODE else "[X]"
WARN = "⚠" if CAN_USE_UNICODE else "[!]"

console = Console()


class UI:
    """Styled output for CLI commands."""

    def header(self, title: str, subtitle: str = "") -> None:
        content = f"[bold]{title}[/bold]"
        if subtitle:
            content += f"\n[dim]{subtitle}[/dim]"
        console.print(Panel.fit(content, border_style="blue"))

    def success(self, msg: str) -> None:
        console.print(f"[green]{CHECK}[/green] {msg}")

    def error(self, msg: str) -> None:
        console.print(f"[red]{CROSS}[/red] {msg}")

    def warning(self, msg: str) -> None:
        console.print(f"[yellow]{WARN}[/yellow] {msg}")

    def info(self, msg: str) -> None:
        console.print(msg)

    def table(self, title: str, columns: list[str], rows: list[list[str]]) -> None:
        table = Table(title=title, show_header=True, header_style="bold cyan")
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*row)
        console.print(table)


ui = UI()

__all__ = ["CHECK", "CROSS", "WARN", "console", "UI", "ui"]
