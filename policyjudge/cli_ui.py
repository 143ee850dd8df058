"""Shared CLI UI primitives for policyjudge.

Wraps Rich to provide a consistent visual identity.
CLI code should import from here, never from rich directly.
"""

from __future__ import annotations

from typing import Any, Optional

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

# ---------------------------------------------------------------------------
# Theme & singletons
# ---------------------------------------------------------------------------

THEME = Theme(
    {
        "info": "dim",
        "warning": "yellow",
        "error": "bold red",
        "success": "green",
        "accent": "cyan",
        "heading": "bold",
        "key": "bold",
        "dim": "dim",
    }
)

console = Console(theme=THEME, highlight=False)

# Final verdict -> Rich style
VERDICT_STYLES = {
    "ALLOW": "bold green",
    "WARN": "bold yellow",
    "REDACT": "bold magenta",
    "BLOCK": "bold red",
    "ERROR": "bold red",
    "PASS": "green",
    "FAIL": "red",
    "UNCERTAIN": "yellow",
}

# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------

_MAX_WIDTH = 100


def _panel_width() -> int:
    return min(console.width, _MAX_WIDTH)


def title(name: str, version: Optional[str] = None) -> None:
    """Print a bold name with an optional dim version suffix."""
    console.print()
    parts = [(name, "bold")]
    if version:
        parts.append((f"  v{version}", "dim"))
    console.print(Text.assemble(*parts))


def success(msg: str) -> None:
    """Green checkmark + message."""
    console.print(f"  [green]✓[/] {msg}")


def error(msg: str, hint: Optional[str] = None) -> None:
    """Red X + message, optional dim hint."""
    console.print(f"  [red]✗[/] {msg}", style="bold red")
    if hint:
        console.print(f"    [dim]{hint}[/]")


def warning(msg: str) -> None:
    """Yellow warning prefix + message."""
    console.print(f"  [yellow]![/] {msg}")


def dim(msg: str) -> None:
    console.print(f"  [dim]{msg}[/]")


def key_value(key: str, value: str, indent: int = 2) -> None:
    """Print 'key: value' with bold key."""
    pad = " " * indent
    console.print(f"{pad}[bold]{key}:[/] {value}")


def styled(value: str) -> str:
    """Wrap a verdict token in its Rich markup."""
    style = VERDICT_STYLES.get(value)
    return f"[{style}]{value}[/]" if style else value


def yaml_preview(content: str, title: str = "") -> None:
    """Panel with syntax-highlighted YAML, truncated to 30 lines."""
    lines = content.splitlines()
    preview = "\n".join(lines[:30])
    if len(lines) > 30:
        preview += "\n# ... truncated"

    syntax = Syntax(preview, "yaml", theme="ansi_dark", line_numbers=False)
    console.print()
    console.print(
        Panel(
            syntax,
            title=title or "YAML",
            title_align="left",
            border_style="dim",
            width=_panel_width(),
            padding=(0, 1),
        )
    )


def config_panel(title: str, items: dict[str, str]) -> None:
    """Panel showing a key-value summary."""
    body = "\n".join(f"[bold]{k}:[/] {v}" for k, v in items.items())

    console.print()
    console.print(
        Panel(
            body,
            title=title,
            title_align="left",
            border_style="dim",
            width=_panel_width(),
            padding=(0, 1),
        )
    )


def spinner(message: str) -> Any:
    """Context manager for a loading spinner. Use only during I/O."""
    return console.status(f"  {message}", spinner="dots")


def make_table(title: str, columns: list[str], rows: list[list[str]]) -> None:
    """Build and print a Rich table."""
    table = Table(
        title=title,
        title_style="bold",
        show_header=True,
        header_style="bold dim",
        border_style="dim",
        width=_panel_width(),
        show_lines=False,
        padding=(0, 1),
    )
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*row)
    console.print()
    console.print(table)
