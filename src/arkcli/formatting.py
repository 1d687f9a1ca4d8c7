"""Output formatting helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from .models import Column

NO_TAGS = "NO_TAGS"
NO_SCORE = "NO_SCORE"

Row = Sequence[tuple[Column, str]]


def format_modified(moment: datetime) -> str:
    """Render a timestamp as e.g. "Mar  5 14:02 2024" (UTC).

    Equivalent to strftime("%b %e %H:%M %Y"); %e is not portable, so the
    space-padded day is built by hand.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return f"{moment:%b} {moment.day:>2} {moment:%H:%M %Y}"


def format_tags(tags: list[str]) -> str:
    return ", ".join(tags) if tags else NO_TAGS


def format_score(score: int) -> str:
    return str(score) if score else NO_SCORE


def column_widths(rows: Iterable[Row]) -> dict[Column, int]:
    """Widest rendered value per column, over every row that has it."""
    widths: dict[Column, int] = {}
    for row in rows:
        for column, text in row:
            widths[column] = max(widths.get(column, 0), len(text))
    return widths


def render_rows(rows: Iterable[Row], widths: dict[Column, int]) -> list[str]:
    """Left-justify every field to its column width, one space between columns."""
    lines = []
    for row in rows:
        lines.append(" ".join(text.ljust(widths.get(column, 0)) for column, text in row))
    return lines
