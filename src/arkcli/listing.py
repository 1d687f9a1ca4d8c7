"""Listing pipeline: index snapshot -> enriched, sorted, filtered, aligned rows.

Steps, in order:
    1. build_entries   - project each (path, record) onto a DisplayEntry,
                         looking up tags/scores and reading file contents
                         in link mode
    2. sort_entries    - by the rendered modification time
    3. filter_entries  - keep entries tagged with the filter value
    4. render_listing  - compute column widths and align the rows
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from .errors import ConfigurationError, ErrorCode
from .formatting import (
    Row,
    column_widths,
    format_modified,
    format_score,
    format_tags,
    render_rows,
)
from .index import provide_index
from .models import Column, DisplayEntry, EntryOutput, ListOptions, ResourceRecord, SortOrder
from .storage import AttributeReader

log = logging.getLogger(__name__)

_UNSIGNED_RE = re.compile(r"^\+?[0-9]+$")
_U32_MAX = 0xFFFFFFFF

AttributeLookup = Callable[[str], str | None]

# (explicit mode given, --entry-id, --entry-path) -> resolved mode.
# None in the explicit slot means "use the explicit mode as-is".
_ENTRY_OUTPUT_TABLE: dict[tuple[bool, bool, bool], EntryOutput | None] = {
    (True, False, False): None,
    (False, True, False): EntryOutput.ID,
    (False, False, True): EntryOutput.PATH,
    (False, True, True): EntryOutput.BOTH,
    (False, False, False): EntryOutput.LINK,
}


def resolve_entry_output(
    entry: EntryOutput | str | None,
    entry_id: bool = False,
    entry_path: bool = False,
) -> EntryOutput:
    """Resolve the output mode from --entry, --entry-id and --entry-path.

    Raises:
        ConfigurationError: If --entry is combined with either boolean flag.
    """
    key = (entry is not None, bool(entry_id), bool(entry_path))
    if key not in _ENTRY_OUTPUT_TABLE:
        raise ConfigurationError(
            ErrorCode.CONFLICTING_OPTIONS,
            "You can't use both entry and entry_id or entry_path",
        )
    resolved = _ENTRY_OUTPUT_TABLE[key]
    if resolved is None:
        return EntryOutput(entry)
    return resolved


def parse_tags(value: str | None) -> list[str]:
    """Split a stored tags value on commas, trimming each tag."""
    if value is None:
        return []
    return [tag.strip() for tag in value.split(",")]


def parse_score(value: str | None) -> int:
    """Parse a stored score as an unsigned 32-bit integer; 0 when unusable."""
    if value is None or not _UNSIGNED_RE.match(value):
        if value is not None:
            log.debug("Ignoring malformed score %r", value)
        return 0
    score = int(value)
    if score > _U32_MAX:
        log.debug("Ignoring out-of-range score %r", value)
        return 0
    return score


def _read_content(path: Path) -> str | None:
    # Literal contents: no newline translation
    try:
        with path.open(encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        log.debug("Dropping %s from listing: %s", path, e)
        return None


def build_entry(
    path: Path,
    record: ResourceRecord,
    options: ListOptions,
    tags_of: AttributeLookup,
    scores_of: AttributeLookup,
) -> DisplayEntry | None:
    """Project one index record. Returns None when link mode cannot read the file."""
    entry = DisplayEntry()

    if options.tags:
        entry.tags = parse_tags(tags_of(record.id))
    if options.scores:
        entry.score = parse_score(scores_of(record.id))
    if options.modified:
        entry.modified = format_modified(record.modified)

    if options.entry is EntryOutput.BOTH:
        entry.path = path
        entry.resource = record.id
    elif options.entry is EntryOutput.PATH:
        entry.path = path
    elif options.entry is EntryOutput.ID:
        entry.resource = record.id
    else:
        # Unreadable files drop the whole entry, not just the content column
        content = _read_content(path)
        if content is None:
            return None
        entry.content = content

    return entry


def build_entries(
    root: Path,
    path2id: Mapping[Path, ResourceRecord],
    options: ListOptions,
) -> list[DisplayEntry]:
    tags_of = AttributeReader(root, "tags")
    scores_of = AttributeReader(root, "scores")

    entries = []
    for path, record in path2id.items():
        entry = build_entry(path, record, options, tags_of, scores_of)
        if entry is not None:
            entries.append(entry)
    return entries


def _modified_key(entry: DisplayEntry) -> tuple[bool, str]:
    # Missing values order before any rendered timestamp
    return (entry.modified is not None, entry.modified or "")


def sort_entries(entries: list[DisplayEntry], order: SortOrder | None) -> list[DisplayEntry]:
    """Stable sort by the rendered modification time string.

    The comparison is lexical on the rendered text (month name first), not
    chronological.
    """
    if order is None:
        return list(entries)
    return sorted(entries, key=_modified_key, reverse=order is SortOrder.DESC)


def filter_entries(entries: Iterable[DisplayEntry], tag: str | None) -> list[DisplayEntry]:
    """Keep entries whose tags contain tag exactly.

    Entries listed without tags never match an active filter.
    """
    if tag is None:
        return list(entries)
    return [e for e in entries if e.tags is not None and tag in e.tags]


def entry_fields(entry: DisplayEntry) -> list[tuple[Column, str]]:
    """Rendered text of every present field, in column order."""
    fields: list[tuple[Column, str]] = []
    if entry.content is not None:
        fields.append((Column.CONTENT, entry.content))
    if entry.path is not None:
        fields.append((Column.PATH, str(entry.path)))
    if entry.resource is not None:
        fields.append((Column.ID, entry.resource))
    if entry.tags is not None:
        fields.append((Column.TAGS, format_tags(entry.tags)))
    if entry.score is not None:
        fields.append((Column.SCORE, format_score(entry.score)))
    if entry.modified is not None:
        fields.append((Column.DATETIME, entry.modified))
    return fields


def render_listing(entries: Iterable[DisplayEntry]) -> list[str]:
    rows: list[Row] = [entry_fields(e) for e in entries]
    return render_rows(rows, column_widths(rows))


def list_resources(root: Path, options: ListOptions) -> list[str]:
    """Run the whole pipeline for root and return the report lines.

    Raises:
        ResolutionError: If the index cannot be provided.
    """
    index = provide_index(root)
    with index.read() as path2id:
        entries = build_entries(root, path2id, options)

    entries = sort_entries(entries, options.sort)
    entries = filter_entries(entries, options.filter)
    return render_listing(entries)
