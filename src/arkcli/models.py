"""Pydantic models for ark-cli."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class EntryOutput(str, Enum):
    """Which identifying fields a listing shows for each resource."""

    PATH = "path"
    ID = "id"
    BOTH = "both"
    LINK = "link"  # literal file contents instead of path/id


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Column(str, Enum):
    """Listing columns, declared in rendering order."""

    CONTENT = "content"
    PATH = "path"
    ID = "id"
    TAGS = "tags"
    SCORE = "score"
    DATETIME = "datetime"


class ResourceRecord(BaseModel):
    """What the index knows about one file."""

    id: str  # "<size>-<crc32>"
    modified: datetime  # UTC


class IndexedPath(BaseModel):
    """One persisted index line."""

    path: str  # Relative to the root, POSIX separators
    id: str
    modified: datetime


class IndexFile(BaseModel):
    """On-disk layout of <root>/.ark/index."""

    schema_version: int = 1
    entries: list[IndexedPath] = Field(default_factory=list)


class ListOptions(BaseModel):
    """Display options for one listing invocation."""

    entry: EntryOutput = EntryOutput.LINK
    tags: bool = False
    scores: bool = False
    modified: bool = False
    sort: SortOrder | None = None
    filter: str | None = None


class DisplayEntry(BaseModel):
    """Projection of one index record plus the requested enrichments.

    Fields that were not requested stay None; placeholders for empty
    tags or scores are applied only when rendering.
    """

    path: Path | None = None
    resource: str | None = None
    content: str | None = None
    tags: list[str] | None = None
    score: int | None = None
    modified: str | None = None  # Rendered, e.g. "Mar  5 14:02 2024"


class BackupRun(BaseModel):
    """Plan for one backup invocation."""

    timestamp_seconds: int
    backup_dir: Path
    valid_roots: list[Path] = Field(default_factory=list)
    invalid_roots: list[Path] = Field(default_factory=list)


class RootCopyResult(BaseModel):
    """Outcome of copying one root's storage area."""

    index: int
    root: Path
    destination: Path
    ok: bool
    error: str | None = None


class BackupReport(BaseModel):
    """What a backup invocation did."""

    status: Literal["created", "collision", "nothing"]
    backup_dir: Path
    invalid_roots: list[Path] = Field(default_factory=list)
    results: list[RootCopyResult] = Field(default_factory=list)

    @property
    def failed(self) -> list[RootCopyResult]:
        return [r for r in self.results if not r.ok]
