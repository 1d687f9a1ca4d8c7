"""Resource identity and the per-root index.

The index maps every regular file under a root to a ResourceRecord. Ids are
"<size>-<crc32>" and are cached in <root>/.ark/index so that unchanged files
are not re-read on every invocation.
"""

from __future__ import annotations

import logging
import re
import tempfile
import threading
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from .config import ARK_FOLDER, INDEX_FILENAME
from .errors import ArkError, ErrorCode, ResolutionError
from .models import IndexedPath, IndexFile, ResourceRecord

log = logging.getLogger(__name__)

_RESOURCE_ID_RE = re.compile(r"^(\d+)-(\d+)$")
_CHUNK_SIZE = 1 << 16


def compute_resource_id(path: Path) -> str:
    """Compute the resource id of a file from its size and CRC-32."""
    crc = 0
    size = 0
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            crc = zlib.crc32(chunk, crc)
            size += len(chunk)
    return f"{size}-{crc}"


def parse_resource_id(text: str) -> str:
    """Validate a resource id given on the command line.

    Raises:
        ArkError: If text is not of the form "<size>-<crc32>".
    """
    value = text.strip()
    match = _RESOURCE_ID_RE.match(value)
    if not match or int(match.group(2)) > 0xFFFFFFFF:
        raise ArkError(
            ErrorCode.INVALID_RESOURCE_ID,
            f"Could not parse id: {text!r}",
            {"expected": "<size>-<crc32>"},
        )
    return value


def _file_modified(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _walk_files(root: Path) -> Iterator[Path]:
    """Yield regular files under root, skipping hidden entries and the storage area."""
    for child in sorted(root.iterdir()):
        if child.name.startswith(".") or child.name == ARK_FOLDER:
            continue
        if child.is_symlink():
            continue
        if child.is_dir():
            yield from _walk_files(child)
        elif child.is_file():
            yield child


def _index_path(root: Path) -> Path:
    return root / ARK_FOLDER / INDEX_FILENAME


def _load_cached(root: Path) -> dict[str, IndexedPath]:
    path = _index_path(root)
    if not path.exists():
        return {}

    try:
        index_file = IndexFile.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError) as e:
        log.debug("Ignoring unreadable index %s: %s", path, e)
        return {}

    return {item.path: item for item in index_file.entries}


def _save(root: Path, entries: dict[str, IndexedPath]) -> None:
    """Persist the index using a temp file + rename."""
    path = _index_path(root)
    payload = IndexFile(entries=[entries[key] for key in sorted(entries)])

    with tempfile.NamedTemporaryFile(
        mode="w", dir=path.parent, delete=False, suffix=".tmp", encoding="utf-8"
    ) as f:
        f.write(payload.model_dump_json(indent=2))
        temp_path = Path(f.name)

    temp_path.replace(path)


class ResourceIndex:
    """In-memory index of one root.

    Use read() to access the path -> record mapping under the index lock.
    """

    def __init__(self, root: Path, path2id: dict[Path, ResourceRecord]):
        self.root = root
        self._path2id = path2id
        self._lock = threading.RLock()

    @contextmanager
    def read(self) -> Iterator[dict[Path, ResourceRecord]]:
        with self._lock:
            yield self._path2id

    def __len__(self) -> int:
        return len(self._path2id)

    def collisions(self) -> dict[str, list[Path]]:
        """Ids shared by more than one path."""
        by_id: dict[str, list[Path]] = {}
        with self.read() as path2id:
            for path, record in path2id.items():
                by_id.setdefault(record.id, []).append(path)
        return {rid: sorted(paths) for rid, paths in sorted(by_id.items()) if len(paths) > 1}


def build_index(root: Path) -> ResourceIndex:
    """Scan root and build its index, reusing cached ids for unchanged files."""
    cached = _load_cached(root)
    refreshed: dict[str, IndexedPath] = {}
    path2id: dict[Path, ResourceRecord] = {}
    reused = 0

    for file_path in _walk_files(root):
        key = file_path.relative_to(root).as_posix()
        try:
            modified = _file_modified(file_path)
            hit = cached.get(key)
            if hit is not None and hit.modified == modified:
                resource_id = hit.id
                reused += 1
            else:
                resource_id = compute_resource_id(file_path)
        except OSError as e:
            log.debug("Skipping unreadable file %s: %s", file_path, e)
            continue

        refreshed[key] = IndexedPath(path=key, id=resource_id, modified=modified)
        path2id[file_path] = ResourceRecord(id=resource_id, modified=modified)

    log.debug("Indexed %d files under %s (%d from cache)", len(path2id), root, reused)

    if (root / ARK_FOLDER).is_dir():
        try:
            _save(root, refreshed)
        except OSError as e:
            log.warning("Could not persist index for %s: %s", root, e)

    return ResourceIndex(root, path2id)


def provide_index(root: Path) -> ResourceIndex:
    """Provide the index of a root.

    Raises:
        ResolutionError: If the root cannot be scanned.
    """
    try:
        return build_index(root)
    except OSError as e:
        raise ResolutionError(
            ErrorCode.INDEX_UNAVAILABLE,
            "Could not provide index",
            {"root": str(root), "reason": str(e)},
        ) from e
