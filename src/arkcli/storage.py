"""Attribute storages kept inside a root's storage area.

Two layouts are supported:

File storage - one UTF-8 text file:

    version: 2
    <id>:<value>
    ...

Folder storage - one directory per resource, one file per version:

    <storage>/<id>/1
    <storage>/<id>/2
"""

from __future__ import annotations

import json
import logging
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any

from .config import storage_area
from .errors import ErrorCode, ResolutionError, StorageError

log = logging.getLogger(__name__)

FILE_STORAGE_HEADER = "version: 2"


class StorageType(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class Format(str, Enum):
    RAW = "raw"
    JSON = "json"


# Well-known storages, relative to the storage area
KNOWN_STORAGES: dict[str, tuple[str, StorageType]] = {
    "tags": ("user/tags", StorageType.FILE),
    "scores": ("user/scores", StorageType.FILE),
    "properties": ("user/properties", StorageType.FOLDER),
    "metadata": ("cache/metadata", StorageType.FOLDER),
    "previews": ("cache/previews", StorageType.FOLDER),
    "thumbnails": ("cache/thumbnails", StorageType.FOLDER),
}


def storages_exists(root: Path) -> bool:
    """Whether root contains a storage area."""
    return storage_area(root).is_dir()


def translate_storage(root: Path, storage: str) -> tuple[Path, StorageType | None] | None:
    """Resolve a storage name or path to its location and known type.

    Returns None when nothing matching exists.
    """
    known = KNOWN_STORAGES.get(storage.lower())
    if known is not None:
        relative, storage_type = known
        return storage_area(root) / relative, storage_type

    candidate = Path(storage).expanduser()
    if candidate.exists():
        return candidate, None

    inside = storage_area(root) / storage
    if inside.exists():
        return inside, None

    return None


def _validate_json(content: str) -> Any:
    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise StorageError(f"Content is not valid JSON: {e}") from e


def _merge(existing: str | None, content: str, fmt: Format) -> str:
    """Combine an existing value with appended content."""
    if fmt is Format.RAW:
        if not existing:
            return content
        return f"{existing},{content}"

    new = _validate_json(content)
    if existing is None:
        return json.dumps(new, separators=(",", ":"))

    old = _validate_json(existing)
    if isinstance(old, dict) and isinstance(new, dict):
        merged: Any = {**old, **new}
    elif isinstance(old, list):
        merged = old + (new if isinstance(new, list) else [new])
    else:
        raise StorageError("Can only append JSON to an existing JSON object or array")
    return json.dumps(merged, separators=(",", ":"))


def _normalize(content: str, fmt: Format) -> str:
    if fmt is Format.JSON:
        return json.dumps(_validate_json(content), separators=(",", ":"))
    return content


class Storage:
    """A versioned key/value storage addressed by resource id."""

    def __init__(self, path: Path, storage_type: StorageType = StorageType.FILE):
        self.path = Path(path)
        self.storage_type = storage_type
        self._values: dict[str, str] | None = None

    def __repr__(self) -> str:
        return f"Storage({str(self.path)!r}, {self.storage_type.value})"

    # ─────────────────────────────────────────────────────────────────────
    # File storage
    # ─────────────────────────────────────────────────────────────────────

    def _load_file(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Could not load storage {self.path}: {e}") from e

        if lines and lines[0].strip().startswith("version:"):
            lines = lines[1:]

        values: dict[str, str] = {}
        for number, line in enumerate(lines, start=2):
            if not line.strip():
                continue
            key, sep, value = line.partition(":")
            if not sep:
                log.debug("Skipping malformed line %d in %s", number, self.path)
                continue
            values[key.strip()] = value
        return values

    def _save_file(self, values: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w", dir=self.path.parent, delete=False, suffix=".tmp", encoding="utf-8"
            ) as f:
                f.write(FILE_STORAGE_HEADER + "\n")
                for key in sorted(values):
                    f.write(f"{key}:{values[key]}\n")
                temp_path = Path(f.name)
            temp_path.replace(self.path)
        except OSError as e:
            raise StorageError(f"Could not write storage {self.path}: {e}") from e

    # ─────────────────────────────────────────────────────────────────────
    # Folder storage
    # ─────────────────────────────────────────────────────────────────────

    def _versions(self, resource_id: str) -> list[int]:
        entry_dir = self.path / resource_id
        if not entry_dir.is_dir():
            return []
        return sorted(
            int(p.name) for p in entry_dir.iterdir() if p.name.isascii() and p.name.isdigit()
        )

    def _read_version(self, resource_id: str, version: int) -> str:
        try:
            return (self.path / resource_id / str(version)).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                f"Could not read version {version} of {resource_id}: {e}"
            ) from e

    def _write_version(self, resource_id: str, content: str) -> int:
        versions = self._versions(resource_id)
        version = (versions[-1] + 1) if versions else 1
        try:
            entry_dir = self.path / resource_id
            entry_dir.mkdir(parents=True, exist_ok=True)
            (entry_dir / str(version)).write_text(content, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Could not write {resource_id} to {self.path}: {e}") from e
        return version

    # ─────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────

    def load(self) -> None:
        """Load (or reload) the storage contents."""
        if self.storage_type is StorageType.FILE:
            self._file_values(reload=True)
        elif self.path.exists() and not self.path.is_dir():
            raise StorageError(f"Folder storage {self.path} is not a directory")

    def _file_values(self, reload: bool = False) -> dict[str, str]:
        if self._values is None or reload:
            self._values = self._load_file()
        return self._values

    def read(self, resource_id: str, version: int | None = None) -> str | None:
        """Read the value stored for resource_id, or None if absent.

        version selects a specific folder-storage version; file storages are
        not versioned and only accept None or 1.
        """
        if self.storage_type is StorageType.FILE:
            if version not in (None, 1):
                raise StorageError("File storages are not versioned")
            return self._file_values().get(resource_id)

        versions = self._versions(resource_id)
        if not versions:
            return None
        selected = versions[-1] if version is None else version
        if selected not in versions:
            return None
        return self._read_version(resource_id, selected)

    def insert(self, resource_id: str, content: str, fmt: Format = Format.RAW) -> None:
        """Store content for resource_id, replacing the current value."""
        self._write(resource_id, _normalize(content, fmt))

    def append(self, resource_id: str, content: str, fmt: Format = Format.RAW) -> None:
        """Append content to the current value of resource_id."""
        self._write(resource_id, _merge(self.read(resource_id), content, fmt))

    def _write(self, resource_id: str, value: str) -> None:
        if self.storage_type is StorageType.FOLDER:
            version = self._write_version(resource_id, value)
            log.debug("Wrote %s version %d to %s", resource_id, version, self.path)
            return

        if "\n" in value or "\r" in value:
            raise StorageError("File storage values must be a single line")
        values = dict(self._file_values())
        values[resource_id] = value
        self._save_file(values)
        self._values = values

    def list(self, versions: bool = False) -> str:
        """Render the storage contents, one resource per line."""
        lines: list[str] = []

        if self.storage_type is StorageType.FILE:
            values = self._file_values()
            for key in sorted(values):
                lines.append(f"{key}: {values[key]}")
            return "\n".join(lines)

        if not self.path.is_dir():
            return ""
        for entry_dir in sorted(p for p in self.path.iterdir() if p.is_dir()):
            resource_id = entry_dir.name
            available = self._versions(resource_id)
            if not available:
                continue
            if versions:
                for version in available:
                    value = self._read_version(resource_id, version)
                    lines.append(f"{resource_id} {version}: {value}")
            else:
                value = self._read_version(resource_id, available[-1])
                lines.append(f"{resource_id}: {value}")
        return "\n".join(lines)


def open_storage(
    root: Path,
    storage: str,
    storage_type: StorageType | None = None,
) -> Storage:
    """Open a storage by name, preferring its well-known type.

    Raises:
        ResolutionError: If no such storage exists under root.
    """
    translated = translate_storage(root, storage)
    if translated is None:
        raise ResolutionError(
            ErrorCode.STORAGE_NOT_FOUND,
            "Could not find storage folder",
            {"root": str(root), "storage": storage},
        )
    path, known_type = translated
    return Storage(path, known_type or storage_type or StorageType.FILE)


class AttributeReader:
    """Reads one attribute storage of a root, loading it at most once.

    Any failure reads as absence.
    """

    def __init__(self, root: Path, storage: str):
        self.root = root
        self.storage = storage
        self._opened: Storage | None = None

    def __call__(self, resource_id: str, version: int | None = None) -> str | None:
        try:
            if self._opened is None:
                opened = open_storage(self.root, self.storage)
                opened.load()
                self._opened = opened
            return self._opened.read(resource_id, version)
        except (ResolutionError, StorageError) as e:
            log.debug("No %s value for %s under %s: %s", self.storage, resource_id, self.root, e)
            return None


def read_storage_value(
    root: Path,
    storage: str,
    resource_id: str,
    version: int | None = None,
) -> str | None:
    """Look up one attribute value; any failure reads as absence."""
    return AttributeReader(root, storage)(resource_id, version)
