"""Backup of every configured root's storage area.

Layout produced under the backups base:

    <base>/<timestamp>/roots    # valid roots, one per line
    <base>/<timestamp>/0/...    # copy of the first valid root's storage area
    <base>/<timestamp>/1/...

The directory name is the only uniqueness key, so a second run within the
same second is a no-op.
"""

from __future__ import annotations

import logging
import shutil
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from .config import ROOTS_CFG_FILENAME, get_backups_root, storage_area
from .errors import ArkError, ErrorCode
from .models import BackupReport, BackupRun, RootCopyResult
from .roots import discover_roots
from .storage import storages_exists

log = logging.getLogger(__name__)

Echo = Callable[[str], None]

COLLISION_MESSAGE = "Wait at least 1 second, please!"


def _silent(message: str) -> None:
    pass


def plan_backup(roots: Iterable[Path], backups_root: Path, timestamp_seconds: int) -> BackupRun:
    """Partition roots into those with and without a storage area."""
    valid: list[Path] = []
    invalid: list[Path] = []
    for root in roots:
        (valid if storages_exists(root) else invalid).append(root)

    return BackupRun(
        timestamp_seconds=timestamp_seconds,
        backup_dir=backups_root / str(timestamp_seconds),
        valid_roots=valid,
        invalid_roots=invalid,
    )


def write_manifest(backup_dir: Path, roots: Iterable[Path]) -> Path:
    """Write the valid roots, one per line.

    Raises:
        ArkError: If the manifest cannot be written.
    """
    manifest = backup_dir / ROOTS_CFG_FILENAME
    try:
        with manifest.open("w", encoding="utf-8") as f:
            for root in roots:
                f.write(f"{root}\n")
    except OSError as e:
        raise ArkError(
            ErrorCode.BACKUP_FAILED,
            "Couldn't backup roots config!",
            {"path": str(manifest), "reason": str(e)},
        ) from e
    return manifest


def copy_storage(root: Path, destination: Path) -> None:
    """Copy the contents of root's storage area into destination, overwriting."""
    shutil.copytree(storage_area(root), destination, dirs_exist_ok=True)


def copy_roots(run: BackupRun, echo: Echo = _silent) -> list[RootCopyResult]:
    """Copy every valid root in order; a failed copy does not stop the rest."""
    results: list[RootCopyResult] = []
    for i, root in enumerate(run.valid_roots):
        echo(f"\tRoot {root}")
        destination = run.backup_dir / str(i)
        try:
            copy_storage(root, destination)
        except OSError as e:
            log.warning("Failed to copy storages of %s: %s", root, e)
            echo(f"\t\tFailed to copy storages!\n\t\t{e}")
            results.append(
                RootCopyResult(index=i, root=root, destination=destination, ok=False, error=str(e))
            )
            continue
        results.append(RootCopyResult(index=i, root=root, destination=destination, ok=True))
    return results


def perform_backup(
    roots_cfg: Path | None = None,
    backups_root: Path | None = None,
    clock: Callable[[], float] | None = None,
    echo: Echo = _silent,
) -> BackupReport:
    """Back up every configured root that has a storage area.

    Raises:
        ResolutionError: If the home directory or roots config is unavailable.
        ArkError: If the backup directory or manifest cannot be created.
    """
    timestamp_seconds = int((clock or time.time)())
    base = backups_root or get_backups_root()
    backup_dir = base / str(timestamp_seconds)

    if backup_dir.is_dir():
        echo(COLLISION_MESSAGE)
        return BackupReport(status="collision", backup_dir=backup_dir)

    echo("Preparing backup:")
    run = plan_backup(discover_roots(roots_cfg), base, timestamp_seconds)

    if run.invalid_roots:
        echo("These folders don't contain any storages:")
        for root in run.invalid_roots:
            echo(f"\t{root}")

    if not run.valid_roots:
        echo("Nothing to backup. Bye!")
        return BackupReport(
            status="nothing", backup_dir=backup_dir, invalid_roots=run.invalid_roots
        )

    try:
        base.mkdir(parents=True, exist_ok=True)
        backup_dir.mkdir()
    except FileExistsError:
        # Another run claimed this second between the check and now
        echo(COLLISION_MESSAGE)
        return BackupReport(status="collision", backup_dir=backup_dir)
    except OSError as e:
        raise ArkError(
            ErrorCode.BACKUP_FAILED,
            "Couldn't create backup directory!",
            {"path": str(backup_dir), "reason": str(e)},
        ) from e

    write_manifest(backup_dir, run.valid_roots)

    echo("Performing backups:")
    results = copy_roots(run, echo)

    failed = sum(1 for r in results if not r.ok)
    log.info("Backup %s: %d roots copied, %d failed", backup_dir, len(results) - failed, failed)

    echo(f"Backup created:\n\t{backup_dir}")
    return BackupReport(
        status="created",
        backup_dir=backup_dir,
        invalid_roots=run.invalid_roots,
        results=results,
    )
