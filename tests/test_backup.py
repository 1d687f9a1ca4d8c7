"""Tests for backup orchestration: partitioning, manifest, copies, collision guard."""

from pathlib import Path

import pytest

from arkcli import backup as backup_module
from arkcli.backup import COLLISION_MESSAGE, perform_backup, plan_backup
from arkcli.errors import ArkError, ErrorCode, ResolutionError

from conftest import create_resource

TS = 1_712_345_678


def _make_root(base: Path, name: str, with_storage: bool = True) -> Path:
    root = base / name
    root.mkdir(parents=True)
    create_resource(root, "file.txt", f"content of {name}")
    if with_storage:
        create_resource(root, ".ark/user/tags", f"version: 2\n1-1:{name}\n")
        create_resource(root, ".ark/cache/metadata/1-1/1", "{}")
    return root


def _write_roots_cfg(path: Path, roots: list[Path]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(f"{r}\n" for r in roots))
    return path


class Recorder:
    def __init__(self):
        self.lines: list[str] = []

    def __call__(self, message: str) -> None:
        self.lines.append(message)


@pytest.fixture
def backups_root(tmp_path: Path) -> Path:
    return tmp_path / "backups"


class TestPlanBackup:
    def test_partitions_by_storage_presence(self, tmp_path, backups_root):
        a = _make_root(tmp_path, "a")
        b = _make_root(tmp_path, "b", with_storage=False)
        c = _make_root(tmp_path, "c")

        run = plan_backup([a, b, c], backups_root, TS)

        assert run.valid_roots == [a, c]
        assert run.invalid_roots == [b]
        assert run.backup_dir == backups_root / str(TS)


class TestPerformBackup:
    def test_example_one_valid_one_invalid(self, tmp_path, backups_root):
        a = _make_root(tmp_path, "a")
        b = _make_root(tmp_path, "b", with_storage=False)
        cfg = _write_roots_cfg(tmp_path / "roots", [a, b])
        echo = Recorder()

        report = perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        backup_dir = backups_root / str(TS)
        assert report.status == "created"
        assert report.backup_dir == backup_dir
        assert report.invalid_roots == [b]
        assert (backup_dir / "roots").read_text() == f"{a}\n"
        assert (backup_dir / "0" / "user" / "tags").read_text() == "version: 2\n1-1:a\n"
        assert (backup_dir / "0" / "cache" / "metadata" / "1-1" / "1").read_text() == "{}"
        assert not (backup_dir / "1").exists()
        assert "These folders don't contain any storages:" in echo.lines
        assert f"\t{b}" in echo.lines
        assert echo.lines[-1] == f"Backup created:\n\t{backup_dir}"

    def test_copies_directly_into_numbered_dirs(self, tmp_path, backups_root):
        roots = [_make_root(tmp_path, name) for name in ("x", "y")]
        cfg = _write_roots_cfg(tmp_path / "roots", roots)

        perform_backup(cfg, backups_root, clock=lambda: TS)

        backup_dir = backups_root / str(TS)
        assert (backup_dir / "0" / "user" / "tags").read_text().endswith("1-1:x\n")
        assert (backup_dir / "1" / "user" / "tags").read_text().endswith("1-1:y\n")
        assert not (backup_dir / "0" / ".ark").exists()
        assert not (backup_dir / "0" / "file.txt").exists()

    def test_second_run_in_same_second_is_noop(self, tmp_path, backups_root):
        a = _make_root(tmp_path, "a")
        cfg = _write_roots_cfg(tmp_path / "roots", [a])
        perform_backup(cfg, backups_root, clock=lambda: TS)
        backup_dir = backups_root / str(TS)
        before = sorted(p.relative_to(backups_root) for p in backups_root.rglob("*"))

        # Change the source so an overwrite would be visible
        (a / ".ark" / "user" / "tags").write_text("version: 2\n1-1:changed\n")
        echo = Recorder()
        report = perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        after = sorted(p.relative_to(backups_root) for p in backups_root.rglob("*"))
        assert report.status == "collision"
        assert echo.lines == [COLLISION_MESSAGE]
        assert before == after
        assert (backup_dir / "0" / "user" / "tags").read_text() == "version: 2\n1-1:a\n"

    def test_collision_checked_before_reading_roots(self, tmp_path, backups_root):
        (backups_root / str(TS)).mkdir(parents=True)

        # The roots config does not exist; the guard must trigger first
        report = perform_backup(tmp_path / "missing", backups_root, clock=lambda: TS)

        assert report.status == "collision"

    def test_partial_failure_continues(self, tmp_path, backups_root, monkeypatch):
        roots = [_make_root(tmp_path, name) for name in ("r0", "r1", "r2")]
        cfg = _write_roots_cfg(tmp_path / "roots", roots)
        real_copy = backup_module.copy_storage

        def flaky_copy(root: Path, destination: Path) -> None:
            if root == roots[1]:
                raise PermissionError(13, "Permission denied", str(destination))
            real_copy(root, destination)

        monkeypatch.setattr(backup_module, "copy_storage", flaky_copy)
        echo = Recorder()

        report = perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        backup_dir = backups_root / str(TS)
        assert report.status == "created"
        assert (backup_dir / "roots").read_text().splitlines() == [str(r) for r in roots]
        assert (backup_dir / "0" / "user" / "tags").read_text().endswith("1-1:r0\n")
        assert (backup_dir / "2" / "user" / "tags").read_text().endswith("1-1:r2\n")
        assert not (backup_dir / "1").exists()
        assert [r.ok for r in report.results] == [True, False, True]
        assert [r.index for r in report.failed] == [1]
        assert any(line.startswith("\t\tFailed to copy storages!") for line in echo.lines)
        assert echo.lines[-1] == f"Backup created:\n\t{backup_dir}"

    def test_copy_error_from_copytree_continues(self, tmp_path, backups_root):
        roots = [_make_root(tmp_path, name) for name in ("r0", "r1", "r2")]
        # Broken link inside the storage area makes copytree raise shutil.Error
        (roots[1] / ".ark" / "broken").symlink_to(tmp_path / "does-not-exist")
        cfg = _write_roots_cfg(tmp_path / "roots", roots)
        echo = Recorder()

        report = perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        backup_dir = backups_root / str(TS)
        assert report.status == "created"
        assert (backup_dir / "roots").read_text().splitlines() == [str(r) for r in roots]
        assert (backup_dir / "0" / "user" / "tags").read_text().endswith("1-1:r0\n")
        assert (backup_dir / "2" / "user" / "tags").read_text().endswith("1-1:r2\n")
        assert [r.index for r in report.failed] == [1]
        assert report.failed[0].error
        failure = echo.lines.index(f"\tRoot {roots[1]}") + 1
        assert echo.lines[failure].startswith("\t\tFailed to copy storages!\n\t\t")
        assert echo.lines[-1] == f"Backup created:\n\t{backup_dir}"

    def test_progress_lines_in_discovery_order(self, tmp_path, backups_root):
        roots = [_make_root(tmp_path, name) for name in ("m", "k", "z")]
        cfg = _write_roots_cfg(tmp_path / "roots", roots)
        echo = Recorder()

        perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        assert [line for line in echo.lines if line.startswith("\tRoot ")] == [
            f"\tRoot {r}" for r in roots
        ]

    def test_nothing_to_backup_creates_nothing(self, tmp_path, backups_root):
        b = _make_root(tmp_path, "b", with_storage=False)
        cfg = _write_roots_cfg(tmp_path / "roots", [b])
        echo = Recorder()

        report = perform_backup(cfg, backups_root, clock=lambda: TS, echo=echo)

        assert report.status == "nothing"
        assert not backups_root.exists()
        assert echo.lines[-1] == "Nothing to backup. Bye!"

    def test_missing_roots_config_is_fatal(self, tmp_path, backups_root):
        with pytest.raises(ResolutionError) as exc:
            perform_backup(tmp_path / "nope", backups_root, clock=lambda: TS)

        assert exc.value.code is ErrorCode.ROOTS_CONFIG_UNREADABLE
        assert not backups_root.exists()

    def test_defaults_to_home_locations(self, tmp_path, isolated_home):
        a = _make_root(tmp_path, "a")
        _write_roots_cfg(isolated_home / ".config" / "ark" / "roots", [a])

        report = perform_backup(clock=lambda: TS)

        assert report.backup_dir == isolated_home / ".ark-backups" / str(TS)
        assert (report.backup_dir / "roots").exists()

    def test_manifest_failure_is_fatal(self, tmp_path, backups_root, monkeypatch):
        a = _make_root(tmp_path, "a")
        cfg = _write_roots_cfg(tmp_path / "roots", [a])
        copied = []

        def broken_manifest(backup_dir, roots):
            raise ArkError(ErrorCode.BACKUP_FAILED, "Couldn't backup roots config!")

        monkeypatch.setattr(backup_module, "write_manifest", broken_manifest)
        monkeypatch.setattr(backup_module, "copy_storage", lambda r, d: copied.append(r))

        with pytest.raises(ArkError) as exc:
            perform_backup(cfg, backups_root, clock=lambda: TS)

        assert exc.value.code is ErrorCode.BACKUP_FAILED
        assert copied == []
