"""Shared test fixtures for the ark-cli test suite.

Design:
- isolated_home: every test gets its own HOME so nothing touches ~/.ark
- tmp_root: a root with a few files and an (empty) storage area
- reset_logging: every test starts with an unconfigured arkcli logger
- runner / cli_invoke: CliRunner helpers
"""

import logging
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from arkcli.cli import cli
from arkcli.storage import Storage, StorageType


# ─────────────────────────────────────────────────────────────────────────────
# Core Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point HOME at a temp directory and clear ark-cli env overrides."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    for var in ("ARK_BACKUPS_DIR", "ARK_ROOTS_CFG", "ARK_QUIET", "ARK_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI attached, so each invocation logs to its own stderr."""
    logger = logging.getLogger("arkcli")
    saved = (logger.handlers[:], logger.level, logger.propagate)
    logger.handlers.clear()
    yield logger
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def tmp_root(tmp_path: Path) -> Path:
    """Create a root with three files and a storage area.

    Creates:
    - alpha.txt       "alpha"
    - notes/bravo.txt "bravo!"
    - notes/c.md      "charlie charlie"
    - .ark/
    """
    root = tmp_path / "root"
    root.mkdir()
    (root / ".ark").mkdir()

    create_resource(root, "alpha.txt", "alpha", mtime=1_700_000_000)
    create_resource(root, "notes/bravo.txt", "bravo!", mtime=1_710_000_000)
    create_resource(root, "notes/c.md", "charlie charlie", mtime=1_720_000_000)
    return root.resolve()


@pytest.fixture
def cli_invoke(runner: CliRunner):
    """Helper for invoking the CLI.

    Usage:
        def test_list(cli_invoke, tmp_root):
            result = cli_invoke(["list", "--root-dir", str(tmp_root)])
            assert result.exit_code == 0
    """
    def _invoke(args: list[str], input: str | None = None, catch_exceptions: bool = False):
        return runner.invoke(cli, args, input=input, catch_exceptions=catch_exceptions)
    return _invoke


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions (for test code, not fixtures)
# ─────────────────────────────────────────────────────────────────────────────


def create_resource(root: Path, path: str, content: str, mtime: int | None = None) -> Path:
    """Write a file under root, optionally pinning its modification time."""
    file_path = root / path
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(file_path, (mtime, mtime))
    return file_path


def set_attribute(root: Path, storage: str, resource_id: str, value: str) -> None:
    """Store an attribute value (tags, scores, ...) for a resource."""
    path = root / ".ark" / "user" / storage
    Storage(path, StorageType.FILE).insert(resource_id, value)


def resource_id_of(root: Path, path: str) -> str:
    from arkcli.index import compute_resource_id

    return compute_resource_id(root / path)
