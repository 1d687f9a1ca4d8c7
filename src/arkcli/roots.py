"""Discovery of the roots listed in the roots config."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import get_roots_config_path
from .errors import ErrorCode, ResolutionError

log = logging.getLogger(__name__)


def parse_roots(text: str) -> list[Path]:
    """Parse roots config contents: one directory per line.

    Blank lines and lines starting with '#' are ignored. Order is kept and
    duplicates are dropped.
    """
    roots: list[Path] = []
    seen: set[Path] = set()
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        root = Path(line).expanduser()
        if root in seen:
            continue
        seen.add(root)
        roots.append(root)
    return roots


def discover_roots(roots_cfg: Path | None = None) -> list[Path]:
    """Read the configured roots, in config order.

    Raises:
        ResolutionError: If the roots config cannot be located or read.
    """
    config_path = get_roots_config_path(roots_cfg)
    log.debug("Reading roots config %s", config_path)

    try:
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ResolutionError(
            ErrorCode.ROOTS_CONFIG_UNREADABLE,
            f"Couldn't read roots config {config_path}",
            {"path": str(config_path), "reason": str(e)},
        ) from e

    return parse_roots(text)
