"""Load whiteboard-mcp settings from an env file.

MCP hosts often launch the server without the user's shell environment, so
``get_config()`` first reads ``~/.config/whiteboard-mcp/.env`` (or the file
named by ``WHITEBOARD_ENV_FILE``). Only keys this server reads are injected:
``GEMINI_API_KEY`` and anything prefixed ``WHITEBOARD_`` or ``MLFLOW_``.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_ENV_PATH = Path.home() / ".config" / "whiteboard-mcp" / ".env"
ENV_FILE_VAR = "WHITEBOARD_ENV_FILE"

_SERVER_KEYS = frozenset({"GEMINI_API_KEY"})
_SERVER_PREFIXES = ("WHITEBOARD_", "MLFLOW_")

_LINE_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.*)$")


def is_server_key(key: str) -> bool:
    return key in _SERVER_KEYS or key.startswith(_SERVER_PREFIXES)


def env_file_path() -> Path:
    """``WHITEBOARD_ENV_FILE`` when set, else the per-user default."""
    override = os.environ.get(ENV_FILE_VAR, "").strip()
    return Path(override).expanduser() if override else DEFAULT_ENV_PATH


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def _is_unresolved(key: str, value: str | None) -> bool:
    """True for a missing or blank value, or a host placeholder like ``${GEMINI_API_KEY}``."""
    if value is None:
        return True
    value = value.strip()
    return not value or value in (f"${key}", f"${{{key}}}")


def parse_dotenv(path: Path) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines; ``#`` comments, ``export`` and quotes are allowed."""
    if not path.is_file():
        return {}
    result: dict[str, str] = {}
    for lineno, raw in enumerate(path.read_text().splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        match = _LINE_RE.match(line)
        if match is None:
            logger.debug("%s:%d: skipping unparseable line", path, lineno)
            continue
        key, value = match.groups()
        result[key] = _unquote(value.strip())
    return result


def load_dotenv(path: Path | None = None) -> dict[str, str]:
    """Copy server settings from *path* into ``os.environ`` where unset.

    Variables already set in the process win. Keys unrelated to this server
    are left alone.

    Returns:
        The variables actually injected.
    """
    path = path or env_file_path()
    injected: dict[str, str] = {}
    for key, value in parse_dotenv(path).items():
        if not is_server_key(key):
            logger.debug("Ignoring %s from %s", key, path)
            continue
        if _is_unresolved(key, os.environ.get(key)):
            os.environ[key] = value
            injected[key] = value
    return injected
