"""Build information and locations of log and configuration files."""

from __future__ import annotations

import getpass
import os
import sys
import tempfile
from pathlib import Path
from typing import Sequence

import platformdirs

VERSION = "undefined"
COMMIT = "undefined"
DATE = "undefined"
CHECK_FOR_UPDATES = "false"
LICENSE = "Apache-2.0"

PC_CONFIG_ENV = "PROC_COMP_CONFIG"
LOG_PATH_ENV_VAR_NAME = "PC_LOG_FILE"
LOG_FILE_FLAGS = os.O_CREAT | os.O_APPEND | os.O_WRONLY | os.O_TRUNC
LOG_FILE_MODE = 0o600

_SHORTCUT_FILES = ("shortcuts.yaml", "shortcuts.yml")
_CLIENT_COMMANDS = frozenset({"process", "attach"})


def _must_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError) as exc:
        raise RuntimeError("Failed to retrieve user info") from exc


def is_client(argv: Sequence[str] | None = None) -> bool:
    """True if the command line runs a client command."""
    args = sys.argv if argv is None else argv
    return any(arg in _CLIENT_COMMANDS for arg in args)


def get_log_file_path(argv: Sequence[str] | None = None) -> str:
    """The log file from ``PC_LOG_FILE``, or a per-user file in the temp dir."""
    value = os.environ.get(LOG_PATH_ENV_VAR_NAME)
    if value is not None:
        return value
    mode = "-client" if is_client(argv) else ""
    return os.path.join(
        tempfile.gettempdir(), f"process-compose-{_must_user()}{mode}.log"
    )


def proc_comp_home() -> str:
    """The configuration directory, creating its parent when needed."""
    env = os.environ.get(PC_CONFIG_ENV)
    if env:
        return env
    base = Path(platformdirs.user_config_dir())
    try:
        base.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError(
            "Unable to create configuration directory for process compose"
        ) from exc
    return str(base / "process-compose")


def get_shortcuts_path() -> str:
    """Path of the first existing shortcuts file, or an empty string."""
    home = proc_comp_home()
    for name in _SHORTCUT_FILES:
        path = os.path.join(home, name)
        if os.path.exists(path):
            return path
    return ""