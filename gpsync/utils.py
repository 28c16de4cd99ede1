"""This module contains common utils"""

# pylint: disable=broad-exception-caught

import os

from fake_useragent import UserAgent
from tqdm import tqdm

FALLBACK_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_TRUTHY = {"1", "true", "yes", "on"}

# Debug flag controlled by env var GPSYNC_DEBUG or --debug
DEBUG = os.environ.get("GPSYNC_DEBUG", "").lower() in _TRUTHY


def get_random_user_agent() -> str:
    """
    Return a random browser user agent string; fallback to a fixed desktop
    Chrome UA if the generator fails.
    """
    try:
        return UserAgent().random
    except Exception:
        return FALLBACK_USER_AGENT


def set_debug(enabled: bool) -> None:
    """Toggle debug output at runtime."""
    global DEBUG  # pylint: disable=global-statement
    DEBUG = bool(enabled)


def dbg(msg: str) -> None:
    """
    Print a debug message when the DEBUG flag is enabled.

    Args:
        msg (str): Message to print when debug logging is active.
    """
    if DEBUG:
        tqdm.write(f"[debug] {msg}")


def info(msg: str) -> None:
    """Print an informational line without breaking active progress bars."""
    tqdm.write(f"[*] {msg}")


def done(msg: str) -> None:
    """Print a summary line."""
    tqdm.write(f"[^] {msg}")


def warn(msg: str) -> None:
    """Print a warning line."""
    tqdm.write(f"[~] {msg}")


def error(msg: str) -> None:
    """Print an error line."""
    tqdm.write(f"[!] {msg}")


def env_flag(name: str, default: bool | None = None) -> bool | None:
    """
    Read a boolean environment variable.

    Returns `default` when the variable is unset or blank.
    """
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def env_int(name: str, default: int | None = None) -> int | None:
    """Read an integer environment variable; blank or invalid yields `default`."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def plural(count: int, word: str) -> str:
    """Return `count word` with a trailing `s` when count is not 1."""
    return f"{count} {word}{'s' if count != 1 else ''}"


def format_size(num_bytes: int) -> str:
    """Return human readable size string."""
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    for unit in units:
        if size < 1024 or unit == units[-1]:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"
