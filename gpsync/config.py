"""Load and validate runtime configuration (JSON file + environment overrides)."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from validators import url as validate_url

from gpsync.errors import ConfigurationError
from gpsync.utils import env_flag, env_int

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_SYNC_INTERVAL = 24 * 3600.0
DEFAULT_WORKERS = 4
DEFAULT_ALBUM_CONCURRENCY = 1

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}
_START_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def parse_interval(value: str | None) -> float:
    """
    Parse a Go-style duration (`24h`, `1h30m`, `45s`) into seconds.

    Empty, malformed or zero durations mean 24 hours.
    """
    text = (value or "").strip().replace(" ", "")
    if not text:
        return DEFAULT_SYNC_INTERVAL
    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            return DEFAULT_SYNC_INTERVAL
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    if pos != len(text) or total <= 0:
        return DEFAULT_SYNC_INTERVAL
    return total


@dataclass(frozen=True)
class AlbumConfig:
    """One shared album to mirror."""

    url: str
    album_name: str | None = None
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    immich_album_id: str | None = None


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""

    api_url: str
    api_key: str
    albums: tuple[AlbumConfig, ...] = ()
    workers: int = DEFAULT_WORKERS
    album_concurrency: int = DEFAULT_ALBUM_CONCURRENCY
    strict_metadata: bool = False
    skip_videos: bool = False
    sync_start_time: str | None = None
    debug: bool = False
    source_path: str | None = field(default=None, compare=False)


def _album_from_mapping(raw: Any, index: int) -> AlbumConfig:
    if isinstance(raw, str):
        raw = {"url": raw}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"googlePhotos[{index}] must be an object or URL string")
    url = str(raw.get("url") or "").strip()
    if not url or not validate_url(url):
        raise ConfigurationError(f"googlePhotos[{index}]: invalid album URL {url!r}")
    return AlbumConfig(
        url=url,
        album_name=(str(raw.get("albumName") or "").strip() or None),
        sync_interval=parse_interval(raw.get("syncInterval")),
        immich_album_id=(str(raw.get("immichAlbumId") or "").strip() or None),
    )


def _read_file(path: str, required: bool) -> dict[str, Any]:
    if not os.path.isfile(path):
        if required:
            raise ConfigurationError(f"config file not found: {path}")
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file {path} must contain a JSON object")
    return data


def _as_int(value: Any, name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from e


def load_settings(path: str | None = None) -> Settings:
    """
    Build settings from a JSON file and environment variables.

    The file is `path`, else `$GPSYNC_CONFIG`, else `config.json` (optional
    unless named explicitly). Environment variables win over file values.

    Raises:
        ConfigurationError: Missing API URL/key, bad album URL, bad numbers.
    """
    explicit = path or os.environ.get("GPSYNC_CONFIG", "").strip() or None
    config_path = explicit or DEFAULT_CONFIG_PATH
    raw = _read_file(config_path, required=explicit is not None)

    api_url = os.environ.get("IMMICH_URL", "").strip() or str(raw.get("apiUrl") or "").strip()
    api_key = os.environ.get("IMMICH_API_KEY", "").strip() or str(raw.get("apiKey") or "").strip()
    if not api_url or not validate_url(api_url, simple_host=True):
        raise ConfigurationError(f"apiUrl / IMMICH_URL missing or invalid: {api_url!r}")
    if not api_key:
        raise ConfigurationError("apiKey / IMMICH_API_KEY is required")

    entries = raw.get("googlePhotos") or []
    if not isinstance(entries, list):
        raise ConfigurationError("googlePhotos must be a list")
    entries = list(entries)
    entries.extend(
        u.strip() for u in os.environ.get("GPSYNC_ALBUMS", "").split(",") if u.strip()
    )
    albums = tuple(_album_from_mapping(entry, i) for i, entry in enumerate(entries))

    workers = env_int("GPSYNC_WORKERS") or _as_int(raw.get("workers"), "workers", DEFAULT_WORKERS)
    album_concurrency = env_int("GPSYNC_ALBUM_CONCURRENCY") or _as_int(
        raw.get("albumConcurrency"), "albumConcurrency", DEFAULT_ALBUM_CONCURRENCY
    )

    start_time = (
        os.environ.get("GPSYNC_SYNC_START_TIME", "").strip()
        or str(raw.get("syncStartTime") or "").strip()
        or None
    )
    if start_time and not _START_TIME_RE.match(start_time):
        raise ConfigurationError(f"syncStartTime must be HH:MM, got {start_time!r}")

    return Settings(
        api_url=api_url,
        api_key=api_key,
        albums=albums,
        workers=max(1, workers),
        album_concurrency=max(1, album_concurrency),
        strict_metadata=env_flag("GPSYNC_STRICT_METADATA", bool(raw.get("strictMetadata"))),
        skip_videos=env_flag("GPSYNC_SKIP_VIDEOS", bool(raw.get("skipVideos"))),
        sync_start_time=start_time,
        debug=env_flag("GPSYNC_DEBUG", bool(raw.get("debug"))),
        source_path=config_path if raw else None,
    )
