"""Extract album title and media records from a Google Photos shared album page."""

# pylint: disable=line-too-long

import html as html_lib
import json
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from bs4 import BeautifulSoup

from gpsync.errors import ExtractionError
from gpsync.fetch import FetchClient
from gpsync.models import AlbumRecord, MediaRecord
from gpsync.utils import dbg

DEFAULT_TITLE = "Google Photos Album"

# 2000-01-01T00:00:00Z in epoch milliseconds
TIMESTAMP_FLOOR_MS = 946684800000
TIMESTAMP_SKEW = timedelta(days=1)

_ANCHOR_RE = re.compile(r"key:\s*'ds:1'.*?data:", re.S)
_DATE_SUFFIX_RE = re.compile(r"\s*·.*$", re.S)
_CAMERA_SUFFIX_RE = re.compile(r"\s*📸\s*$")
_INT_RE = re.compile(r"^[+-]?\d+$")


def clean_title(raw: str | None) -> str:
    """
    Normalize an `og:title` value.

    Entities are unescaped, the ` · <date range>` tail and a trailing camera
    emoji are dropped. Blank input gives `DEFAULT_TITLE`.
    """
    if not raw:
        return DEFAULT_TITLE
    title = html_lib.unescape(raw)
    title = _DATE_SUFFIX_RE.sub("", title)
    title = _CAMERA_SUFFIX_RE.sub("", title.strip())
    return title.strip() or DEFAULT_TITLE


def find_title(html: str) -> str:
    """Read the album title from the `og:title` meta tag."""
    soup = BeautifulSoup(html, "html.parser")
    tag = soup.find("meta", attrs={"property": "og:title"})
    content = tag.get("content") if tag else None
    return clean_title(content if isinstance(content, str) else None)


def find_payload_start(html: str) -> int:
    """
    Return the index of the `[` that opens the `ds:1` data payload.

    Raises:
        ExtractionError: Anchor or opening bracket not found.
    """
    match = _ANCHOR_RE.search(html)
    if not match:
        raise ExtractionError("could not find album data (ds:1) in page")
    start = html.find("[", match.end())
    if start == -1:
        raise ExtractionError("could not find start of album data array")
    return start


def balanced_array_span(text: str, start: int) -> str:
    """
    Return `text[start:end]` where `end` closes the array opened at `start`.

    Brackets inside double-quoted strings do not count; backslash escapes
    inside strings are honoured.

    Raises:
        ExtractionError: `start` is not a `[` or the brackets never balance.
    """
    if start < 0 or start >= len(text) or text[start] != "[":
        raise ExtractionError(f"no array opens at offset {start}")

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[start : pos + 1]
    raise ExtractionError("could not find end of album data array")


def parse_payload(span: str) -> list:
    """Decode the isolated payload into nested lists/strings/numbers/None."""
    try:
        data = json.loads(span)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"failed to parse album data: {e}") from e
    if not isinstance(data, list):
        raise ExtractionError("album data root is not an array")
    return data


# Loosely structured values: the payload has no schema beyond positions, so
# every access goes through these helpers instead of direct indexing.


def _at(value: Any, index: int) -> Any:
    if isinstance(value, list) and 0 <= index < len(value):
        return value[index]
    return None


def _as_list(value: Any) -> list | None:
    return value if isinstance(value, list) else None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _as_number(value: Any) -> int | None:
    """Numbers only (bools excluded); floats are truncated."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def _as_int(value: Any) -> int | None:
    """Like `_as_number`, but integer-looking strings are accepted too."""
    if isinstance(value, str):
        return int(value) if _INT_RE.match(value) else None
    return _as_number(value)


def extract_taken_at(item: list, now: datetime | None = None) -> datetime | None:
    """
    Pick the capture time of one item.

    Several millisecond values are embedded at varying positions; only some
    are capture times. Every slot from index 2 is inspected (the first
    element when the slot is an array, and the slot itself). Values after
    2000-01-01 and before `now + 1 day` are candidates; the earliest wins
    since later values are upload/modification times.
    """
    now = now or datetime.now(timezone.utc)
    ceiling_ms = int((now + TIMESTAMP_SKEW).timestamp() * 1000)
    candidates = []
    for slot in item[2:]:
        values = [slot]
        nested = _as_list(slot)
        if nested:
            values.insert(0, nested[0])
        for value in values:
            millis = _as_int(value)
            if millis is not None and TIMESTAMP_FLOOR_MS < millis < ceiling_ms:
                candidates.append(millis)
    if not candidates:
        return None
    return datetime.fromtimestamp(min(candidates) / 1000, tz=timezone.utc)


def extract_description(item: list) -> str | None:
    """First non-empty string from index 3 onward."""
    for slot in item[3:]:
        text = _as_str(slot)
        if text:
            return text
    return None


def parse_item(item: Any, now: datetime | None = None) -> MediaRecord | None:
    """Turn one positional item entry into a record; None when unusable."""
    entry = _as_list(item)
    if entry is None or len(entry) < 2:
        return None
    media = _as_list(entry[1])
    if not media:
        return None
    url = _as_str(media[0])
    if not url:
        return None
    width = height = 0
    if len(media) >= 3:
        width = _as_number(media[1]) or 0
        height = _as_number(media[2]) or 0
    return MediaRecord(
        item_id=_as_str(entry[0]) or "",
        source_url=url,
        width=width,
        height=height,
        taken_at=extract_taken_at(entry, now),
        description=extract_description(entry),
    )


def item_list(data: list) -> list:
    """Items live at index 1; older pages put them at index 0."""
    items = _as_list(_at(data, 1))
    if items is None:
        items = _as_list(_at(data, 0))
    return items or []


class PageToAlbum(Protocol):
    """Versioned strategy turning one album page into an `AlbumRecord`."""

    version: str

    def extract(self, html: str, source_url: str) -> AlbumRecord:
        """Raise `ExtractionError` when the page layout is not understood."""


class SharedAlbumPageV1:
    """Strategy for the `AF_initDataCallback({key: 'ds:1', ... data: [...]})` layout."""

    version = "ds1-v1"

    def __init__(self, now: datetime | None = None) -> None:
        # Fixed clock for tests; None means wall clock per extraction.
        self.now = now

    def extract(self, html: str, source_url: str) -> AlbumRecord:
        title = find_title(html)
        start = find_payload_start(html)
        span = balanced_array_span(html, start)
        data = parse_payload(span)

        records = []
        skipped = 0
        for raw in item_list(data):
            record = parse_item(raw, self.now)
            if record is None:
                skipped += 1
                continue
            records.append(record)
        dbg(
            f"Extracted {len(records)} item(s) from {source_url} "
            f"(payload {len(span)} chars, {skipped} entries ignored, strategy {self.version})"
        )
        return AlbumRecord(
            source_identifier=source_url, title=title, items=tuple(records)
        )


DEFAULT_STRATEGY: PageToAlbum = SharedAlbumPageV1()


def extract_album(
    html: str, source_url: str, strategy: PageToAlbum | None = None
) -> AlbumRecord:
    """Wrapper: run the given (or default) strategy on page text."""
    return (strategy or DEFAULT_STRATEGY).extract(html, source_url)


async def fetch_album(
    client: FetchClient, url: str, strategy: PageToAlbum | None = None
) -> AlbumRecord:
    """
    Download a shared album page and extract it.

    Raises:
        ExtractionError: Non-200 answer or unreadable page.
        TransportError: Host unreachable after retries.
    """
    response = await client.get(url)
    async with response:
        if response.status != 200:
            raise ExtractionError(f"failed to fetch album: HTTP {response.status}")
        raw = await response.read()
    return extract_album(raw.decode("utf-8", errors="replace"), url, strategy)
