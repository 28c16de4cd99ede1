"""Fetch a Google Photos shared album page, save it, and print an extraction report."""

from __future__ import annotations

import argparse
import hashlib
import json
from pathlib import Path
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from gpsync.errors import ExtractionError
from gpsync.extractor import (
    SharedAlbumPageV1,
    balanced_array_span,
    find_payload_start,
    find_title,
    item_list,
    parse_payload,
)
from gpsync.sync import derive_basename
from gpsync.utils import FALLBACK_USER_AGENT

ROOT = Path(__file__).resolve().parent.parent
ANALYSIS_DIR = ROOT / "analysis"
DEFAULT_TIMEOUT = 30


def get_album_key(album_url: str) -> str:
    """Short stable key for output file names."""
    return hashlib.sha1(album_url.encode("utf-8")).hexdigest()[:10]  # nosec B324


def fetch_html(url: str, timeout: int) -> tuple[str, dict[str, Any] | None, str | None]:
    """Fetch one HTML page. Returns `(html, meta, error)`."""
    headers = {
        "User-Agent": FALLBACK_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }
    req = Request(url, headers=headers)
    try:
        with urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
            charset = resp.headers.get_content_charset() or "utf-8"
            html = raw.decode(charset, errors="replace")
            meta = {
                "http_status": getattr(resp, "status", None),
                "final_url": resp.geturl(),
                "content_type": resp.headers.get("Content-Type"),
                "response_size_bytes": len(raw),
            }
            return html, meta, None
    except HTTPError as error:
        return "", None, f"http_error: {error.code} {error.reason}"
    except URLError as error:
        return "", None, f"url_error: {error.reason}"
    except TimeoutError as error:
        return "", None, f"timeout_error: {error}"
    except (OSError, ValueError, LookupError) as error:
        return "", None, f"fetch_error: {error}"


def _payload_report(html: str) -> dict[str, Any]:
    """Run each extraction stage separately so the failing stage is visible."""
    report: dict[str, Any] = {"stage": "anchor"}
    try:
        start = find_payload_start(html)
        report.update(stage="lexer", payload_offset=start)
        span = balanced_array_span(html, start)
        report.update(stage="parse", payload_chars=len(span))
        data = parse_payload(span)
        report.update(stage="items", top_level_length=len(data))
        report["candidate_entries"] = len(item_list(data))
        report["stage"] = "ok"
    except ExtractionError as error:
        report["error"] = str(error)
    return report


def parse_html_report(
    html: str, source_url: str, saved_file: Path, fetch_meta: dict[str, Any]
) -> dict[str, Any]:
    """Parse one HTML string and return debug info."""
    report: dict[str, Any] = {
        "source_url": source_url,
        "saved_file": str(saved_file),
        "saved_size_bytes": saved_file.stat().st_size if saved_file.is_file() else 0,
        "fetch": fetch_meta,
        "title": find_title(html),
        "payload": _payload_report(html),
    }
    try:
        album = SharedAlbumPageV1().extract(html, source_url)
    except ExtractionError as error:
        report["items_error"] = str(error)
        return report

    dated = [item for item in album.items if item.taken_at is not None]
    report["items_summary"] = {
        "total": len(album.items),
        "with_taken_at": len(dated),
        "without_taken_at": len(album.items) - len(dated),
        "with_description": sum(1 for item in album.items if item.description),
        "earliest": min((i.taken_at for i in dated), default=None),
        "latest": max((i.taken_at for i in dated), default=None),
    }
    report["items_sample"] = [
        {
            "item_id": item.item_id,
            "basename": derive_basename(item.item_id),
            "source_url": item.source_url,
            "size": f"{item.width}x{item.height}",
            "taken_at": item.taken_at,
            "description": item.description,
        }
        for item in album.items[:3]
    ]
    return report


def debug_album(album_url: str, timeout: int) -> dict[str, Any]:
    """Fetch and parse one album page."""
    ANALYSIS_DIR.mkdir(parents=True, exist_ok=True)
    album_key = get_album_key(album_url)
    out_file = ANALYSIS_DIR / f"album_{album_key}.html"

    html, fetch_meta, fetch_error = fetch_html(album_url, timeout=timeout)
    if fetch_error:
        report: dict[str, Any] = {
            "source_url": album_url,
            "saved_file": str(out_file),
            "error": fetch_error,
        }
    else:
        out_file.write_text(html, encoding="utf-8")
        report = parse_html_report(
            html=html,
            source_url=album_url,
            saved_file=out_file,
            fetch_meta=fetch_meta or {},
        )

    parsed_path = ANALYSIS_DIR / f"album_{album_key}_parsed.json"
    parsed_path.write_text(
        json.dumps(report, indent=2, ensure_ascii=False, default=str),
        encoding="utf-8",
    )
    report["_parsed_output_file"] = str(parsed_path)
    return report


def main() -> None:
    """CLI entrypoint for fetching and debugging one album page."""
    parser = argparse.ArgumentParser(
        description="Fetch a Google Photos shared album page and print an extraction report."
    )
    parser.add_argument("album_url", help="Shared album URL (photos.app.goo.gl/... or photos.google.com/share/...)")
    parser.add_argument(
        "--timeout",
        type=int,
        default=DEFAULT_TIMEOUT,
        help=f"Network timeout in seconds (default: {DEFAULT_TIMEOUT})",
    )
    args = parser.parse_args()

    report = debug_album(args.album_url, timeout=args.timeout)
    print(json.dumps(report, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
