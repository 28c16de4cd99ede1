"""Data models shared by the extractor, resolver and sync orchestrator."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class MediaRecord:
    """One item inside a shared album."""

    item_id: str
    source_url: str
    width: int = 0
    height: int = 0
    taken_at: datetime | None = None
    description: str | None = None
    uploader_name: str | None = None


@dataclass(frozen=True)
class AlbumRecord:
    """Result of one album scrape."""

    source_identifier: str
    title: str
    items: tuple[MediaRecord, ...] = ()


class OutcomeKind(enum.Enum):
    """Per-item result of a sync pass."""

    SKIPPED = "skipped"
    UPLOADED = "uploaded"
    DEDUPLICATED = "deduplicated"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    """What happened to one item during a pass."""

    item_id: str
    kind: OutcomeKind
    asset_id: str | None = None
    reason: str | None = None

    @property
    def touches_album(self) -> bool:
        return self.kind in (OutcomeKind.UPLOADED, OutcomeKind.DEDUPLICATED)


@dataclass(frozen=True)
class PassSummary:
    """Counters for one album pass."""

    added: int
    skipped: int
    failed: int
    total: int
    deduplicated: int = 0
    asset_ids: tuple[str, ...] = ()
    membership_error: str | None = None


@dataclass(frozen=True)
class MediaProbe:
    """Content type reported by the HEAD probe."""

    is_video: bool
    content_type: str


@dataclass(frozen=True)
class ResolvedMedia:
    """Fully buffered original media for one item."""

    data: bytes = field(repr=False)
    size: int
    extension: str
    is_video: bool
    content_type: str


@dataclass(frozen=True)
class UploadResult:
    """Destination answer to an upload."""

    asset_id: str
    duplicate: bool


@dataclass(frozen=True)
class DestinationUser:
    """Account the API key belongs to."""

    id: str
    name: str


@dataclass(frozen=True)
class DestinationAlbum:
    """Album row on the destination."""

    id: str
    name: str


@dataclass(frozen=True)
class DestinationAsset:
    """Asset row as listed in a destination album."""

    id: str
    original_file_name: str
