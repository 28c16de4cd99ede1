"""Reconcile one scraped album into the destination."""

# pylint: disable=broad-exception-caught

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Sequence

from tqdm import tqdm

from gpsync.models import (
    AlbumRecord,
    DestinationAsset,
    MediaRecord,
    OutcomeKind,
    PassSummary,
    SyncOutcome,
    UploadResult,
)
from gpsync.resolver import MediaResolver
from gpsync.utils import dbg, error, warn

BASENAME_PREFIX = "gp_"
_UNSAFE_RE = re.compile(r"[/:]")

UploadFn = Callable[[bytes, str, int, datetime | None, str], Awaitable[UploadResult]]
AddToAlbumFn = Callable[[Sequence[str]], Awaitable[None]]


def derive_basename(item_id: str) -> str:
    """Stable, extension-free upload name and dedup key for one item."""
    return BASENAME_PREFIX + _UNSAFE_RE.sub("_", item_id)


def build_existing_index(assets: Iterable[DestinationAsset]) -> dict[str, str]:
    """Map basename (extension stripped) -> asset id for assets already in the album."""
    index: dict[str, str] = {}
    for asset in assets:
        name = asset.original_file_name
        dot = name.rfind(".")
        if dot != -1:
            name = name[:dot]
        index[name] = asset.id
    return index


def build_description(record: MediaRecord, album_title: str, album_url: str) -> str:
    """Caption, uploader and source album, separated by blank lines."""
    parts = []
    if record.description:
        parts.append(record.description)
    if record.uploader_name:
        parts.append(f"Shared by: {record.uploader_name}")
    parts.append(f"Source Album: {album_title} ({album_url})")
    return "\n\n".join(parts)


def summarize(
    outcomes: Sequence[SyncOutcome], membership_error: str | None = None
) -> PassSummary:
    """Fold per-item outcomes into pass counters."""
    counts = {kind: 0 for kind in OutcomeKind}
    for outcome in outcomes:
        counts[outcome.kind] += 1
    return PassSummary(
        added=counts[OutcomeKind.UPLOADED],
        skipped=counts[OutcomeKind.SKIPPED],
        failed=counts[OutcomeKind.FAILED],
        total=len(outcomes),
        deduplicated=counts[OutcomeKind.DEDUPLICATED],
        asset_ids=tuple(o.asset_id for o in outcomes if o.touches_album and o.asset_id),
        membership_error=membership_error,
    )


@dataclass(frozen=True)
class SyncOptions:
    """Per-pass policies."""

    workers: int = 4
    strict_metadata: bool = False
    skip_videos: bool = False


class SyncOrchestrator:
    """Drive resolver and upload across a bounded pool of workers."""

    def __init__(self, resolver: MediaResolver, options: SyncOptions | None = None) -> None:
        self.resolver = resolver
        self.options = options or SyncOptions()

    def pool_size(self, item_count: int) -> int:
        return max(1, min(self.options.workers, item_count))

    async def process_item(
        self,
        record: MediaRecord,
        existing_index: dict[str, str],
        upload: UploadFn,
        album_title: str,
        album_url: str,
    ) -> SyncOutcome:
        """Sync one item. Errors propagate to the worker, which records them."""
        base_name = derive_basename(record.item_id)

        asset_id = existing_index.get(base_name)
        if asset_id is not None:
            dbg(f"Asset already in album: {base_name} ({asset_id})")
            return SyncOutcome(record.item_id, OutcomeKind.SKIPPED, reason="already in album")

        if record.taken_at is None and self.options.strict_metadata:
            warn(f"Skipping item with missing metadata date: {record.item_id}")
            return SyncOutcome(record.item_id, OutcomeKind.SKIPPED, reason="missing date")

        probe = await self.resolver.probe(record.source_url)
        if probe.is_video and self.options.skip_videos:
            dbg(f"Skipping video item: {record.item_id}")
            return SyncOutcome(record.item_id, OutcomeKind.SKIPPED, reason="video")

        media = await self.resolver.download(record.source_url, probe.is_video)
        filename = base_name + media.extension
        if record.taken_at is None:
            warn(f"Uploading {filename} without a capture date (destination uses current time)")

        result = await upload(
            media.data,
            filename,
            media.size,
            record.taken_at,
            build_description(record, album_title, album_url),
        )
        if not result.asset_id:
            return SyncOutcome(
                record.item_id, OutcomeKind.FAILED, reason=f"upload returned empty ID for {filename}"
            )
        if result.duplicate:
            dbg(f"Asset deduplicated by destination: {filename} ({result.asset_id})")
            return SyncOutcome(record.item_id, OutcomeKind.DEDUPLICATED, asset_id=result.asset_id)
        dbg(f"Uploaded {filename} ({result.asset_id})")
        return SyncOutcome(record.item_id, OutcomeKind.UPLOADED, asset_id=result.asset_id)

    async def reconcile(
        self,
        album: AlbumRecord,
        existing_index: dict[str, str],
        upload: UploadFn,
        add_to_album: AddToAlbumFn | None,
        album_title: str | None = None,
    ) -> PassSummary:
        """
        Run one pass over every item of `album`.

        Each item yields exactly one outcome. The membership update runs once,
        after every worker finished, with the ids of uploaded and
        deduplicated items. Item failures are recorded, never raised.
        """
        title = album_title or album.title
        items = album.items
        if not items:
            return summarize([])

        queue: asyncio.Queue[MediaRecord] = asyncio.Queue()
        for record in items:
            queue.put_nowait(record)

        outcomes: list[SyncOutcome] = []
        progress_bar = tqdm(total=len(items), desc=title[:40], unit="item", leave=False)

        async def worker() -> None:
            while True:
                try:
                    record = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    outcome = await self.process_item(
                        record, existing_index, upload, title, album.source_identifier
                    )
                except Exception as e:
                    error(f"Failed to process item {record.item_id}: {e}")
                    outcome = SyncOutcome(record.item_id, OutcomeKind.FAILED, reason=str(e) or repr(e))
                outcomes.append(outcome)
                progress_bar.update(1)
                queue.task_done()

        try:
            await asyncio.gather(*(worker() for _ in range(self.pool_size(len(items)))))
        finally:
            progress_bar.close()

        asset_ids = [o.asset_id for o in outcomes if o.touches_album and o.asset_id]
        membership_error = None
        if add_to_album is not None and asset_ids:
            dbg(f"Adding {len(asset_ids)} item(s) to album '{title}'")
            try:
                await add_to_album(asset_ids)
            except Exception as e:
                membership_error = str(e) or repr(e)
                error(f"Error adding assets to album '{title}': {membership_error}")

        return summarize(outcomes, membership_error)


async def reconcile(
    album: AlbumRecord,
    existing_index: dict[str, str],
    upload: UploadFn,
    add_to_album: AddToAlbumFn | None,
    resolver: MediaResolver,
    options: SyncOptions | None = None,
    album_title: str | None = None,
) -> PassSummary:
    """Wrapper: run a pass with a transient orchestrator."""
    return await SyncOrchestrator(resolver, options).reconcile(
        album, existing_index, upload, add_to_album, album_title
    )
