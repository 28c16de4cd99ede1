"""Album pass driver and scheduler."""

import asyncio
from datetime import datetime, timedelta

from gpsync.config import AlbumConfig, Settings
from gpsync.errors import DestinationError, ExtractionError, TransportError
from gpsync.extractor import PageToAlbum, fetch_album
from gpsync.fetch import FetchClient
from gpsync.immich import ImmichClient
from gpsync.models import PassSummary
from gpsync.resolver import MediaResolver
from gpsync.sync import SyncOptions, SyncOrchestrator, build_existing_index
from gpsync.utils import dbg, done, error, info, plural, warn


def seconds_until(start_time: str, now: datetime | None = None) -> float:
    """Seconds from `now` to the next occurrence of `HH:MM` local time."""
    now = now or datetime.now()
    hour, minute = (int(part) for part in start_time.split(":", 1))
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run < now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


class App:
    """Wire settings, the album host client and the destination together."""

    def __init__(
        self,
        settings: Settings,
        immich: ImmichClient,
        fetch_client: FetchClient,
        strategy: PageToAlbum | None = None,
    ) -> None:
        self.settings = settings
        self.immich = immich
        self.fetch_client = fetch_client
        self.strategy = strategy
        self.orchestrator = SyncOrchestrator(
            MediaResolver(fetch_client),
            SyncOptions(
                workers=settings.workers,
                strict_metadata=settings.strict_metadata,
                skip_videos=settings.skip_videos,
            ),
        )

    async def check_connection(self) -> None:
        """Raises DestinationError when the destination is unreachable."""
        user = await self.immich.get_current_user()
        info(f"Connected to Immich as {user.name} ({user.id})")

    async def resolve_album_id(self, album_cfg: AlbumConfig, title: str) -> str | None:
        """Configured id, else the album named `title`, else a new album."""
        if album_cfg.immich_album_id:
            return album_cfg.immich_album_id
        try:
            album = await self.immich.find_or_create_album(title)
        except DestinationError as e:
            error(f"Error resolving Immich album '{title}': {e}")
            return None
        return album.id or None

    async def existing_index(self, album_id: str | None) -> dict[str, str]:
        if not album_id:
            return {}
        try:
            assets = await self.immich.get_album_assets(album_id)
        except DestinationError as e:
            warn(f"Could not list album assets, treating album as empty: {e}")
            return {}
        index = build_existing_index(assets)
        dbg(f"Pre-fetched {len(index)} album asset(s)")
        return index

    async def process_album(self, album_cfg: AlbumConfig) -> PassSummary | None:
        """
        Run one full pass for one album.

        Failures in scraping or destination lookups abort this album only.
        """
        info(f"Syncing Google Photos album: {album_cfg.url}")
        try:
            album = await fetch_album(self.fetch_client, album_cfg.url, self.strategy)
        except (ExtractionError, TransportError) as e:
            error(f"Error scraping album {album_cfg.url}: {e}")
            return None

        title = album_cfg.album_name or album.title
        info(f"Found {plural(len(album.items), 'item')} in album '{title}'")
        if not album.items:
            info("No photos found, skipping")
            return None

        album_id = await self.resolve_album_id(album_cfg, title)
        index = await self.existing_index(album_id)

        async def add_to_album(asset_ids):
            info(f"Adding {plural(len(asset_ids), 'item')} to album '{title}'")
            await self.immich.add_assets_to_album(album_id, asset_ids)

        info(
            f"Processing {plural(len(album.items), 'item')} with "
            f"{plural(self.orchestrator.pool_size(len(album.items)), 'worker')}"
        )
        summary = await self.orchestrator.reconcile(
            album,
            index,
            self.immich.upload_asset,
            add_to_album if album_id else None,
            title,
        )
        done(
            f"Sync finished '{title}': added {summary.added}, "
            f"deduplicated {summary.deduplicated}, skipped {summary.skipped}, "
            f"failed {summary.failed}, total {summary.total}"
        )
        return summary

    async def _album_loop(
        self, album_cfg: AlbumConfig, semaphore: asyncio.Semaphore, once: bool
    ) -> None:
        while True:
            async with semaphore:
                try:
                    await self.process_album(album_cfg)
                except Exception as e:  # pylint: disable=broad-exception-caught
                    error(f"Unexpected error syncing {album_cfg.url}: {e!r}")
            if once:
                return
            next_run = datetime.now() + timedelta(seconds=album_cfg.sync_interval)
            info(f"Next sync of {album_cfg.url} at {next_run:%Y-%m-%d %H:%M:%S}")
            await asyncio.sleep(album_cfg.sync_interval)

    async def run(self, once: bool = False) -> None:
        """
        Check connectivity, then keep every album on its own timer.

        A given album never overlaps with itself; at most
        `album_concurrency` passes run at the same time.
        """
        await self.check_connection()

        if not self.settings.albums:
            warn("No albums configured")
            return

        if self.settings.sync_start_time and not once:
            delay = seconds_until(self.settings.sync_start_time)
            info(
                f"Waiting for scheduled start time {self.settings.sync_start_time} "
                f"({timedelta(seconds=round(delay))})"
            )
            await asyncio.sleep(delay)

        semaphore = asyncio.Semaphore(self.settings.album_concurrency)
        await asyncio.gather(
            *(self._album_loop(album_cfg, semaphore, once) for album_cfg in self.settings.albums)
        )
