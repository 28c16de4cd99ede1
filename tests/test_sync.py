"""Tests for the sync orchestrator."""

import asyncio
from datetime import datetime, timezone

import pytest

from gpsync.errors import ResolveError, UploadError
from gpsync.models import (
    AlbumRecord,
    DestinationAsset,
    MediaProbe,
    OutcomeKind,
    ResolvedMedia,
    UploadResult,
)
from gpsync.sync import (
    SyncOptions,
    SyncOrchestrator,
    build_description,
    build_existing_index,
    derive_basename,
    reconcile,
)
from tests.utils import ALBUM_URL, make_record

TAKEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeResolver:
    """Media resolver double: videos and failures are keyed by URL suffix."""

    def __init__(self, videos=(), failing=()) -> None:
        self.videos = set(videos)
        self.failing = set(failing)
        self.probed: list[str] = []
        self.downloaded: list[str] = []
        self.active = 0
        self.max_active = 0

    async def probe(self, source_url: str) -> MediaProbe:
        self.probed.append(source_url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        if any(source_url.endswith(f) for f in self.failing):
            raise ResolveError("probe failed: HTTP 404")
        is_video = any(source_url.endswith(v) for v in self.videos)
        return MediaProbe(is_video, "video/mp4" if is_video else "image/jpeg")

    async def download(self, source_url: str, is_video: bool) -> ResolvedMedia:
        self.downloaded.append(source_url)
        await asyncio.sleep(0)
        data = source_url.encode()
        return ResolvedMedia(
            data=data,
            size=len(data),
            extension=".mp4" if is_video else ".jpg",
            is_video=is_video,
            content_type="video/mp4" if is_video else "image/jpeg",
        )


class FakeDestination:
    """Upload and membership doubles."""

    def __init__(self, duplicates=(), failing=(), empty_ids=(), add_error=None) -> None:
        self.duplicates = set(duplicates)
        self.failing = set(failing)
        self.empty_ids = set(empty_ids)
        self.add_error = add_error
        self.uploads: list[dict] = []
        self.add_calls: list[list[str]] = []

    async def upload(self, data, filename, size, taken_at, description) -> UploadResult:
        await asyncio.sleep(0)
        self.uploads.append(
            {
                "filename": filename,
                "size": size,
                "taken_at": taken_at,
                "description": description,
            }
        )
        stem = filename.rsplit(".", 1)[0]
        if stem in self.failing:
            raise UploadError(f"POST /assets: HTTP 500 for {filename}")
        if stem in self.empty_ids:
            return UploadResult(asset_id="", duplicate=False)
        return UploadResult(asset_id=f"asset-{stem}", duplicate=stem in self.duplicates)

    async def add_to_album(self, asset_ids) -> None:
        self.add_calls.append(list(asset_ids))
        if self.add_error:
            raise self.add_error


def album_of(*records) -> AlbumRecord:
    return AlbumRecord(source_identifier=ALBUM_URL, title="Summer Trip", items=tuple(records))


class TestBasename:
    def test_replaces_separators_and_colons(self) -> None:
        assert derive_basename("AF1Qip/abc:123") == "gp_AF1Qip_abc_123"

    def test_case_is_preserved(self) -> None:
        assert derive_basename("AbC") != derive_basename("abc")

    def test_index_strips_extension(self) -> None:
        index = build_existing_index(
            [
                DestinationAsset("a1", "gp_X1.jpg"),
                DestinationAsset("a2", "gp_X2.tar.gz"),
                DestinationAsset("a3", "noext"),
            ]
        )
        assert index == {"gp_X1": "a1", "gp_X2.tar": "a2", "noext": "a3"}


class TestDescription:
    def test_caption_uploader_and_source(self) -> None:
        record = make_record("A", description="Sunset", uploader_name="Sam")
        assert build_description(record, "Trip", ALBUM_URL) == (
            f"Sunset\n\nShared by: Sam\n\nSource Album: Trip ({ALBUM_URL})"
        )

    def test_source_only(self) -> None:
        assert build_description(make_record("A"), "Trip", ALBUM_URL) == (
            f"Source Album: Trip ({ALBUM_URL})"
        )


class TestReconcile:
    @pytest.mark.asyncio
    async def test_existing_items_never_touch_network(self) -> None:
        resolver, dest = FakeResolver(), FakeDestination()
        records = [make_record("old/1", taken_at=TAKEN), make_record("new", taken_at=TAKEN)]
        index = {derive_basename("old/1"): "asset-old"}

        summary = await SyncOrchestrator(resolver).reconcile(
            album_of(*records), index, dest.upload, dest.add_to_album
        )

        assert resolver.probed == [records[1].source_url]
        assert [u["filename"] for u in dest.uploads] == ["gp_new.jpg"]
        assert (summary.added, summary.skipped, summary.failed, summary.total) == (1, 1, 0, 2)
        assert dest.add_calls == [["asset-gp_new"]]

    @pytest.mark.asyncio
    async def test_strict_metadata_skips_undated_items(self) -> None:
        resolver, dest = FakeResolver(), FakeDestination()
        orchestrator = SyncOrchestrator(resolver, SyncOptions(strict_metadata=True))

        summary = await orchestrator.reconcile(
            album_of(make_record("undated")), {}, dest.upload, dest.add_to_album
        )

        assert summary.skipped == 1
        assert resolver.probed == []
        assert dest.uploads == []
        assert dest.add_calls == []

    @pytest.mark.asyncio
    async def test_lenient_mode_uploads_undated_items_without_date(self) -> None:
        resolver, dest = FakeResolver(), FakeDestination()

        summary = await SyncOrchestrator(resolver).reconcile(
            album_of(make_record("undated")), {}, dest.upload, dest.add_to_album
        )

        assert summary.added == 1
        assert dest.uploads[0]["taken_at"] is None

    @pytest.mark.asyncio
    async def test_video_skip_happens_after_probe_without_download(self) -> None:
        resolver = FakeResolver(videos=["/clip"])
        dest = FakeDestination()
        orchestrator = SyncOrchestrator(resolver, SyncOptions(skip_videos=True))
        records = [make_record("clip", taken_at=TAKEN), make_record("photo", taken_at=TAKEN)]

        summary = await orchestrator.reconcile(album_of(*records), {}, dest.upload, dest.add_to_album)

        assert records[0].source_url in resolver.probed
        assert resolver.downloaded == [records[1].source_url]
        assert (summary.added, summary.skipped) == (1, 1)

    @pytest.mark.asyncio
    async def test_videos_upload_with_video_extension_when_allowed(self) -> None:
        resolver = FakeResolver(videos=["/clip"])
        dest = FakeDestination()

        await SyncOrchestrator(resolver).reconcile(
            album_of(make_record("clip", taken_at=TAKEN)), {}, dest.upload, dest.add_to_album
        )

        assert dest.uploads[0]["filename"] == "gp_clip.mp4"

    @pytest.mark.asyncio
    async def test_duplicates_counted_separately_but_linked(self) -> None:
        resolver = FakeResolver()
        dest = FakeDestination(duplicates={"gp_B"})
        records = [make_record(x, taken_at=TAKEN) for x in ("A", "B")]

        summary = await SyncOrchestrator(resolver).reconcile(
            album_of(*records), {}, dest.upload, dest.add_to_album
        )

        assert (summary.added, summary.deduplicated, summary.skipped) == (1, 1, 0)
        assert sorted(dest.add_calls[0]) == ["asset-gp_A", "asset-gp_B"]

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self) -> None:
        resolver = FakeResolver(failing=["/bad-probe"])
        dest = FakeDestination(failing={"gp_bad-upload"}, empty_ids={"gp_no-id"})
        names = ["ok-1", "bad-probe", "bad-upload", "no-id", "ok-2"]

        summary = await SyncOrchestrator(resolver, SyncOptions(workers=2)).reconcile(
            album_of(*(make_record(n, taken_at=TAKEN) for n in names)),
            {},
            dest.upload,
            dest.add_to_album,
        )

        assert (summary.added, summary.failed, summary.total) == (2, 3, 5)
        assert sorted(dest.add_calls[0]) == ["asset-gp_ok-1", "asset-gp_ok-2"]

    @pytest.mark.asyncio
    async def test_concurrent_pass_collects_every_outcome(self) -> None:
        resolver = FakeResolver()
        dest = FakeDestination(duplicates={"gp_item-3", "gp_item-7"})
        records = [make_record(f"item-{i}", taken_at=TAKEN) for i in range(10)]
        orchestrator = SyncOrchestrator(resolver, SyncOptions(workers=4))

        summary = await orchestrator.reconcile(album_of(*records), {}, dest.upload, dest.add_to_album)

        assert summary.total == 10
        assert summary.added + summary.deduplicated == 10
        assert len(dest.uploads) == 10
        assert len({u["filename"] for u in dest.uploads}) == 10
        assert len(dest.add_calls) == 1
        assert sorted(dest.add_calls[0]) == sorted(f"asset-gp_item-{i}" for i in range(10))
        assert sorted(summary.asset_ids) == sorted(dest.add_calls[0])
        assert 1 < resolver.max_active <= 4

    def test_pool_size_is_clamped(self) -> None:
        orchestrator = SyncOrchestrator(FakeResolver(), SyncOptions(workers=0))
        assert orchestrator.pool_size(5) == 1
        orchestrator = SyncOrchestrator(FakeResolver(), SyncOptions(workers=16))
        assert orchestrator.pool_size(3) == 3

    @pytest.mark.asyncio
    async def test_membership_failure_is_recorded_not_raised(self) -> None:
        dest = FakeDestination(add_error=RuntimeError("album gone"))

        summary = await SyncOrchestrator(FakeResolver()).reconcile(
            album_of(make_record("A", taken_at=TAKEN)), {}, dest.upload, dest.add_to_album
        )

        assert summary.added == 1
        assert summary.membership_error == "album gone"

    @pytest.mark.asyncio
    async def test_no_membership_call_without_new_ids_or_album(self) -> None:
        dest = FakeDestination()
        index = {derive_basename("A"): "asset-A"}

        await SyncOrchestrator(FakeResolver()).reconcile(
            album_of(make_record("A")), index, dest.upload, dest.add_to_album
        )
        summary = await SyncOrchestrator(FakeResolver()).reconcile(
            album_of(make_record("B")), {}, dest.upload, None
        )

        assert dest.add_calls == []
        assert summary.added == 1

    @pytest.mark.asyncio
    async def test_empty_album(self) -> None:
        dest = FakeDestination()
        summary = await reconcile(album_of(), {}, dest.upload, dest.add_to_album, FakeResolver())
        assert summary.total == 0
        assert dest.add_calls == []

    @pytest.mark.asyncio
    async def test_description_and_title_override_reach_upload(self) -> None:
        dest = FakeDestination()
        record = make_record("A", taken_at=TAKEN, description="Hello")

        await reconcile(
            album_of(record), {}, dest.upload, None, FakeResolver(), album_title="Custom"
        )

        upload = dest.uploads[0]
        assert upload["taken_at"] == TAKEN
        assert upload["description"] == f"Hello\n\nSource Album: Custom ({ALBUM_URL})"
        assert upload["size"] == len(record.source_url.encode())


def test_outcome_kinds_cover_all_cases() -> None:
    assert {k.value for k in OutcomeKind} == {"skipped", "uploaded", "deduplicated", "failed"}
