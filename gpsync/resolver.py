"""Resolve a media record's base URL into original-quality bytes."""

from gpsync.errors import ResolveError
from gpsync.fetch import FetchClient
from gpsync.models import MediaProbe, ResolvedMedia
from gpsync.utils import dbg, format_size

# Original quality for images (keeps motion photo data); videos need `=dv`.
ORIGINAL_SUFFIX = "=d"
VIDEO_SUFFIX = "=dv"

DEFAULT_IMAGE_EXTENSION = ".jpg"
DEFAULT_VIDEO_EXTENSION = ".mp4"

CONTENT_TYPE_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/heif": ".heic",
    "image/avif": ".avif",
    "video/mp4": ".mp4",
    "video/webm": ".webm",
    "video/quicktime": ".mov",
    "video/x-matroska": ".mkv",
}


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_video_type(content_type: str | None) -> bool:
    return _media_type(content_type).startswith("video/")


def extension_for_content_type(content_type: str | None) -> str:
    """
    Map a Content-Type header to a file extension.

    Unknown `video/*` types fall back to `.mp4`, anything else to `.jpg`.
    """
    media_type = _media_type(content_type)
    ext = CONTENT_TYPE_EXTENSIONS.get(media_type)
    if ext:
        return ext
    if media_type.startswith("video/"):
        return DEFAULT_VIDEO_EXTENSION
    return DEFAULT_IMAGE_EXTENSION


class MediaResolver:
    """Probe and download media through a `FetchClient`."""

    def __init__(self, client: FetchClient) -> None:
        self.client = client

    async def probe(self, source_url: str) -> MediaProbe:
        """
        HEAD the original-quality URL to learn the content type.

        Raises:
            ResolveError: Non-success status.
        """
        url = source_url + ORIGINAL_SUFFIX
        response = await self.client.head(url)
        async with response:
            if not 200 <= response.status < 300:
                raise ResolveError(f"probe failed: HTTP {response.status}")
            content_type = response.headers.get("Content-Type", "")
        return MediaProbe(is_video=is_video_type(content_type), content_type=content_type)

    async def download(self, source_url: str, is_video: bool) -> ResolvedMedia:
        """
        Download the full body into memory.

        The host often answers with chunked transfer, so the size is taken
        from the buffered body rather than Content-Length.

        Raises:
            ResolveError: Non-200 status.
        """
        suffix = VIDEO_SUFFIX if is_video else ORIGINAL_SUFFIX
        kind = "video" if is_video else "image"
        response = await self.client.get(source_url + suffix)
        async with response:
            if response.status != 200:
                raise ResolveError(f"failed to download {kind}: HTTP {response.status}")
            data = await response.read()
            content_type = response.headers.get("Content-Type", "")
        ext = extension_for_content_type(content_type)
        dbg(f"Downloaded {kind} {format_size(len(data))} ({content_type or 'no type'})")
        return ResolvedMedia(
            data=data,
            size=len(data),
            extension=ext,
            is_video=is_video,
            content_type=content_type,
        )

    async def resolve(self, source_url: str) -> ResolvedMedia:
        """Probe, then download with the suffix matching the media kind."""
        probe = await self.probe(source_url)
        return await self.download(source_url, probe.is_video)
