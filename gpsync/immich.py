"""Minimal Immich API client covering what a sync pass needs."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Sequence

from aiohttp import ClientSession, FormData, client_exceptions

from gpsync.errors import DestinationError, UploadError
from gpsync.models import DestinationAlbum, DestinationAsset, DestinationUser, UploadResult
from gpsync.utils import dbg, warn

DEVICE_ID = "gpsync"


def normalize_api_url(base_url: str) -> str:
    """Strip trailing slashes and make sure the URL ends with `/api`."""
    url = base_url.rstrip("/")
    if not url.endswith("/api"):
        url += "/api"
    return url


def _iso(moment: datetime | None) -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat()


class ImmichClient:
    """Talk to an Immich server with an API key."""

    def __init__(self, session: ClientSession, base_url: str, api_key: str) -> None:
        self.session = session
        self.api_url = normalize_api_url(base_url)
        self.api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self.api_key, "Accept": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        data: Any = None,
        error_cls: type[Exception] = DestinationError,
    ) -> Any:
        url = f"{self.api_url}{path}"
        try:
            async with self.session.request(
                method, url, headers=self._headers(), json=json, data=data
            ) as resp:
                dbg(f"{method} {url} -> {resp.status}")
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    raise error_cls(f"{method} {path}: HTTP {resp.status} {body[:200]}")
                if resp.status == 204:
                    return None
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    # proxy or login page answering in place of the API
                    raise error_cls(f"{method} {path}: response is not JSON ({e})") from e
        except (client_exceptions.ClientError, asyncio.TimeoutError) as e:
            raise error_cls(f"{method} {path}: {e!r}") from e

    async def get_current_user(self) -> DestinationUser:
        """Connectivity check."""
        body = await self._request("GET", "/users/me")
        return DestinationUser(id=str(body.get("id", "")), name=str(body.get("name", "")))

    async def list_albums(self) -> list[DestinationAlbum]:
        body = await self._request("GET", "/albums")
        return [
            DestinationAlbum(id=str(a.get("id", "")), name=str(a.get("albumName", "")))
            for a in body or []
        ]

    async def create_album(self, name: str) -> DestinationAlbum:
        body = await self._request("POST", "/albums", json={"albumName": name})
        return DestinationAlbum(id=str(body.get("id", "")), name=str(body.get("albumName", name)))

    async def find_or_create_album(self, name: str) -> DestinationAlbum:
        """Return the first album named `name`, creating it when absent."""
        for album in await self.list_albums():
            if album.name == name:
                return album
        return await self.create_album(name)

    async def get_album_assets(self, album_id: str) -> list[DestinationAsset]:
        body = await self._request("GET", f"/albums/{album_id}")
        return [
            DestinationAsset(
                id=str(a.get("id", "")),
                original_file_name=str(a.get("originalFileName", "")),
            )
            for a in (body or {}).get("assets") or []
        ]

    async def upload_asset(
        self,
        data: bytes,
        filename: str,
        size: int,
        taken_at: datetime | None,
        description: str,
    ) -> UploadResult:
        """
        Upload one asset.

        A missing `taken_at` is sent as the current time. Immich answers
        `status: duplicate` when it already holds identical content.

        Raises:
            UploadError: Destination rejected the upload.
        """
        timestamp = _iso(taken_at)
        form = FormData()
        form.add_field("deviceAssetId", f"{filename}-{size}")
        form.add_field("deviceId", DEVICE_ID)
        form.add_field("fileCreatedAt", timestamp)
        form.add_field("fileModifiedAt", timestamp)
        form.add_field("filename", filename)
        form.add_field(
            "assetData", data, filename=filename, content_type="application/octet-stream"
        )
        body = await self._request("POST", "/assets", data=form, error_cls=UploadError)
        body = body or {}
        result = UploadResult(
            asset_id=str(body.get("id") or ""),
            duplicate=body.get("status") == "duplicate" or body.get("duplicate") is True,
        )

        if result.asset_id and description and not result.duplicate:
            try:
                await self._request(
                    "PUT", f"/assets/{result.asset_id}", json={"description": description}
                )
            except DestinationError as e:
                warn(f"Could not set description on {filename}: {e}")
        return result

    async def add_assets_to_album(self, album_id: str, asset_ids: Sequence[str]) -> None:
        """
        Add assets to an album. Ids already in the album come back as
        `duplicate` errors, which are fine.
        """
        body = await self._request("PUT", f"/albums/{album_id}/assets", json={"ids": list(asset_ids)})
        for row in body or []:
            if not row.get("success") and row.get("error") not in (None, "duplicate"):
                warn(f"Asset {row.get('id')} not added to album: {row.get('error')}")
