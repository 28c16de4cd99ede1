"""Shared builders and fakes for the test suite."""

from __future__ import annotations

import html as html_lib
import json
from typing import Any

from gpsync.models import MediaRecord

DEFAULT_TITLE = "Summer Trip · Jul 4–6 📸"
ALBUM_URL = "https://photos.app.goo.gl/abcDEF123"


def make_item(
    item_id: str = "AF1QipA",
    url: str | None = "https://lh3.googleusercontent.com/pw/AP1GczA",
    width: Any = 4032,
    height: Any = 3024,
    extra: list | None = None,
) -> list:
    """Positional item entry as found in the `ds:1` payload."""
    return [item_id, [url, width, height], *(extra or [])]


def make_payload(items: list, at_index: int = 1) -> list:
    """Top-level array with the item list at `at_index`."""
    if at_index == 0:
        return [items, None, "token"]
    return [["album-meta", None], items, "CAESZ2xvYg"]


def make_album_html(payload: Any, title: str | None = DEFAULT_TITLE) -> str:
    """Minimal shared-album page with a decoy `ds:0` block before `ds:1`."""
    meta = (
        f'<meta property="og:title" content="{html_lib.escape(title)}">'
        if title is not None
        else ""
    )
    return (
        "<!doctype html><html><head>"
        f"{meta}"
        "</head><body>"
        "<script nonce=\"n\">AF_initDataCallback({key: 'ds:0', hash: '1', data:[[\"decoy\"]], sideChannel: {}});</script>"
        "<script nonce=\"n\">AF_initDataCallback({key: 'ds:1', hash: '2', data:"
        f"{json.dumps(payload)}"
        ", sideChannel: {}});</script>"
        "</body></html>"
    )


def make_record(item_id: str, **overrides: Any) -> MediaRecord:
    values = {
        "item_id": item_id,
        "source_url": f"https://lh3.googleusercontent.com/pw/{item_id}",
        "width": 100,
        "height": 100,
        "taken_at": None,
    }
    values.update(overrides)
    return MediaRecord(**values)


class FakeResponse:
    """Just enough of aiohttp.ClientResponse for the code under test."""

    def __init__(
        self,
        status: int = 200,
        headers: dict[str, str] | None = None,
        body: bytes | str | Any = b"",
    ) -> None:
        self.status = status
        self.headers = headers or {}
        self._body = body
        self.released = False
        self.read_called = False

    def release(self) -> None:
        self.released = True

    def close(self) -> None:
        self.released = True

    async def read(self) -> bytes:
        self.read_called = True
        if isinstance(self._body, str):
            return self._body.encode("utf-8")
        return self._body

    async def text(self) -> str:
        data = await self.read()
        return data.decode("utf-8") if isinstance(data, bytes) else json.dumps(data)

    async def json(self, content_type: str | None = None) -> Any:
        if isinstance(self._body, (bytes, str)):
            return json.loads(self._body)
        return self._body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.release()


class FakeSession:
    """
    Scripted stand-in for aiohttp.ClientSession.

    `script` entries are returned in order; exceptions are raised.
    """

    def __init__(self, script: list) -> None:
        self.script = list(script)
        self.calls: list[dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        step = self.script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


class FakeFetchSession(FakeSession):
    """`await session.request(...)` style, as used by FetchClient."""

    async def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        return self._next(method, url, **kwargs)


class FakeApiSession(FakeSession):
    """`async with session.request(...)` style, as used by ImmichClient."""

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        return self._next(method, url, **kwargs)
