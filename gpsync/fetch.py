"""Throttle-aware HTTP client used for every request to the album host."""

import asyncio
import random

from aiohttp import ClientResponse, ClientSession, ClientTimeout, client_exceptions

from gpsync.errors import ThrottledError, TransportError
from gpsync.utils import dbg, get_random_user_agent, warn

REQUEST_TIMEOUT = 60
MAX_ATTEMPTS = 5
BACKOFF_SECONDS = 5.0
JITTER_WINDOW = (0.5, 1.5)
TRANSPORT_RETRIES = 3


def create_session(timeout: float = REQUEST_TIMEOUT) -> ClientSession:
    """Create a session with a fixed per-request ceiling."""
    return ClientSession(timeout=ClientTimeout(total=timeout))


def _retry_after(response: ClientResponse) -> float | None:
    value = response.headers.get("Retry-After")
    if value and str(value).strip().isdigit():
        return float(value)
    return None


class FetchClient:
    """
    Issue requests to the album host with anti-throttling behaviour.

    Every request carries a browser identity. Requests other than HEAD probes
    are preceded by a random pause. A 429 answer is never returned as an error:
    the client waits (Retry-After when given, linear backoff otherwise) and
    tries again until `max_attempts` responses were received, then hands back
    the last response as-is. Callers always check `status` themselves and own
    the returned response (`async with resp:`).
    """

    def __init__(
        self,
        session: ClientSession,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: float = BACKOFF_SECONDS,
        jitter: tuple[float, float] = JITTER_WINDOW,
        transport_retries: int = TRANSPORT_RETRIES,
    ) -> None:
        self.session = session
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.jitter = jitter
        self.transport_retries = max(0, transport_retries)

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": get_random_user_agent(),
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.7",
        }

    async def _send(self, method: str, url: str) -> ClientResponse:
        """Send once, retrying connection failures and timeouts only."""
        last_exc: Exception | None = None
        for attempt in range(self.transport_retries + 1):
            try:
                return await self.session.request(
                    method, url, headers=self._headers(), allow_redirects=True
                )
            except (client_exceptions.ClientError, asyncio.TimeoutError) as e:
                last_exc = e
                dbg(f"{method} {url} failed (attempt {attempt + 1}): {e!r}")
                if attempt < self.transport_retries:
                    await asyncio.sleep(self.backoff * (attempt + 1))
        raise TransportError(f"{method} {url}: {last_exc!r}") from last_exc

    @staticmethod
    def _check_throttle(response: ClientResponse) -> None:
        if response.status == 429:
            raise ThrottledError(_retry_after(response))

    async def fetch(self, url: str, method: str = "GET") -> ClientResponse:
        """
        Perform one logical request.

        Args:
            url (str): Target URL.
            method (str): HTTP method; HEAD skips the random pre-delay.

        Returns:
            ClientResponse: The first non-429 response, or the last 429 once
            the attempt ceiling is reached.

        Raises:
            TransportError: Connectivity failure after the retry budget.
        """
        method = method.upper()
        if method != "HEAD":
            await asyncio.sleep(random.uniform(*self.jitter))

        response = None
        for attempt in range(1, self.max_attempts + 1):
            response = await self._send(method, url)
            dbg(f"{method} {url} -> {response.status}")
            try:
                self._check_throttle(response)
            except ThrottledError as throttled:
                if attempt == self.max_attempts:
                    break
                response.close()
                delay = (
                    throttled.retry_after
                    if throttled.retry_after is not None
                    else self.backoff * attempt
                )
                warn(f"Rate limited (429). Retrying in {delay:.0f}s...")
                await asyncio.sleep(delay)
                continue
            return response

        return response

    async def get(self, url: str) -> ClientResponse:
        """GET with pre-delay and throttle handling."""
        return await self.fetch(url, "GET")

    async def head(self, url: str) -> ClientResponse:
        """Lightweight HEAD probe, exempt from the pre-delay."""
        return await self.fetch(url, "HEAD")
