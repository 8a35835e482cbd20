"""
HTTP client for the channel site.
Fetches the channel page, HLS playlists and segment bodies.
"""

from typing import Optional

import aiohttp

from .logger import get_logger


class SiteClient:
    """
    Thin aiohttp wrapper shared by every capture component.

    One ClientSession per process, optional HTTP proxy on every request,
    raise_for_status on every response so callers decide what an error means.
    """

    BASE_URL = "https://chaturbate.com/"
    USER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    )

    def __init__(
        self,
        channel: str,
        proxy_url: Optional[str] = None,
        timeout: float = 30.0,
        base_url: Optional[str] = None
    ):
        """
        Initialize the client.

        Args:
            channel: Channel username.
            proxy_url: Optional proxy routed through for every request.
            timeout: Total seconds allowed per request.
            base_url: Site root, overridable for tests.
        """
        self.channel = channel
        self.proxy_url = proxy_url or None
        self.timeout = timeout
        self.base_url = base_url or self.BASE_URL

        self._session: Optional[aiohttp.ClientSession] = None
        self._logger = get_logger('site_client')

    @property
    def channel_url(self) -> str:
        return f"{self.base_url}{self.channel}"

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.USER_AGENT}
            )
            if self.proxy_url:
                self._logger.info(f"Routing requests through proxy {self.proxy_url}")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> 'SiteClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    def _require_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("SiteClient is not connected")
        return self._session

    async def get_text(self, url: str) -> str:
        """
        GET a URL and return the decoded body.

        Raises:
            aiohttp.ClientError: Connection failure or error status.
            asyncio.TimeoutError: Request exceeded the timeout.
        """
        session = self._require_session()
        async with session.get(url, proxy=self.proxy_url) as resp:
            resp.raise_for_status()
            return await resp.text(errors='replace')

    async def get_bytes(self, url: str) -> bytes:
        """GET a URL and return the raw body (whole file, no ranges)."""
        session = self._require_session()
        async with session.get(url, proxy=self.proxy_url) as resp:
            resp.raise_for_status()
            return await resp.read()

    async def get_channel_page(self) -> str:
        """Fetch the channel page HTML."""
        return await self.get_text(self.channel_url)
