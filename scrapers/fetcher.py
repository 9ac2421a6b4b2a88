"""
HTTP fetcher for source adapters. Wraps aiohttp with common defaults,
headers, timeout, and optional proxy support.
"""

from typing import Optional
from urllib.parse import urljoin

import aiohttp

from models.config import settings


class Fetcher:
    """Lazily-opened aiohttp session shared by one adapter.

    Non-2xx responses raise aiohttp.ClientResponseError; adapters rely on the
    guarded call in SourceAdapter to turn that into an empty result.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        proxy: str | None = None,
        user_agent: str | None = None,
    ):
        self.timeout = aiohttp.ClientTimeout(
            total=timeout or settings.http.timeout,
            connect=settings.http.connect_timeout,
        )
        self.proxy = proxy or settings.http.proxy
        self.user_agent = user_agent or settings.http.user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
                raise_for_status=True,
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get(
        self,
        url: str,
        *,
        base_url: str | None = None,
        headers: dict | None = None,
        params: dict | None = None,
    ) -> str:
        full = urljoin(base_url, url) if base_url else url
        session = await self._get_session()
        async with session.get(
            full,
            headers=headers or {},
            params=_clean(params),
            proxy=self.proxy,
        ) as resp:
            return await resp.text()

    async def get_json(
        self,
        url: str,
        *,
        base_url: str | None = None,
        headers: dict | None = None,
        params: dict | None = None,
    ) -> dict | list:
        full = urljoin(base_url, url) if base_url else url
        session = await self._get_session()
        async with session.get(
            full,
            headers=headers or {},
            params=_clean(params),
            proxy=self.proxy,
        ) as resp:
            return await resp.json(content_type=None)

    async def head(
        self,
        url: str,
        *,
        base_url: str | None = None,
        headers: dict | None = None,
    ) -> int:
        """Returns status code."""
        full = urljoin(base_url, url) if base_url else url
        session = await self._get_session()
        async with session.head(
            full,
            headers=headers or {},
            allow_redirects=True,
            proxy=self.proxy,
        ) as resp:
            return resp.status


def _clean(params: dict | None) -> dict | None:
    """Drop None values and stringify the rest (aiohttp rejects non-str params)."""
    if not params:
        return None
    return {key: str(value) for key, value in params.items() if value is not None}
