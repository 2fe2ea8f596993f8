"""Thin aiohttp JSON client shared by the rate sources and the market loader.

JSON numbers with a fractional part are decoded as Decimal so that prices
and balances never pass through binary floating point.
"""

import json
from decimal import Decimal
from functools import partial
from typing import Any, Self

import aiohttp

from dexa.exceptions import AnalyticsError

decode_json = partial(json.loads, parse_float=Decimal)


class JsonHttpClient:
    """Owns one aiohttp session and issues JSON requests.

    Subclasses set ``error_cls`` to the exception raised on transport,
    status or payload failures.

    Usage:
        async with CoinGeckoSource(base_url) as source:
            coins = await source.coins_list()
    """

    error_cls: type[AnalyticsError] = AnalyticsError

    def __init__(self, base_url: str = "", timeout_seconds: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        ``url`` may be absolute or a path appended to ``base_url``.
        """
        if self._session is None:
            raise RuntimeError("Session not initialized. Call connect() first.")

        if not url.startswith(("http://", "https://")):
            url = f"{self.base_url}{url}"

        try:
            if method == "GET":
                response = await self._session.get(url, params=params)
            else:
                response = await self._session.post(url, json=payload, params=params)
            text = await response.text()
        except (aiohttp.ClientError, TimeoutError) as e:
            raise self.error_cls(f"{method} {url} failed: {e}") from e
        except UnicodeDecodeError as e:
            raise self.error_cls(f"undecodable body from {url}: {e}") from e

        if response.status != 200:
            raise self.error_cls(
                f"unexpected status code: {response.status}, error: {text[:200]}"
            )

        try:
            return decode_json(text)
        except json.JSONDecodeError as e:
            raise self.error_cls(f"invalid JSON from {url}: {e}") from e
