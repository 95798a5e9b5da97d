"""Randomness-beacon (drand HTTP API) client.

Two queries per endpoint:
- chain info:   GET {url}/{chain_hash}/info
- round output: GET {url}/{chain_hash}/public/{round}

Endpoints are tried in configured order; the first one that answers wins.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..core.exceptions import NoBeaconAvailableError, RoundNotPublishedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeaconInfo:
    """Chain parameters of one beacon network, as reported by `url`."""

    url: str
    chain_hash: str
    public_key: bytes
    period: int
    genesis_time: int
    scheme: str

    @classmethod
    def from_dict(cls, url: str, chain_hash: str, data: dict[str, Any]) -> BeaconInfo:
        """Parse an info answer.

        Raises:
            ValueError: a field is missing or malformed
        """
        try:
            period = int(data["period"])
            genesis_time = int(data["genesis_time"])
            public_key = bytes.fromhex(data["public_key"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"incomplete beacon info: {e}") from e
        if period <= 0:
            raise ValueError(f"invalid beacon period {period}")
        return cls(
            url=url,
            chain_hash=data.get("hash", chain_hash),
            public_key=public_key,
            period=period,
            genesis_time=genesis_time,
            scheme=data.get("schemeID", "pedersen-bls-chained"),
        )

    def round_at(self, unlock_time: int) -> int:
        """First round whose signature is published at or after `unlock_time`.

        round = ceil((unlock_time - genesis) / period), never below 1.
        """
        if unlock_time <= self.genesis_time:
            return 1
        return max(1, math.ceil((unlock_time - self.genesis_time) / self.period))

    def round_time(self, round_number: int) -> int:
        """Unix time at which `round_number` is published."""
        return self.genesis_time + (round_number - 1) * self.period


class BeaconClient:
    """Queries the configured beacon endpoints with ordered fallback.

    Args:
        urls: Endpoints, most preferred first.
        chain_hash: Beacon chain to use.
        timeout: Request timeout in seconds.
    """

    def __init__(self, urls: list[str], chain_hash: str, timeout: float = 15.0):
        self.urls = [url.rstrip("/") for url in urls]
        self.chain_hash = chain_hash
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _get_json(self, url: str) -> tuple[int, Any]:
        """GET `url`; returns (status, decoded JSON or None)."""
        session = await self._get_session()
        async with session.get(url) as response:
            if response.status != 200:
                return response.status, None
            return response.status, await response.json(content_type=None)

    async def select_network(self) -> BeaconInfo:
        """Chain info from the first endpoint that answers the info probe.

        Raises:
            NoBeaconAvailableError: every endpoint failed
        """
        for url in self.urls:
            try:
                status, data = await self._get_json(f"{url}/{self.chain_hash}/info")
                if status != 200:
                    logger.warning("Beacon %s answered HTTP %d to info probe", url, status)
                    continue
                info = BeaconInfo.from_dict(url, self.chain_hash, data)
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning("Beacon %s unreachable: %s", url, e)
                continue
            if info.chain_hash != self.chain_hash:
                logger.warning("Beacon %s serves chain %s, expected %s", url, info.chain_hash, self.chain_hash)
                continue
            logger.debug("Using beacon %s (period=%ds, scheme=%s)", url, info.period, info.scheme)
            return info
        raise NoBeaconAvailableError(self.urls)

    async def fetch_round_signature(self, round_number: int) -> bytes:
        """Signature of `round_number` from the first endpoint that has it.

        Raises:
            RoundNotPublishedError: a reachable endpoint does not have the round yet
            NoBeaconAvailableError: no endpoint could be reached
        """
        not_published = False
        for url in self.urls:
            try:
                status, data = await self._get_json(f"{url}/{self.chain_hash}/public/{round_number}")
                if status == 200:
                    return bytes.fromhex(data["signature"])
                if status in (404, 425):
                    not_published = True
                else:
                    logger.warning("Beacon %s answered HTTP %d for round %d", url, status, round_number)
            except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError) as e:
                logger.warning("Beacon %s failed for round %d: %s", url, round_number, e)
        if not_published:
            raise RoundNotPublishedError(round_number)
        raise NoBeaconAvailableError(self.urls)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
