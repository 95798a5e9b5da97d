"""Client and normalizer for the external power-computation service.

The service answers, for one address on one network as of one day, four
power components as decimal strings plus the block height the figures were
taken at. This module turns that answer into a PowerSnapshot with exact
integer components; it never computes power itself.

Request (POST {base_url}/v1/power/address):
    {"net_id": 314, "address": "0x...", "day": "20240131", "random_num": 123}

Response:
    {"developer_power": "...", "sp_power": "...", "client_power": "...",
     "token_holder_power": "...", "block_height": 123, "date_str": "20240131"}
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import date
from typing import Any

import aiohttp

from ..core.exceptions import PowerParseError, PowerServiceError
from ..core.models import PowerSnapshot
from ..storage.store import GovernanceStore

logger = logging.getLogger(__name__)

POWER_PATH = "/v1/power/address"

# Response field -> PowerSnapshot attribute
POWER_FIELDS = {
    "developer_power": "developer",
    "sp_power": "sp",
    "client_power": "client",
    "token_holder_power": "token_holder",
}


def parse_power_value(field: str, value: Any) -> int:
    """Parse one power component; only unsigned base-10 integers are accepted.

    Raises:
        PowerParseError: missing, non-numeric, or negative value
    """
    if isinstance(value, bool) or value is None:
        raise PowerParseError(field, value)
    if isinstance(value, int):
        if value < 0:
            raise PowerParseError(field, value)
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value, 10)
    raise PowerParseError(field, value)


def parse_power_response(network_id: int, address: str, day: date, data: Any) -> PowerSnapshot:
    """Build a PowerSnapshot from a decoded service response.

    Raises:
        PowerParseError: any component or the block height is missing or invalid
    """
    if not isinstance(data, dict):
        raise PowerParseError("response", data)
    components = {attr: parse_power_value(field, data.get(field)) for field, attr in POWER_FIELDS.items()}
    block_height = parse_power_value("block_height", data.get("block_height"))
    return PowerSnapshot(
        network_id=network_id,
        address=address,
        day=day,
        block_height=block_height,
        **components,
    )


class PowerAggregator:
    """Fetches normalized power snapshots from the power service.

    Args:
        base_url: Service base URL.
        timeout: Request timeout in seconds.
        store: When given, backup_power() persists what it fetches.
    """

    def __init__(self, base_url: str, timeout: float = 15.0, store: GovernanceStore | None = None):
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._store = store
        self._session: aiohttp.ClientSession | None = None
        self._stats = {"requests": 0, "failures": 0, "parse_errors": 0}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        """POST a JSON body and return the decoded JSON answer.

        Raises:
            PowerServiceError: transport failure, timeout, non-200 status or non-JSON body
        """
        url = f"{self.base_url}{path}"
        session = await self._get_session()
        try:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise PowerServiceError(
                        f"Power service returned HTTP {response.status}",
                        {"url": url, "status": response.status, "body": body[:200]},
                    )
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise PowerServiceError(f"Power service request failed: {e}", {"url": url}) from e

    async def get_power(self, network_id: int, address: str, day: date) -> PowerSnapshot:
        """Fetch the power of `address` on `network_id` as of `day`.

        Raises:
            PowerServiceError: the service could not be reached
            PowerParseError: the answer is malformed; no snapshot is produced
        """
        self._stats["requests"] += 1
        payload = {
            "net_id": network_id,
            "address": address,
            "day": day.strftime("%Y%m%d"),
            "random_num": secrets.randbelow(2**31),
        }
        try:
            data = await self._post_json(POWER_PATH, payload)
        except PowerServiceError:
            self._stats["failures"] += 1
            raise

        try:
            snapshot = parse_power_response(network_id, address, day, data)
        except PowerParseError:
            self._stats["parse_errors"] += 1
            raise

        date_str = data.get("date_str")
        if date_str and date_str != payload["day"]:
            logger.debug("Power service answered for %s, requested %s (%s)", date_str, payload["day"], address)
        return snapshot

    async def backup_power(self, network_id: int, address: str, day: date) -> PowerSnapshot:
        """Fetch a snapshot and persist it; repeated backups of one key are no-ops."""
        snapshot = await self.get_power(network_id, address, day)
        if self._store is not None:
            await asyncio.to_thread(self._store.save_power_snapshot, snapshot)
        return snapshot

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def get_stats(self) -> dict[str, int]:
        return dict(self._stats)
