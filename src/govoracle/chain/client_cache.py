"""Per-network blockchain clients, created lazily and owned by the app.

A ClientHandle bundles a connected AsyncWeb3 client with the governance and
oracle contracts of one network. ClientCache creates each handle on first
use and keeps it until close(). Creation is guarded per network id, so
concurrent first calls for one network dial once and unrelated networks
never wait on each other.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import Web3Exception

from ..core.config import NetworkConfig
from ..core.exceptions import AbiParseError, ChainConnectionError, ConfigNotFoundError

logger = logging.getLogger(__name__)

# Failures of an RPC round trip (unreachable node, timeout, JSON-RPC error)
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, Web3Exception)


def load_abi(path: Path | None, bundled: str) -> list[dict[str, Any]]:
    """Load a contract ABI from `path`, or the bundled `abi/<bundled>.json`.

    Accepts a bare ABI list or a build artifact with an "abi" key.

    Raises:
        AbiParseError: unreadable file, invalid JSON, or not an ABI
    """
    name = str(path) if path is not None else f"{bundled} (bundled)"
    try:
        if path is None:
            text = resources.files("govoracle.chain").joinpath("abi", f"{bundled}.json").read_text()
        else:
            text = Path(path).read_text()
        data = json.loads(text)
    except (OSError, json.JSONDecodeError) as e:
        raise AbiParseError(name, str(e)) from e

    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list) or not all(isinstance(entry, dict) and "type" in entry for entry in data):
        raise AbiParseError(name, "expected a list of ABI entries")
    return data


@dataclass
class ClientHandle:
    """A connected client plus the parsed contracts of one network."""

    network: NetworkConfig
    w3: Any  # AsyncWeb3
    governance: Any  # AsyncContract
    oracle: Any  # AsyncContract

    @property
    def network_id(self) -> int:
        return self.network.id

    async def close(self) -> None:
        provider = getattr(self.w3, "provider", None)
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()


class ClientCache:
    """Registry of ClientHandles keyed by network id.

    Args:
        networks: Network descriptors the cache may dial.
        rpc_timeout: Timeout in seconds for each RPC request.
    """

    def __init__(self, networks: list[NetworkConfig], rpc_timeout: float = 15.0):
        self._networks = {network.id: network for network in networks}
        self._rpc_timeout = rpc_timeout
        self._handles: dict[int, ClientHandle] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._closed = False

    def __contains__(self, network_id: int) -> bool:
        return network_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    def register(self, handle: ClientHandle) -> None:
        """Install a ready-made handle (e.g. a fake in tests)."""
        self._networks.setdefault(handle.network_id, handle.network)
        self._handles[handle.network_id] = handle

    async def get_client(self, network_id: int) -> ClientHandle:
        """Return the handle for `network_id`, creating it on first use.

        Raises:
            ConfigNotFoundError: no network with that id is configured
            AbiParseError: a contract interface could not be parsed
            ChainConnectionError: the RPC endpoint could not be dialed
        """
        handle = self._handles.get(network_id)
        if handle is not None:
            return handle

        if self._closed:
            raise ChainConnectionError(network_id, "", "client cache is closed")
        network = self._networks.get(network_id)
        if network is None:
            raise ConfigNotFoundError(network_id)

        lock = self._locks.setdefault(network_id, asyncio.Lock())
        async with lock:
            # Another caller may have finished creating it while we waited
            handle = self._handles.get(network_id)
            if handle is None:
                handle = await self._create(network)
                self._handles[network_id] = handle
        return handle

    async def _create(self, network: NetworkConfig) -> ClientHandle:
        governance_abi = load_abi(network.governance_abi, "governance")
        oracle_abi = load_abi(network.oracle_abi, "oracle")

        provider = AsyncHTTPProvider(
            network.rpc_url,
            request_kwargs={"timeout": aiohttp.ClientTimeout(total=self._rpc_timeout)},
        )
        w3 = AsyncWeb3(provider)
        try:
            chain_id = await w3.eth.chain_id
        except TRANSPORT_ERRORS as e:
            await provider.disconnect()
            raise ChainConnectionError(network.id, network.rpc_url, str(e)) from e

        if chain_id != network.id:
            logger.warning(
                "Network %s (%s) reports chain id %s, expected %s",
                network.name,
                network.rpc_url,
                chain_id,
                network.id,
            )

        try:
            governance = w3.eth.contract(address=Web3.to_checksum_address(network.governance_contract), abi=governance_abi)
            oracle = w3.eth.contract(address=Web3.to_checksum_address(network.oracle_contract), abi=oracle_abi)
        except (ValueError, TypeError, Web3Exception) as e:
            await provider.disconnect()
            raise AbiParseError(network.name, str(e)) from e

        logger.info("Connected to network %s (id=%d) at %s", network.name, network.id, network.rpc_url)
        return ClientHandle(network=network, w3=w3, governance=governance, oracle=oracle)

    async def close(self) -> None:
        """Disconnect every handle; later get_client calls fail."""
        self._closed = True
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            try:
                await handle.close()
            except (aiohttp.ClientError, OSError) as e:
                logger.warning("Error closing client for network %d: %s", handle.network_id, e)
        if handles:
            logger.info("Closed %d blockchain client(s)", len(handles))
