"""Tests for govoracle.chain.client_cache - ABI loading and lazy per-network clients."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from govoracle.chain.client_cache import ClientCache, ClientHandle, load_abi
from govoracle.core.exceptions import AbiParseError, ChainConnectionError, ConfigNotFoundError


class TestLoadAbi:
    def test_bundled(self):
        names = {entry.get("name") for entry in load_abi(None, "governance")}
        assert {"ProposalCreate", "Vote"} <= names

    def test_artifact_file(self, tmp_path):
        path = tmp_path / "Gov.json"
        path.write_text(json.dumps({"abi": [{"type": "event", "name": "X", "inputs": []}]}))
        assert load_abi(path, "governance")[0]["name"] == "X"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(AbiParseError):
            load_abi(path, "governance")

    def test_not_an_abi(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"bytecode": "0x"}))
        with pytest.raises(AbiParseError, match="expected a list"):
            load_abi(path, "governance")

    def test_missing_file(self, tmp_path):
        with pytest.raises(AbiParseError):
            load_abi(tmp_path / "absent.json", "governance")


def _handle(network) -> ClientHandle:
    return ClientHandle(network=network, w3=MagicMock(), governance=MagicMock(), oracle=MagicMock())


class TestClientCache:
    @pytest.mark.asyncio
    async def test_unknown_network(self, network_config):
        cache = ClientCache([network_config])
        with pytest.raises(ConfigNotFoundError) as exc_info:
            await cache.get_client(1)
        assert exc_info.value.details == {"network_id": 1}

    @pytest.mark.asyncio
    async def test_concurrent_first_use_creates_once(self, network_config):
        cache = ClientCache([network_config])
        created = 0

        async def slow_create(network):
            nonlocal created
            created += 1
            await asyncio.sleep(0.01)
            return _handle(network)

        with patch.object(cache, "_create", side_effect=slow_create):
            handles = await asyncio.gather(*(cache.get_client(314) for _ in range(10)))

        assert created == 1
        assert all(h is handles[0] for h in handles)
        assert 314 in cache
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_failed_creation_is_retried(self, network_config):
        cache = ClientCache([network_config])
        create = AsyncMock(side_effect=[ChainConnectionError(314, "http://x", "down"), _handle(network_config)])
        with patch.object(cache, "_create", create):
            with pytest.raises(ChainConnectionError):
                await cache.get_client(314)
            assert (await cache.get_client(314)).network_id == 314
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_close_releases_handles(self, network_config):
        cache = ClientCache([network_config])
        handle = _handle(network_config)
        handle.w3.provider.disconnect = AsyncMock()
        cache.register(handle)

        await cache.close()

        handle.w3.provider.disconnect.assert_awaited_once()
        assert len(cache) == 0
        with pytest.raises(ChainConnectionError, match="closed"):
            await cache.get_client(314)

    @pytest.mark.asyncio
    async def test_unreachable_node(self, network_config):
        async def refuse():
            raise aiohttp.ClientConnectionError("refused")

        provider = MagicMock()
        provider.disconnect = AsyncMock()
        w3 = MagicMock()
        w3.eth.chain_id = refuse()

        with (
            patch("govoracle.chain.client_cache.AsyncHTTPProvider", return_value=provider),
            patch("govoracle.chain.client_cache.AsyncWeb3", return_value=w3),
        ):
            with pytest.raises(ChainConnectionError, match="refused"):
                await ClientCache([network_config]).get_client(314)
        provider.disconnect.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_creates_contracts(self, network_config):
        async def chain_id():
            return 314

        provider = MagicMock()
        w3 = MagicMock()
        w3.eth.chain_id = chain_id()

        with (
            patch("govoracle.chain.client_cache.AsyncHTTPProvider", return_value=provider) as provider_cls,
            patch("govoracle.chain.client_cache.AsyncWeb3", return_value=w3),
        ):
            handle = await ClientCache([network_config], rpc_timeout=3.0).get_client(314)

        assert handle.w3 is w3
        assert w3.eth.contract.call_count == 2
        timeout = provider_cls.call_args.kwargs["request_kwargs"]["timeout"]
        assert timeout.total == 3.0
