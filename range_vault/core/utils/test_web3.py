from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from range_vault.core.utils import web3 as web3_utils


class _FakeProvider:
    def __init__(self):
        self.disconnected = False

    async def disconnect(self):
        self.disconnected = True


@pytest.fixture
def built(monkeypatch):
    calls: list[tuple[str, int]] = []

    def fake_get_web3(rpc, chain_id):
        calls.append((rpc, chain_id))
        w3 = MagicMock()
        w3.provider = _FakeProvider()
        return w3

    monkeypatch.setattr(
        web3_utils, "get_rpc_urls", lambda: {"1": ["https://a.invalid", "https://b.invalid"]}
    )
    monkeypatch.setattr(web3_utils, "_get_web3", fake_get_web3)
    return calls


@pytest.mark.asyncio
async def test_web3_from_chain_id_builds_only_the_first_rpc(built):
    async with web3_utils.web3_from_chain_id(1) as w3:
        assert w3.provider.disconnected is False

    assert built == [("https://a.invalid", 1)]
    assert w3.provider.disconnected is True


@pytest.mark.asyncio
async def test_web3_from_chain_id_requires_configured_chain(built):
    with pytest.raises(ValueError, match="No RPCs configured"):
        async with web3_utils.web3_from_chain_id(8453):
            pass
    assert built == []


def test_single_rpc_string_is_accepted(monkeypatch):
    monkeypatch.setattr(web3_utils, "get_rpc_urls", lambda: {1: "https://a.invalid"})
    assert web3_utils._get_rpcs_for_chain_id(1) == ["https://a.invalid"]
