from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from range_vault.adapters.pool_adapter.onchain import PoolSnapshot, UniswapV3PoolReader
from range_vault.core.constants import Q96

POOL = "0x88e6A0c2dDD26FEEb64F039a2c41296FcB3f5640"
MODULE = "range_vault.adapters.pool_adapter.onchain"


class _FakeCall:
    def __init__(self, rv):
        self._rv = rv

    async def call(self, *args, **kwargs):
        return self._rv


class _FakePool:
    def __init__(self, tick=120, cumulatives=None):
        self._tick = tick
        self._cumulatives = cumulatives
        self.observed: list[list[int]] = []

    @property
    def functions(self):
        return self

    def slot0(self):
        return _FakeCall((Q96, self._tick, 1, 100, 100, 0, True))

    def tickSpacing(self):  # noqa: N802
        return _FakeCall(60)

    def fee(self):
        return _FakeCall(3000)

    def liquidity(self):
        return _FakeCall(10**18)

    def observe(self, seconds_agos):
        self.observed.append(list(seconds_agos))
        if self._cumulatives is not None:
            return _FakeCall((self._cumulatives, [0] * len(self._cumulatives)))
        # constant tick history: cumulative at -s is -s * tick
        return _FakeCall(([-s * self._tick for s in seconds_agos], [0] * len(seconds_agos)))


class _Web3Ctx:
    def __init__(self, contract):
        self._contract = contract

    async def __aenter__(self):
        w3 = MagicMock()
        w3.eth.contract.return_value = self._contract
        return w3

    async def __aexit__(self, *a):
        pass


def _reader() -> UniswapV3PoolReader:
    return UniswapV3PoolReader(chain_id=1, pool_address=POOL.lower())


def test_reader_checksums_pool_address():
    reader = _reader()
    assert reader.pool_address == POOL
    assert reader.adapter_type == "UNISWAP_V3_POOL_READER"


@pytest.mark.asyncio
async def test_get_pool_snapshot():
    fake = _FakePool(tick=120)
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(fake)):
        ok, snapshot = await _reader().get_pool_snapshot((300, 60))

    assert ok is True
    assert isinstance(snapshot, PoolSnapshot)
    assert fake.observed == [[0, 60, 300]]
    assert snapshot.current_tick() == 120
    assert snapshot.current_sqrt_price() == Q96
    assert snapshot.tick_spacing == 60
    assert snapshot.fee == 3000
    assert snapshot.time_weighted_average_tick(60) == 120
    assert snapshot.time_weighted_average_tick(300) == 120


@pytest.mark.asyncio
async def test_get_pool_snapshot_defaults_to_configured_windows():
    fake = _FakePool(tick=-60)
    reader = UniswapV3PoolReader({"twap_windows": [300]}, chain_id=1, pool_address=POOL)
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(fake)):
        ok, snapshot = await reader.get_pool_snapshot()

    assert ok is True
    assert fake.observed == [[0, 300]]
    assert snapshot.time_weighted_average_tick(300) == -60


@pytest.mark.asyncio
async def test_get_pool_snapshot_without_config_uses_one_minute():
    fake = _FakePool()
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(fake)):
        ok, _ = await _reader().get_pool_snapshot()
    assert ok is True
    assert fake.observed == [[0, 60]]

@pytest.mark.asyncio
async def test_get_pool_snapshot_rejects_bad_window():
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(_FakePool())):
        ok, err = await _reader().get_pool_snapshot((0,))
    assert ok is False
    assert "positive" in err


@pytest.mark.asyncio
async def test_get_pool_snapshot_reports_rpc_failure():
    with patch(f"{MODULE}.web3_from_chain_id", side_effect=ValueError("No RPCs configured")):
        ok, err = await _reader().get_pool_snapshot()
    assert ok is False
    assert "No RPCs" in err


def test_snapshot_twap_floors_and_requires_window():
    snapshot = PoolSnapshot(
        chain_id=1,
        pool_address=POOL,
        sqrt_price_x96=Q96,
        tick=0,
        tick_spacing=60,
        fee=3000,
        liquidity=0,
        tick_cumulatives={0: 0, 60: 30},
    )
    # (0 - 30) / 60 = -0.5 floors to -1
    assert snapshot.time_weighted_average_tick(60) == -1
    with pytest.raises(ValueError):
        snapshot.time_weighted_average_tick(120)


@pytest.mark.asyncio
async def test_check_twap_deviation_within_tolerance():
    # spot 120, TWAP over 60s = (7200 - 1200) / 60 = 100
    fake = _FakePool(tick=120, cumulatives=[7200, 1200])
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(fake)):
        ok, deviation = await _reader().check_twap_deviation(60, 20)
    assert ok is True
    assert deviation == 20


@pytest.mark.asyncio
async def test_check_twap_deviation_trips_guard():
    fake = _FakePool(tick=120, cumulatives=[7200, 1200])
    with patch(f"{MODULE}.web3_from_chain_id", return_value=_Web3Ctx(fake)):
        ok, err = await _reader().check_twap_deviation(60, 19)
    assert ok is False
    assert "exceeds 19" in err
