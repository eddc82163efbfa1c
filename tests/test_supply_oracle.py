import asyncio

import aiohttp
import pytest

from woo_supply.adapters.adapter_supply_oracle import SupplyOracleClient, parse_total_supply

from _supply_fakes import ORACLE_URL, PRICE_URL, FakeResponse, FakeSession, make_config


def oracle_with(responses):
    return SupplyOracleClient(make_config(), http_session=FakeSession(responses))


def test_parse_total_supply_accepts_known_shapes():
    assert parse_total_supply({"total_supply": 1_000_000_000}) == 1_000_000_000.0
    assert parse_total_supply({"total_supply": "1999876543.25"}) == 1999876543.25
    assert parse_total_supply(1_500_000_000) == 1_500_000_000.0
    assert parse_total_supply("1500000000") == 1_500_000_000.0


@pytest.mark.parametrize("body", [{"supply": 1}, None, True, "n/a", {"total_supply": None}])
def test_parse_total_supply_rejects_malformed_bodies(body):
    with pytest.raises((ValueError, TypeError)):
        parse_total_supply(body)


def test_circulating_supply_subtracts_locked_amount():
    oracle = oracle_with({ORACLE_URL: FakeResponse(payload={"total_supply": 1_000_000_000})})
    assert asyncio.run(oracle.fetch_circulating_supply()) == 700_000_000.0


def test_circulating_supply_from_bare_number():
    oracle = oracle_with({ORACLE_URL: FakeResponse(payload=2_000_000_000)})
    assert asyncio.run(oracle.fetch_circulating_supply()) == 1_700_000_000.0


def test_oracle_failures_return_zero():
    for response in (
        FakeResponse(status=500, payload={"total_supply": 1_000_000_000}),
        FakeResponse(payload={"unexpected": True}),
        FakeResponse(payload=ValueError("invalid json")),
        aiohttp.ClientConnectionError("dns failure"),
    ):
        assert asyncio.run(oracle_with({ORACLE_URL: response}).fetch_circulating_supply()) == 0.0


def test_oracle_without_session_returns_zero():
    assert asyncio.run(SupplyOracleClient(make_config()).fetch_circulating_supply()) == 0.0


def test_total_below_locked_supply_is_unavailable():
    oracle = oracle_with({ORACLE_URL: FakeResponse(payload={"total_supply": 100_000_000})})
    assert asyncio.run(oracle.fetch_circulating_supply()) == 0.0


def test_token_metrics_derivations():
    oracle = oracle_with({
        ORACLE_URL: FakeResponse(payload={"total_supply": 2_000_000_000}),
        PRICE_URL: FakeResponse(payload={"woo-network": {
            "usd": 0.1, "usd_market_cap": 170_000_000.0, "usd_24h_change": -2.5,
        }}),
    })

    metrics = asyncio.run(oracle.fetch_token_metrics())

    assert metrics.total_supply == 2_000_000_000
    assert metrics.circulating_supply == 1_700_000_000
    assert metrics.burned_amount == 1_000_000_000
    assert metrics.price == 0.1
    assert metrics.market_cap == 170_000_000.0
    assert metrics.price_change_24h == -2.5
    assert metrics.fdv == pytest.approx(300_000_000.0)
    assert metrics.last_updated > 0


def test_token_metrics_without_price_data():
    oracle = oracle_with({
        ORACLE_URL: FakeResponse(payload={"total_supply": 2_000_000_000}),
        PRICE_URL: FakeResponse(status=429, payload={}),
    })

    metrics = asyncio.run(oracle.fetch_token_metrics())

    assert metrics.burned_amount == 1_000_000_000
    assert metrics.price is None
    assert metrics.fdv is None


def test_token_metrics_unavailable_without_total_supply():
    oracle = oracle_with({ORACLE_URL: FakeResponse(status=503, payload=None)})
    assert asyncio.run(oracle.fetch_token_metrics()) is None


@pytest.mark.parametrize("body", ["NaN", "Infinity", "-Infinity", {"total_supply": "NaN"}, float("nan"), float("inf")])
def test_parse_total_supply_rejects_non_finite_values(body):
    with pytest.raises(ValueError):
        parse_total_supply(body)


def test_non_finite_oracle_total_is_unavailable():
    for payload in ({"total_supply": float("nan")}, float("inf"), "NaN"):
        oracle = oracle_with({ORACLE_URL: FakeResponse(payload=payload)})
        assert asyncio.run(oracle.fetch_circulating_supply()) == 0.0
