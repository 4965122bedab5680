import pytest

from chains import BSC, SOLANA
from errors import TransportError
from http_client import HttpResponse
from prices import PriceResolver

T0 = 1_700_000_000


def series(*points):
    return {"prices": [[ts * 1000, price] for ts, price in points]}


def test_nearest_timestamp_lookup(transport):
    transport.add_json("coins/solana/market_chart/range", series((T0, 50.0), (T0 + 3600, 60.0), (T0 + 7200, 70.0)))
    resolver = PriceResolver(SOLANA, transport)
    resolver.build(T0, T0 + 7200)

    assert resolver.price_at(T0) == 50.0
    assert resolver.price_at(T0 + 1000) == 50.0
    assert resolver.price_at(T0 + 2000) == 60.0
    assert resolver.price_at(T0 - 99999) == 50.0
    assert resolver.price_at(T0 + 99999) == 70.0
    assert resolver.used_fallback is False


def test_series_is_sorted_and_range_padded(transport):
    transport.add_json("market_chart/range", series((T0 + 3600, 2.0), (T0, 1.0)))
    resolver = PriceResolver(SOLANA, transport)
    points = resolver.build(T0, T0 + 3600)

    assert [p[0] for p in points] == [T0, T0 + 3600]
    params = transport.calls[0][2]
    assert params["vs_currency"] == "usd"
    assert params["from"] == T0 - 86400
    assert params["to"] == T0 + 3600 + 86400


def test_api_key_is_sent_as_header(transport):
    transport.add_json("market_chart/range", series((T0, 1.0)))
    PriceResolver(SOLANA, transport, api_key="cg-key").build(T0, T0)
    assert transport.calls[0][3] == {"x-cg-demo-api-key": "cg-key"}


def test_http_error_falls_back_to_sentinel(transport):
    transport.add("market_chart/range", HttpResponse(500))
    resolver = PriceResolver(SOLANA, transport)
    assert resolver.build(T0, T0) == []

    assert resolver.used_fallback is True
    assert resolver.price_at(T0) == pytest.approx(150.0)


def test_timeout_falls_back_to_sentinel(transport):
    transport.add("market_chart/range", TransportError("timeout"))
    resolver = PriceResolver(BSC, transport)
    resolver.build(T0, T0)

    assert resolver.used_fallback is True
    assert resolver.price_at(T0) == BSC.fallback_price_usd


def test_empty_series_falls_back(transport):
    transport.add_json("market_chart/range", {"prices": []})
    resolver = PriceResolver(SOLANA, transport)
    resolver.build(T0, T0)
    assert resolver.used_fallback is True


def test_chain_selects_price_asset(transport):
    transport.add_json("market_chart/range", series((T0, 600.0)))
    PriceResolver(BSC, transport).build(T0, T0)
    assert "coins/binancecoin/" in transport.calls[0][1]
