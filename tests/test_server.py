from fastapi.testclient import TestClient

from config import Settings
from http_client import HttpResponse
from server import create_app

from conftest import FakeTransport, TOKEN_MINT, WALLET, helius_swap

T0 = 1_700_000_000


def client_for(settings, transport):
    return TestClient(create_app(settings, transport_factory=lambda: transport))


def helius_settings():
    return Settings(helius_api_key="k", page_delay_seconds=0, rate_limit_retry_delay=0)


def test_health():
    client = client_for(Settings(), FakeTransport())
    response = client.get("/api/health")
    assert response.status_code == 200
    assert "solana" in response.json()["chains"]
    assert "evm" in response.json()["chains"]


def test_pnl_summary_json():
    transport = FakeTransport()
    buy = helius_swap("buy", T0, -1_000_005_000, [(TOKEN_MINT, 1_000_000_000, 6)])
    sell = helius_swap("sell", T0 + 60, 1_999_995_000, [(TOKEN_MINT, -1_000_000_000, 6)])
    transport.add_json("api.helius.xyz", [sell, buy], [])
    transport.add_json("market_chart/range", {"prices": [[T0 * 1000, 100.0]]})

    response = client_for(helius_settings(), transport).get(f"/api/pnl/{WALLET}")

    assert response.status_code == 200
    body = response.json()
    assert body["wallet"] == WALLET
    assert body["chain"] == "solana"
    assert body["status"] == "ok"
    assert body["total_trades"] == 2
    assert body["total_pnl_usd"] == 100.0
    assert len(body["top_wins"]) == 1


def test_no_activity_is_200():
    transport = FakeTransport().add_json("api.helius.xyz", [])
    response = client_for(helius_settings(), transport).get(f"/api/pnl/{WALLET}?chain=solana")
    assert response.status_code == 200
    assert response.json()["status"] == "no_activity"


def test_unknown_chain_is_400():
    response = client_for(helius_settings(), FakeTransport()).get(f"/api/pnl/{WALLET}?chain=dogechain")
    assert response.status_code == 400


def test_bad_date_is_400():
    response = client_for(helius_settings(), FakeTransport()).get(f"/api/pnl/{WALLET}?date_from=yesterday")
    assert response.status_code == 400


def test_missing_credentials_is_500_without_leaking_details():
    response = client_for(Settings(), FakeTransport()).get(f"/api/pnl/{WALLET}")
    assert response.status_code == 500
    assert "API_KEY" not in response.json()["detail"]


def test_all_providers_failing_is_502():
    transport = FakeTransport().add("api.helius.xyz", HttpResponse(500))
    response = client_for(helius_settings(), transport).get(f"/api/pnl/{WALLET}")
    assert response.status_code == 502
