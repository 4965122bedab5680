import pytest

from models import ClassifiedTrade
from portfolio import PositionLedger, compute_summary

DAY = 86400
T0 = 1_700_000_000  # 2023-11-14 UTC


def trade(ts, token, direction, amount, usd, native=0.1, symbol=None, estimated=False):
    return ClassifiedTrade(
        timestamp=ts,
        token_id=token,
        token_symbol=symbol or token.upper(),
        direction=direction,
        token_amount=amount,
        native_amount=native,
        usd_value=usd,
        estimated=estimated,
    )


def assert_invariants(ledger):
    for pos in ledger.positions.values():
        assert pos.held_amount >= 0
        assert pos.cost_basis_usd >= 0
        if pos.held_amount == 0:
            assert pos.cost_basis_usd == 0


def test_full_round_trip_realizes_profit():
    ledger = PositionLedger()
    ledger.apply(trade(T0, "a", "buy", 100, 10))
    sale = ledger.apply_sell(trade(T0 + 60, "a", "sell", 100, 15))

    assert sale.realized_pnl_usd == pytest.approx(5)
    assert ledger.positions["a"].held_amount == 0
    assert ledger.positions["a"].cost_basis_usd == 0


def test_partial_sell_removes_proportional_cost():
    ledger = PositionLedger()
    ledger.apply(trade(T0, "a", "buy", 100, 10))
    sale = ledger.apply_sell(trade(T0 + 60, "a", "sell", 40, 6))

    assert sale.cost_removed_usd == pytest.approx(4)
    assert sale.realized_pnl_usd == pytest.approx(2)
    pos = ledger.positions["a"]
    assert pos.held_amount == pytest.approx(60)
    assert pos.cost_basis_usd == pytest.approx(6)


def test_sell_without_position_counts_full_proceeds():
    ledger = PositionLedger()
    sale = ledger.apply_sell(trade(T0, "a", "sell", 50, 8))

    assert sale.cost_removed_usd == 0
    assert sale.realized_pnl_usd == pytest.approx(8)
    assert ledger.positions["a"].held_amount == 0
    assert ledger.positions["a"].cost_basis_usd == 0


def test_oversell_is_capped_at_held_amount():
    ledger = PositionLedger()
    ledger.apply(trade(T0, "a", "buy", 10, 20))
    sale = ledger.apply_sell(trade(T0 + 1, "a", "sell", 25, 30))

    assert sale.tokens_sold == pytest.approx(10)
    assert sale.cost_removed_usd == pytest.approx(20)
    assert ledger.positions["a"].held_amount == 0
    assert ledger.stats["a"].tokens_sold == pytest.approx(10)


def test_invariants_hold_after_every_mutation():
    trades = [
        trade(T0, "a", "buy", 3, 1.5),
        trade(T0 + 1, "a", "sell", 1, 0.9),
        trade(T0 + 2, "b", "sell", 7, 2.0),
        trade(T0 + 3, "a", "buy", 0.5, 0.1),
        trade(T0 + 4, "a", "sell", 2.5, 4.0),
        trade(T0 + 5, "b", "buy", 1e-10, 1e-10),
        trade(T0 + 6, "b", "sell", 1, 0.01),
        trade(T0 + 7, "a", "sell", 1, 1),
    ]
    ledger = PositionLedger()
    for t in trades:
        ledger.apply(t)
        assert_invariants(ledger)


def test_reordering_within_timestamp_order_gives_same_state():
    trades = [
        trade(T0, "a", "buy", 100, 10),
        trade(T0 + 10, "b", "buy", 5, 50),
        trade(T0 + 20, "a", "sell", 30, 4),
        trade(T0 + 30, "b", "sell", 5, 40),
        trade(T0 + 40, "a", "sell", 70, 20),
    ]
    first = PositionLedger().replay(trades)
    second = PositionLedger().replay(list(reversed(trades)))

    assert first.positions == second.positions
    assert first.stats == second.stats


def test_applying_older_trade_after_newer_raises():
    ledger = PositionLedger()
    ledger.apply(trade(T0 + 10, "a", "buy", 1, 1))
    with pytest.raises(ValueError):
        ledger.apply(trade(T0, "a", "sell", 1, 1))


def test_total_pnl_matches_stats_and_is_reproducible():
    trades = [
        trade(T0, "a", "buy", 100, 10),
        trade(T0 + DAY, "a", "sell", 50, 9),
        trade(T0 + DAY, "b", "buy", 10, 100),
        trade(T0 + 2 * DAY, "b", "sell", 10, 60),
        trade(T0 + 3 * DAY, "c", "sell", 1, 3),
    ]
    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")
    ledger = PositionLedger().replay(trades)
    expected = sum(st.received_usd - st.cost_basis_removed_usd for st in ledger.stats.values())

    assert summary.total_pnl_usd == pytest.approx(expected)
    assert summary.total_pnl_usd == pytest.approx(4 - 40 + 3)
    again = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")
    assert again.total_pnl_usd == summary.total_pnl_usd


def test_top_lists_are_sorted_and_capped():
    trades = []
    ts = T0
    for i in range(7):
        token = f"win{i}"
        trades.append(trade(ts, token, "buy", 1, 10))
        trades.append(trade(ts + 1, token, "sell", 1, 10 + i + 1))
        ts += 10
    for i in range(6):
        token = f"loss{i}"
        trades.append(trade(ts, token, "buy", 1, 10))
        trades.append(trade(ts + 1, token, "sell", 1, 10 - i - 1))
        ts += 10

    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")

    assert [w.token_id for w in summary.top_wins] == ["win6", "win5", "win4", "win3", "win2"]
    assert [l.token_id for l in summary.top_losses] == ["loss5", "loss4", "loss3", "loss2", "loss1"]
    assert summary.top_losses[0].pnl_usd == pytest.approx(-6)


def test_ties_keep_first_seen_token():
    trades = [
        trade(T0, "first", "buy", 1, 1),
        trade(T0 + 1, "second", "buy", 1, 1),
        trade(T0 + 2, "first", "sell", 1, 3),
        trade(T0 + 3, "second", "sell", 1, 3),
    ]
    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")
    assert [w.token_id for w in summary.top_wins] == ["first", "second"]


def test_busiest_and_best_days():
    trades = [
        trade(T0, "a", "buy", 10, 10),
        trade(T0 + DAY, "a", "sell", 5, 20),
        trade(T0 + DAY + 5, "b", "buy", 1, 1),
        trade(T0 + DAY + 6, "b", "buy", 1, 1),
        trade(T0 + 2 * DAY, "a", "sell", 5, 6),
    ]
    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")

    assert summary.busiest_day.date == "2023-11-15"
    assert summary.busiest_day.trade_count == 3
    assert summary.best_pnl_day.date == "2023-11-15"
    assert summary.best_pnl_day.realized_pnl_usd == pytest.approx(15)


def test_win_rate_hold_time_and_counts():
    trades = [
        trade(T0, "a", "buy", 1, 10),
        trade(T0 + 100, "a", "sell", 1, 20),
        trade(T0 + 200, "b", "buy", 1, 10),
        trade(T0 + 500, "b", "sell", 1, 5),
        trade(T0 + 600, "c", "buy", 1, 10, estimated=True),
    ]
    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")

    assert summary.win_rate_pct == pytest.approx(50)
    assert summary.median_hold_seconds == 200
    assert summary.tokens_traded == 3
    assert summary.open_positions == 1
    assert summary.estimated_buys == 1
    assert summary.total_trades == 5
    assert summary.total_volume_native == pytest.approx(0.5)


def test_empty_ledger_reports_no_activity():
    summary = compute_summary(PositionLedger(), "w", "solana", "SOL")
    assert summary.status == "no_activity"
    assert summary.total_trades == 0
    assert summary.busiest_day is None
    assert summary.top_wins == []


def test_to_dict_rounds_and_reports_discrepancy():
    trades = [trade(T0, "a", "buy", 1, 1.004), trade(T0 + 1, "a", "sell", 1, 2.0)]
    summary = compute_summary(PositionLedger().replay(trades), "w", "solana", "SOL")
    summary.provider_reported_pnl_usd = 0.5
    summary.warnings = ["Helius: stopped early"]

    d = summary.to_dict()
    assert d["total_pnl_usd"] == 1.0
    assert d["top_wins"][0]["symbol"] == "A"
    assert d["top_wins"][0]["last_trade_date"] == "2023-11-14"
    assert d["pnl_discrepancy_usd"] == 0.5
    assert d["partial"] is True


def test_metadata_updates_symbol_and_image():
    ledger = PositionLedger().replay([trade(T0, "a", "buy", 1, 1), trade(T0 + 1, "a", "sell", 1, 2)])
    ledger.set_metadata("a", "BONK", "https://img/bonk.png")
    summary = compute_summary(ledger, "w", "solana", "SOL")
    assert summary.top_wins[0].symbol == "BONK"
    assert summary.top_wins[0].image_url == "https://img/bonk.png"


def test_merged_ledgers_prefix_tokens_and_sum_days():
    sol = PositionLedger().replay([trade(T0, "a", "buy", 1, 1), trade(T0 + 1, "a", "sell", 1, 3)])
    eth = PositionLedger().replay([trade(T0 + 2, "a", "buy", 1, 5), trade(T0 + 3, "a", "sell", 1, 4)])
    merged = PositionLedger.merged({"solana": sol, "base": eth})
    summary = compute_summary(merged, "w", "solana,base", "USD")

    assert set(merged.stats) == {"solana:a", "base:a"}
    assert summary.total_trades == 4
    assert summary.total_pnl_usd == pytest.approx(1)
    assert summary.busiest_day.trade_count == 4
    assert summary.total_volume_native == pytest.approx(13)
