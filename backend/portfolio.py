"""
Position ledger: replays classified trades chronologically, keeping a
weighted-average cost basis per token and recording realized PnL on every
sale. The aggregator turns the ledger into the wallet summary.
"""

import statistics
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from models import ClassifiedTrade

# Amounts below this are treated as zero so a fully closed position has no cost left
ZERO_EPSILON = 1e-9
TOP_N = 5


def ts_to_date(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


# ── Data classes ──────────────────────────────────────────────────────────

@dataclass
class TokenPosition:
    token_id: str
    held_amount: float = 0.0
    cost_basis_usd: float = 0.0


@dataclass
class TokenStats:
    token_id: str
    symbol: str
    image_url: Optional[str] = None
    spent_usd: float = 0.0
    received_usd: float = 0.0
    tokens_bought: float = 0.0
    tokens_sold: float = 0.0
    cost_basis_removed_usd: float = 0.0
    realized_pnl_usd: float = 0.0
    buy_count: int = 0
    sell_count: int = 0
    first_buy_timestamp: int = 0
    last_sell_timestamp: int = 0
    last_trade_timestamp: int = 0


@dataclass
class SaleResult:
    tokens_sold: float
    cost_removed_usd: float
    realized_pnl_usd: float


@dataclass
class TokenResult:
    token_id: str
    symbol: str
    image_url: Optional[str]
    pnl_usd: float
    spent_usd: float
    received_usd: float
    last_trade_timestamp: int

    def to_dict(self) -> dict:
        d = asdict(self)
        d["pnl_usd"] = round(self.pnl_usd, 2)
        d["spent_usd"] = round(self.spent_usd, 2)
        d["received_usd"] = round(self.received_usd, 2)
        d["last_trade_date"] = ts_to_date(self.last_trade_timestamp) if self.last_trade_timestamp else None
        return d


@dataclass
class DayStat:
    date: str
    trade_count: int = 0
    sell_count: int = 0
    realized_pnl_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "trade_count": self.trade_count,
            "realized_pnl_usd": round(self.realized_pnl_usd, 2),
        }


# ── Ledger ────────────────────────────────────────────────────────────────

class PositionLedger:
    def __init__(self):
        self.positions: dict[str, TokenPosition] = {}
        self.stats: dict[str, TokenStats] = {}
        self.days: dict[str, DayStat] = {}
        self.trade_count = 0
        self.estimated_buys = 0
        self.volume_native = 0.0
        self.volume_usd = 0.0
        self._last_ts: Optional[int] = None

    def _position(self, token_id: str) -> TokenPosition:
        if token_id not in self.positions:
            self.positions[token_id] = TokenPosition(token_id=token_id)
        return self.positions[token_id]

    def _stats(self, trade: ClassifiedTrade) -> TokenStats:
        st = self.stats.get(trade.token_id)
        if st is None:
            st = TokenStats(token_id=trade.token_id, symbol=trade.token_symbol)
            self.stats[trade.token_id] = st
        return st

    def _day(self, ts: int) -> DayStat:
        date = ts_to_date(ts)
        if date not in self.days:
            self.days[date] = DayStat(date=date)
        return self.days[date]

    def _check_order(self, ts: int):
        if self._last_ts is not None and ts < self._last_ts:
            raise ValueError(f"Trade at {ts} applied after trade at {self._last_ts}; trades must be time-ordered")
        self._last_ts = ts

    def apply_buy(self, trade: ClassifiedTrade):
        self._check_order(trade.timestamp)
        pos = self._position(trade.token_id)
        pos.held_amount += trade.token_amount
        pos.cost_basis_usd += trade.usd_value

        st = self._stats(trade)
        st.spent_usd += trade.usd_value
        st.tokens_bought += trade.token_amount
        st.buy_count += 1
        if not st.first_buy_timestamp:
            st.first_buy_timestamp = trade.timestamp
        st.last_trade_timestamp = trade.timestamp
        if trade.estimated:
            self.estimated_buys += 1
        self._record(trade, 0.0)

    def apply_sell(self, trade: ClassifiedTrade) -> SaleResult:
        self._check_order(trade.timestamp)
        pos = self._position(trade.token_id)

        sold = min(trade.token_amount, pos.held_amount)
        cost_removed = (sold / pos.held_amount) * pos.cost_basis_usd if pos.held_amount > 0 else 0.0
        pos.held_amount -= sold
        pos.cost_basis_usd -= cost_removed
        if pos.held_amount < ZERO_EPSILON:
            pos.held_amount = 0.0
        if pos.cost_basis_usd < ZERO_EPSILON or pos.held_amount == 0.0:
            pos.cost_basis_usd = 0.0

        pnl = trade.usd_value - cost_removed

        st = self._stats(trade)
        st.received_usd += trade.usd_value
        st.tokens_sold += sold
        st.cost_basis_removed_usd += cost_removed
        st.realized_pnl_usd += pnl
        st.sell_count += 1
        st.last_sell_timestamp = trade.timestamp
        st.last_trade_timestamp = trade.timestamp
        self._record(trade, pnl)
        return SaleResult(tokens_sold=sold, cost_removed_usd=cost_removed, realized_pnl_usd=pnl)

    def _record(self, trade: ClassifiedTrade, pnl: float):
        self.trade_count += 1
        self.volume_native += trade.native_amount
        self.volume_usd += trade.usd_value
        day = self._day(trade.timestamp)
        day.trade_count += 1
        if not trade.is_buy:
            day.sell_count += 1
            day.realized_pnl_usd += pnl

    def apply(self, trade: ClassifiedTrade):
        if trade.is_buy:
            self.apply_buy(trade)
        else:
            self.apply_sell(trade)

    def replay(self, trades: list[ClassifiedTrade]) -> "PositionLedger":
        # sorted() is stable: same-second trades keep their input order
        for trade in sorted(trades, key=lambda t: t.timestamp):
            self.apply(trade)
        return self

    def set_metadata(self, token_id: str, symbol: str, image_url: Optional[str]):
        st = self.stats.get(token_id)
        if st:
            st.symbol = symbol or st.symbol
            st.image_url = image_url

    def open_positions(self) -> int:
        return sum(1 for p in self.positions.values() if p.held_amount > 0)

    @classmethod
    def merged(cls, ledgers: dict[str, "PositionLedger"]) -> "PositionLedger":
        """Combine per-chain ledgers; token ids become "<chain>:<token id>"."""
        out = cls()
        for chain_name, ledger in ledgers.items():
            for tid, pos in ledger.positions.items():
                key = f"{chain_name}:{tid}"
                out.positions[key] = replace(pos, token_id=key)
            for tid, st in ledger.stats.items():
                key = f"{chain_name}:{tid}"
                out.stats[key] = replace(st, token_id=key)
            for date, day in ledger.days.items():
                target = out.days.setdefault(date, DayStat(date=date))
                target.trade_count += day.trade_count
                target.sell_count += day.sell_count
                target.realized_pnl_usd += day.realized_pnl_usd
            out.trade_count += ledger.trade_count
            out.estimated_buys += ledger.estimated_buys
            out.volume_usd += ledger.volume_usd
        # Native units differ per chain; merged volume is carried in USD
        out.volume_native = out.volume_usd
        return out


# ── Aggregation ───────────────────────────────────────────────────────────

@dataclass
class PnLSummary:
    wallet: str
    chain: str
    native_symbol: str
    status: str = "ok"  # "ok" | "no_activity"
    provider: str = ""
    total_trades: int = 0
    total_volume_native: float = 0.0
    total_volume_usd: float = 0.0
    total_pnl_usd: float = 0.0
    top_wins: list[TokenResult] = field(default_factory=list)
    top_losses: list[TokenResult] = field(default_factory=list)
    busiest_day: Optional[DayStat] = None
    best_pnl_day: Optional[DayStat] = None
    tokens_traded: int = 0
    win_rate_pct: Optional[float] = None
    median_hold_seconds: Optional[int] = None
    open_positions: int = 0
    records_fetched: int = 0
    skipped_transfers: int = 0
    estimated_buys: int = 0
    price_fallback_used: bool = False
    provider_reported_pnl_usd: Optional[float] = None
    warnings: list[str] = field(default_factory=list)
    computed_at: str = ""

    @property
    def partial(self) -> bool:
        return bool(self.warnings)

    def to_dict(self) -> dict:
        d = {
            "wallet": self.wallet,
            "chain": self.chain,
            "native_symbol": self.native_symbol,
            "status": self.status,
            "provider": self.provider,
            "total_trades": self.total_trades,
            "total_volume_native": round(self.total_volume_native, 4),
            "total_volume_usd": round(self.total_volume_usd, 2),
            "total_pnl_usd": round(self.total_pnl_usd, 2),
            "top_wins": [t.to_dict() for t in self.top_wins],
            "top_losses": [t.to_dict() for t in self.top_losses],
            "busiest_day": self.busiest_day.to_dict() if self.busiest_day else None,
            "best_pnl_day": self.best_pnl_day.to_dict() if self.best_pnl_day else None,
            "tokens_traded": self.tokens_traded,
            "win_rate_pct": round(self.win_rate_pct, 1) if self.win_rate_pct is not None else None,
            "median_hold_seconds": self.median_hold_seconds,
            "open_positions": self.open_positions,
            "records_fetched": self.records_fetched,
            "skipped_transfers": self.skipped_transfers,
            "estimated_buys": self.estimated_buys,
            "price_fallback_used": self.price_fallback_used,
            "partial": self.partial,
            "warnings": list(self.warnings),
            "computed_at": self.computed_at,
        }
        if self.provider_reported_pnl_usd is not None:
            d["provider_reported_pnl_usd"] = round(self.provider_reported_pnl_usd, 2)
            d["pnl_discrepancy_usd"] = round(self.total_pnl_usd - self.provider_reported_pnl_usd, 2)
        return d


def token_results(ledger: PositionLedger) -> list[TokenResult]:
    """Realized result per token that has produced any sale proceeds."""
    results = []
    for st in ledger.stats.values():
        if st.received_usd <= 0:
            continue
        results.append(TokenResult(
            token_id=st.token_id,
            symbol=st.symbol,
            image_url=st.image_url,
            pnl_usd=st.received_usd - st.cost_basis_removed_usd,
            spent_usd=st.spent_usd,
            received_usd=st.received_usd,
            last_trade_timestamp=st.last_trade_timestamp,
        ))
    return results


def _best(days: list[DayStat], key) -> Optional[DayStat]:
    # max() keeps the first of equal elements, i.e. the earliest day
    return max(days, key=key) if days else None


def compute_summary(ledger: PositionLedger, wallet: str, chain: str, native_symbol: str) -> PnLSummary:
    results = token_results(ledger)
    wins = sorted((r for r in results if r.pnl_usd > 0), key=lambda r: r.pnl_usd, reverse=True)
    losses = sorted((r for r in results if r.pnl_usd < 0), key=lambda r: r.pnl_usd)

    days = sorted(ledger.days.values(), key=lambda d: d.date)
    busiest = _best(days, key=lambda d: d.trade_count)
    best_pnl = _best([d for d in days if d.sell_count], key=lambda d: d.realized_pnl_usd)

    holds = [
        st.last_sell_timestamp - st.first_buy_timestamp
        for st in ledger.stats.values()
        if st.received_usd > 0 and st.first_buy_timestamp and st.last_sell_timestamp >= st.first_buy_timestamp
    ]

    return PnLSummary(
        wallet=wallet,
        chain=chain,
        native_symbol=native_symbol,
        status="ok" if ledger.trade_count else "no_activity",
        total_trades=ledger.trade_count,
        total_volume_native=ledger.volume_native,
        total_volume_usd=ledger.volume_usd,
        total_pnl_usd=sum(r.pnl_usd for r in results),
        top_wins=wins[:TOP_N],
        top_losses=losses[:TOP_N],
        busiest_day=busiest,
        best_pnl_day=best_pnl,
        tokens_traded=len(ledger.stats),
        win_rate_pct=(len([r for r in results if r.pnl_usd > 0]) / len(results) * 100) if results else None,
        median_hold_seconds=int(statistics.median(holds)) if holds else None,
        open_positions=ledger.open_positions(),
        estimated_buys=ledger.estimated_buys,
        computed_at=datetime.now(timezone.utc).isoformat(),
    )
