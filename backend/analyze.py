"""
Wallet PnL pipeline: provider fallback → window filter → native price series
→ token metadata → trade classification → position ledger → summary.

Every run builds its own price series and metadata cache; nothing is
shared between wallets or runs.

Usage:
    python backend/analyze.py <wallet> [chain] [date_from] [date_to]
"""

import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from chains import ChainConfig, expand_chains, get_chain
from classifier import classify_transfers
from config import Settings, load_settings
from errors import PnlError
from http_client import HttpTransport
from models import NormalizedTransfer
from portfolio import PnLSummary, PositionLedger, compute_summary
from prices import PriceResolver
from providers import CieloProvider, build_providers, fetch_wallet_activity
from token_metadata import MetadataCache, TokenMetadataResolver, default_sources


# ── Helpers ───────────────────────────────────────────────────────────────

def parse_date(date_str: str) -> datetime | None:
    """Parse a date string in YYYY-MM-DD format."""
    try:
        return datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def _as_datetime(value) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    return parsed


def filter_by_period(transfers: list[NormalizedTransfer], date_from: datetime | None,
                     date_to: datetime | None) -> list[NormalizedTransfer]:
    """Keep transfers inside [date_from, date_to], both days inclusive (UTC)."""
    start = int(date_from.timestamp()) if date_from else None
    end = int((date_to + timedelta(days=1)).timestamp()) if date_to else None
    filtered = []
    for t in transfers:
        if start is not None and t.timestamp < start:
            continue
        if end is not None and t.timestamp >= end:
            continue
        filtered.append(t)
    return filtered


@dataclass
class ChainRun:
    summary: PnLSummary
    ledger: PositionLedger


# ── Pipeline ──────────────────────────────────────────────────────────────

def run_chain(
    wallet: str,
    chain: ChainConfig,
    settings: Settings,
    transport: HttpTransport,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ChainRun:
    providers = build_providers(chain, settings, transport, sleep=sleep)
    fetched = fetch_wallet_activity(wallet, providers)

    transfers = filter_by_period(fetched.transfers, date_from, date_to)
    transfers.sort(key=lambda t: t.timestamp)
    if date_from or date_to:
        print(f"[Pipeline] {len(transfers)}/{len(fetched.transfers)} transfers inside the analysis window")

    ledger = PositionLedger()
    prices = PriceResolver(chain, transport, settings.coingecko_api_key)
    skipped = 0

    if transfers:
        prices.build(transfers[0].timestamp, transfers[-1].timestamp)

        resolver = TokenMetadataResolver(
            default_sources(chain, transport, settings.helius_api_key),
            MetadataCache(),
            concurrency=settings.metadata_concurrency,
        )
        token_ids = []
        for t in transfers:
            resolver.prime(t.symbol_hints)
            token_ids.extend(chain.normalize_id(tid) for tid in t.token_ids() if not chain.is_native(tid))
        metadata = resolver.resolve_batch(token_ids)
        symbols = {tid: meta.symbol for tid, meta in metadata.items()}

        trades, skipped = classify_transfers(transfers, chain, prices.price_at, symbols)
        print(f"[Pipeline] {len(trades)} trades classified from {len(transfers)} transfers ({skipped} skipped)")
        ledger.replay(trades)
        for tid, meta in metadata.items():
            ledger.set_metadata(tid, meta.symbol, meta.image_url)

    summary = compute_summary(ledger, wallet, chain.name, chain.native_symbol)
    summary.provider = fetched.provider
    summary.records_fetched = fetched.records_fetched
    summary.skipped_transfers = skipped
    summary.price_fallback_used = prices.used_fallback
    summary.warnings = [w.message() for w in fetched.warnings]

    if settings.compare_reported_pnl:
        cielo = next((p for p in providers if isinstance(p, CieloProvider)), None)
        if cielo is not None:
            summary.provider_reported_pnl_usd = cielo.fetch_reported_pnl(wallet)

    return ChainRun(summary=summary, ledger=ledger)


def analyze_wallet(
    wallet: str,
    chain: str = "solana",
    settings: Optional[Settings] = None,
    transport: Optional[HttpTransport] = None,
    date_from=None,
    date_to=None,
    sleep: Callable[[float], None] = time.sleep,
) -> PnLSummary:
    """Full PnL run for one wallet on one chain.

    Raises ConfigurationError when no provider credential exists for the
    chain and NoDataError when every provider failed. A wallet with no
    classifiable trades returns a summary with status "no_activity".
    """
    wallet = (wallet or "").strip()
    if not wallet:
        raise ValueError("Wallet address cannot be empty")
    settings = settings or load_settings()
    transport = transport or HttpTransport(timeout=settings.request_timeout)
    cfg = get_chain(chain)

    print(f"[Pipeline] analyzing {wallet} on {cfg.name}")
    run = run_chain(wallet, cfg, settings, transport, _as_datetime(date_from), _as_datetime(date_to), sleep=sleep)
    s = run.summary
    print(f"  → {s.total_trades} trades, realized PnL ${s.total_pnl_usd:,.2f}")
    return s


def analyze_chains(
    wallet: str,
    chains: list[str] | str = "evm",
    settings: Optional[Settings] = None,
    transport: Optional[HttpTransport] = None,
    date_from=None,
    date_to=None,
    sleep: Callable[[float], None] = time.sleep,
) -> PnLSummary:
    """One wallet across several chains, summarized in USD.

    A chain that fails is reported in warnings; the run fails only when
    every chain failed.
    """
    wallet = (wallet or "").strip()
    names = expand_chains(chains) if isinstance(chains, str) else [get_chain(c).name for c in chains]
    settings = settings or load_settings()
    transport = transport or HttpTransport(timeout=settings.request_timeout)
    start, end = _as_datetime(date_from), _as_datetime(date_to)

    runs: dict[str, ChainRun] = {}
    warnings = []
    last_error: PnlError | None = None
    for name in names:
        print(f"[Pipeline] analyzing {wallet} on {name}")
        try:
            runs[name] = run_chain(wallet, get_chain(name), settings, transport, start, end, sleep=sleep)
        except PnlError as e:
            print(f"  → {name} failed: {e}")
            warnings.append(f"{name}: {e}")
            last_error = e
    if not runs:
        raise last_error

    merged = PositionLedger.merged({name: run.ledger for name, run in runs.items()})
    summary = compute_summary(merged, wallet, ",".join(runs), "USD")
    summary.provider = ",".join(sorted({r.summary.provider for r in runs.values() if r.summary.provider}))
    summary.records_fetched = sum(r.summary.records_fetched for r in runs.values())
    summary.skipped_transfers = sum(r.summary.skipped_transfers for r in runs.values())
    summary.price_fallback_used = any(r.summary.price_fallback_used for r in runs.values())
    summary.warnings = warnings + [w for r in runs.values() for w in r.summary.warnings]
    reported = [r.summary.provider_reported_pnl_usd for r in runs.values()
                if r.summary.provider_reported_pnl_usd is not None]
    if reported:
        summary.provider_reported_pnl_usd = sum(reported)
    return summary


def analyze_wallets(
    wallets: list[str],
    chain: str = "solana",
    settings: Optional[Settings] = None,
    max_workers: int = 4,
    transport_factory: Callable[[], HttpTransport] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, dict]:
    """Independent runs for several wallets in parallel.

    Returns wallet → summary dict, or {"error": ...} for wallets that failed.
    """
    settings = settings or load_settings()
    factory = transport_factory or (lambda: HttpTransport(timeout=settings.request_timeout))

    def _one(wallet: str) -> dict:
        try:
            return analyze_wallet(wallet, chain, settings, factory(), sleep=sleep).to_dict()
        except (PnlError, ValueError) as e:
            return {"wallet": wallet, "error": str(e)}

    unique = list(dict.fromkeys(w.strip() for w in wallets if w and w.strip()))
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        return dict(zip(unique, pool.map(_one, unique)))


# ── CLI ───────────────────────────────────────────────────────────────────

def main() -> None:
    args = sys.argv[1:]
    wallet = args[0] if args else input("Enter wallet address: ").strip()
    if not wallet:
        print("Address cannot be empty.")
        return
    chain = args[1] if len(args) > 1 else "solana"
    date_from = args[2] if len(args) > 2 else None
    date_to = args[3] if len(args) > 3 else None

    try:
        if chain.lower() in ("evm",):
            summary = analyze_chains(wallet, chain, date_from=date_from, date_to=date_to)
        else:
            summary = analyze_wallet(wallet, chain, date_from=date_from, date_to=date_to)
    except (PnlError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
