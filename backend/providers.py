"""
Activity-history providers.

Each provider pages through a wallet's raw history and decodes every raw
record into a NormalizedTransfer. Pagination is strictly sequential; a
rate-limited page gets one retry after a fixed delay. A failure on the first
page makes the whole provider unavailable, a failure on a later page keeps
what was already fetched and records a PartialDataWarning.
"""

import time
from datetime import datetime
from typing import Any, Callable, Optional

from chains import ChainConfig
from config import Settings
from errors import (
    ConfigurationError,
    NoDataError,
    PartialDataWarning,
    ProviderUnavailable,
    RateLimited,
    TransportError,
)
from http_client import HttpTransport
from models import FetchResult, NormalizedTransfer, TokenBalanceChange

HELIUS_API_URL = "https://api.helius.xyz/v0/addresses/{wallet}/transactions"
CIELO_FEED_URL = "https://feed-api.cielo.finance/api/v1/feed"
CIELO_PNL_URL = "https://feed-api.cielo.finance/api/v1/{wallet}/pnl/total-stats"
COVALENT_API_URL = "https://api.covalenthq.com/v1/{chain}/address/{wallet}/transactions_v3/"

LAMPORTS_PER_SOL = 1_000_000_000


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _scale(raw: Any, decimals: Any) -> float:
    try:
        return int(raw) / (10 ** int(decimals or 0))
    except (TypeError, ValueError):
        return _to_float(raw)


def _merge_changes(changes: dict[str, float]) -> tuple[TokenBalanceChange, ...]:
    return tuple(
        TokenBalanceChange(token_id=tid, amount_signed=amount)
        for tid, amount in changes.items()
        if abs(amount) > 1e-12
    )


# ── Base provider ─────────────────────────────────────────────────────────

class BaseProvider:
    name = ""
    page_size = 100
    # True when a full page without a continuation cursor breaks the provider's contract
    cursor_required_on_full_page = False

    def __init__(
        self,
        chain: ChainConfig,
        api_key: str,
        transport: HttpTransport,
        max_pages: int,
        page_delay: float = 0.5,
        retry_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.chain = chain
        self.api_key = api_key
        self.transport = transport
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.retry_delay = retry_delay
        self.sleep = sleep

    def fetch_page(self, wallet: str, cursor: Optional[str]) -> tuple[list[dict], Optional[str]]:
        raise NotImplementedError

    def decode(self, wallet: str, record: dict) -> Optional[NormalizedTransfer]:
        raise NotImplementedError

    def _get(self, url: str, params: dict | None = None, headers: dict | None = None) -> Any:
        """GET with one bounded retry on 429. Returns the decoded JSON payload."""
        response = self.transport.get(url, params=params, headers=headers)
        if response.status_code == 429:
            print(f"[{self.name}] rate limited, retrying in {self.retry_delay:.1f}s")
            self.sleep(self.retry_delay)
            response = self.transport.get(url, params=params, headers=headers)
            if response.status_code == 429:
                raise RateLimited(f"{self.name} still rate limited after retry")
        if not response.ok:
            raise TransportError(f"HTTP {response.status_code}")
        if response.payload is None:
            raise TransportError("empty or non-JSON response body")
        return response.payload

    def fetch_all(self, wallet: str) -> FetchResult:
        result = FetchResult(provider=self.name)
        cursor = None

        while True:
            if result.pages > 0:
                self.sleep(self.page_delay)

            try:
                records, next_cursor = self.fetch_page(wallet, cursor)
            except (RateLimited, TransportError) as e:
                if result.pages == 0:
                    raise ProviderUnavailable(self.name, str(e)) from e
                print(f"[{self.name}] page {result.pages + 1} failed: {e}, keeping {result.records_fetched} records")
                result.warnings.append(PartialDataWarning(self.name, result.pages, str(e)))
                break

            result.pages += 1
            result.records_fetched += len(records)
            decoded = 0
            for record in records:
                if not isinstance(record, dict):
                    continue
                transfer = self.decode(wallet, record)
                if transfer is not None:
                    result.transfers.append(transfer)
                    decoded += 1
            print(f"[{self.name}] page {result.pages}: {len(records)} records, {decoded} usable")

            if not records:
                break
            if next_cursor is None:
                if self.cursor_required_on_full_page and len(records) >= self.page_size:
                    result.warnings.append(PartialDataWarning(
                        self.name, result.pages, "full page returned without a continuation cursor",
                    ))
                break
            if result.pages >= self.max_pages:
                result.warnings.append(PartialDataWarning(
                    self.name, result.pages, f"page limit {self.max_pages} reached",
                ))
                break
            cursor = next_cursor

        return result


# ── Helius ────────────────────────────────────────────────────────────────

class HeliusProvider(BaseProvider):
    """Helius enhanced transactions API (Solana).

    Field mapping:
      timestamp             ← timestamp (unix seconds)
      native_amount_signed  ← accountData[account == wallet].nativeBalanceChange / 1e9,
                              fee added back when the wallet paid it;
                              fallback: signed sum of nativeTransfers
      token_balance_changes ← accountData[].tokenBalanceChanges[userAccount == wallet]
                              (rawTokenAmount scaled by decimals);
                              fallback: signed tokenTransfers (tokenAmount, UI units)
      has_known_exchange_route ← any (inner) instruction programId is a known DEX,
                                 or source is a known swap venue
    """

    name = "Helius"

    def fetch_page(self, wallet, cursor):
        params = {"api-key": self.api_key, "limit": self.page_size}
        if cursor:
            params["before"] = cursor
        payload = self._get(HELIUS_API_URL.format(wallet=wallet), params=params)
        if not isinstance(payload, list) or (payload and not isinstance(payload[-1], dict)):
            raise TransportError("malformed payload")
        next_cursor = payload[-1].get("signature") if payload else None
        return payload, next_cursor

    def _route_known(self, record: dict) -> bool:
        programs = self.chain.exchange_programs
        for ix in record.get("instructions") or []:
            if ix.get("programId") in programs:
                return True
            for inner in ix.get("innerInstructions") or []:
                if inner.get("programId") in programs:
                    return True
        return (record.get("source") or "").upper() in self.chain.exchange_sources

    def decode(self, wallet, record):
        if record.get("transactionError"):
            return None
        timestamp = record.get("timestamp")
        if not timestamp:
            return None

        fee = _to_float(record.get("fee")) / LAMPORTS_PER_SOL

        native = None
        token_changes: dict[str, float] = {}
        for acc in record.get("accountData") or []:
            if acc.get("account") == wallet:
                native = _to_float(acc.get("nativeBalanceChange")) / LAMPORTS_PER_SOL
            for tbc in acc.get("tokenBalanceChanges") or []:
                if tbc.get("userAccount") != wallet:
                    continue
                raw = tbc.get("rawTokenAmount") or {}
                mint = tbc.get("mint", "")
                token_changes[mint] = token_changes.get(mint, 0.0) + _scale(raw.get("tokenAmount"), raw.get("decimals"))

        if native is None:
            native = 0.0
            for nt in record.get("nativeTransfers") or []:
                amount = _to_float(nt.get("amount")) / LAMPORTS_PER_SOL
                if nt.get("toUserAccount") == wallet:
                    native += amount
                if nt.get("fromUserAccount") == wallet:
                    native -= amount
        elif record.get("feePayer") == wallet:
            # nativeBalanceChange already includes the fee
            native += fee

        transfer_count = 0
        transfer_changes: dict[str, float] = {}
        for tt in record.get("tokenTransfers") or []:
            amount = _to_float(tt.get("tokenAmount"))
            mint = tt.get("mint", "")
            touched = False
            if tt.get("toUserAccount") == wallet:
                transfer_changes[mint] = transfer_changes.get(mint, 0.0) + amount
                touched = True
            if tt.get("fromUserAccount") == wallet:
                transfer_changes[mint] = transfer_changes.get(mint, 0.0) - amount
                touched = True
            if touched:
                transfer_count += 1

        if not token_changes:
            token_changes = transfer_changes

        return NormalizedTransfer(
            wallet_address=wallet,
            timestamp=int(timestamp),
            native_amount_signed=native,
            token_balance_changes=_merge_changes(token_changes),
            has_known_exchange_route=self._route_known(record),
            signature=record.get("signature", ""),
            provider=self.name,
            fee_native=fee,
            token_transfer_count=transfer_count,
        )


# ── Cielo ─────────────────────────────────────────────────────────────────

class CieloProvider(BaseProvider):
    """Cielo feed API (Solana and EVM).

    Field mapping (swap items only; other tx_types decode to None):
      timestamp             ← timestamp
      token0_*              ← given away (negative change)
      token1_*              ← received (positive change)
      native_amount_signed  ← the leg whose address is the native/wrapped-native asset
      quoted_usd            ← token0_amount_usd, else token1_amount_usd
      symbol_hints          ← token0_symbol / token1_symbol
    """

    name = "Cielo"
    cursor_required_on_full_page = True

    def _headers(self) -> dict:
        return {"X-API-KEY": self.api_key, "accept": "application/json"}

    def fetch_page(self, wallet, cursor):
        params = {"wallet": wallet, "limit": self.page_size}
        if self.chain.cielo_chain:
            params["chains"] = self.chain.cielo_chain
        if cursor:
            params["startFrom"] = cursor
        payload = self._get(CIELO_FEED_URL, params=params, headers=self._headers())

        status = payload.get("status") if isinstance(payload, dict) else None
        if status == "pending":
            raise TransportError("history is still being indexed (status=pending)")
        if status != "ok":
            raise TransportError(f"API error: {payload.get('message', 'unknown error') if isinstance(payload, dict) else 'malformed'}")

        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise TransportError("malformed payload")
        items = data.get("items") or []
        paging = data.get("paging") or {}
        if not isinstance(items, list) or not isinstance(paging, dict):
            raise TransportError("malformed payload")
        next_cursor = None
        if paging.get("has_next_page"):
            next_cursor = paging.get("next_object_id") or paging.get("next_cursor")
        return items, next_cursor

    def decode(self, wallet, record):
        if record.get("tx_type") != "swap":
            return None
        timestamp = record.get("timestamp")
        if not timestamp:
            return None

        native = 0.0
        changes: dict[str, float] = {}
        hints = []
        for prefix, sign in (("token0", -1.0), ("token1", 1.0)):
            address = self.chain.normalize_id(record.get(f"{prefix}_address", ""))
            amount = _to_float(record.get(f"{prefix}_amount"))
            symbol = record.get(f"{prefix}_symbol") or ""
            if not address or amount <= 0:
                continue
            if self.chain.is_native(address):
                native += sign * amount
                continue
            changes[address] = changes.get(address, 0.0) + sign * amount
            if symbol:
                hints.append((address, symbol))

        quoted = _to_float(record.get("token0_amount_usd")) or _to_float(record.get("token1_amount_usd"))

        return NormalizedTransfer(
            wallet_address=wallet,
            timestamp=int(timestamp),
            native_amount_signed=native,
            token_balance_changes=_merge_changes(changes),
            has_known_exchange_route=True,
            signature=record.get("tx_hash", ""),
            provider=self.name,
            token_transfer_count=len(changes),
            quoted_usd=quoted if quoted > 0 else None,
            symbol_hints=tuple(hints),
        )

    def fetch_reported_pnl(self, wallet: str) -> Optional[float]:
        """Realized PnL as computed server-side by Cielo, for comparison only."""
        try:
            payload = self._get(
                CIELO_PNL_URL.format(wallet=wallet),
                params={"timeframe": "max"},
                headers=self._headers(),
            )
        except (RateLimited, TransportError) as e:
            print(f"[{self.name}] reported PnL unavailable: {e}")
            return None
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return None
        for key in ("realized_pnl_usd", "realized_pnl", "total_pnl_usd"):
            if data.get(key) is not None:
                return _to_float(data[key])
        return None


# ── Covalent ──────────────────────────────────────────────────────────────

class CovalentProvider(BaseProvider):
    """Covalent transactions_v3 (Solana and EVM).

    Field mapping:
      timestamp             ← block_signed_at (ISO 8601)
      native_amount_signed  ← value (base units) signed by from/to == wallet
      fee_native            ← fees_paid (base units)
      token_balance_changes ← decoded Transfer log events with wallet as from/to,
                              scaled by sender_contract_decimals
      has_known_exchange_route ← to_address is a known router
    Cursor is the page number; pages run newest → oldest via links.prev.
    """

    name = "Covalent"

    def fetch_page(self, wallet, cursor):
        url = COVALENT_API_URL.format(chain=self.chain.covalent_chain, wallet=wallet)
        if cursor is not None:
            url = f"{url}page/{cursor}/"
        payload = self._get(url, params={"key": self.api_key})
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise TransportError(payload.get("error_message", "malformed payload") if isinstance(payload, dict) else "malformed payload")

        items = data.get("items") or []
        links = data.get("links") or {}
        if not isinstance(items, list) or not isinstance(links, dict):
            raise TransportError("malformed payload")
        current = data.get("current_page")
        next_cursor = None
        if links.get("prev") and isinstance(current, int) and current > 0:
            next_cursor = str(current - 1)
        return items, next_cursor

    def decode(self, wallet, record):
        if record.get("successful") is False:
            return None
        signed_at = record.get("block_signed_at")
        if not signed_at:
            return None
        try:
            timestamp = int(datetime.fromisoformat(signed_at.replace("Z", "+00:00")).timestamp())
        except ValueError:
            return None

        me = self.chain.normalize_id(wallet)
        decimals = self.chain.native_decimals
        value = _scale(record.get("value"), decimals)
        native = 0.0
        if self.chain.normalize_id(record.get("to_address", "")) == me:
            native += value
        if self.chain.normalize_id(record.get("from_address", "")) == me:
            native -= value
        fee = _scale(record.get("fees_paid"), decimals)

        changes: dict[str, float] = {}
        hints = []
        transfer_count = 0
        for event in record.get("log_events") or []:
            decoded = event.get("decoded") or {}
            if decoded.get("name") != "Transfer":
                continue
            params = {p.get("name"): p.get("value") for p in decoded.get("params") or []}
            src = self.chain.normalize_id(params.get("from") or "")
            dst = self.chain.normalize_id(params.get("to") or "")
            if me not in (src, dst):
                continue
            token = self.chain.normalize_id(event.get("sender_address", ""))
            amount = _scale(params.get("value"), event.get("sender_contract_decimals"))
            delta = amount if dst == me else -amount
            if src == dst:
                delta = 0.0
            changes[token] = changes.get(token, 0.0) + delta
            transfer_count += 1
            symbol = event.get("sender_contract_ticker_symbol")
            if symbol:
                hints.append((token, symbol))

        return NormalizedTransfer(
            wallet_address=wallet,
            timestamp=timestamp,
            native_amount_signed=native,
            token_balance_changes=_merge_changes(changes),
            has_known_exchange_route=self.chain.normalize_id(record.get("to_address", "")) in self.chain.exchange_programs,
            signature=record.get("tx_hash", ""),
            provider=self.name,
            fee_native=fee,
            token_transfer_count=transfer_count,
            symbol_hints=tuple(hints),
        )


PROVIDER_CLASSES = {
    "helius": HeliusProvider,
    "cielo": CieloProvider,
    "covalent": CovalentProvider,
}


# ── Fallback chain ────────────────────────────────────────────────────────

def build_providers(
    chain: ChainConfig,
    settings: Settings,
    transport: HttpTransport,
    sleep: Callable[[float], None] = time.sleep,
) -> list[BaseProvider]:
    """Providers in priority order, skipping those without a credential.

    Raises ConfigurationError before any network call when none remain.
    """
    order = [p for p in (settings.provider_order or chain.default_providers) if p in chain.default_providers]
    providers = []
    for key in order:
        api_key = settings.api_key(key)
        if not api_key:
            continue
        providers.append(PROVIDER_CLASSES[key](
            chain=chain,
            api_key=api_key,
            transport=transport,
            max_pages=settings.max_pages.get(key, 20),
            page_delay=settings.page_delay_seconds,
            retry_delay=settings.rate_limit_retry_delay,
            sleep=sleep,
        ))
    if not providers:
        wanted = ", ".join(f"{p.upper()}_API_KEY" for p in chain.default_providers)
        raise ConfigurationError(f"No activity provider configured for {chain.name}; set one of: {wanted}")
    return providers


def fetch_wallet_activity(wallet: str, providers: list[BaseProvider]) -> FetchResult:
    """First provider yielding at least one usable record wins; results are never merged."""
    failures: list[ProviderUnavailable] = []
    empty: Optional[FetchResult] = None

    for provider in providers:
        print(f"[Pipeline] trying {provider.name} for {wallet}")
        try:
            result = provider.fetch_all(wallet)
        except ProviderUnavailable as e:
            print(f"  → {provider.name} unavailable: {e.reason}")
            failures.append(e)
            continue
        if result.transfers:
            print(f"  → using {provider.name}: {len(result.transfers)} transfers from {result.pages} page(s)")
            return result
        print(f"  → {provider.name} returned no usable records")
        if empty is None:
            empty = result

    if empty is not None:
        for failure in failures:
            print(f"  → {failure.provider} failed before {empty.provider} came back empty; flagging result")
            empty.warnings.append(PartialDataWarning(failure.provider, 0, failure.reason))
        return empty
    raise NoDataError(failures)
