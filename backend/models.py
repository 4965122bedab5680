from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TokenBalanceChange:
    token_id: str
    amount_signed: float  # UI units, decimals already applied


@dataclass(frozen=True)
class NormalizedTransfer:
    """One provider record reduced to the wallet's own balance movements."""

    wallet_address: str
    timestamp: int
    native_amount_signed: float
    token_balance_changes: tuple[TokenBalanceChange, ...]
    has_known_exchange_route: bool
    signature: str = ""
    provider: str = ""
    fee_native: float = 0.0
    token_transfer_count: int = 0
    quoted_usd: Optional[float] = None
    symbol_hints: tuple[tuple[str, str], ...] = ()

    def token_ids(self) -> list[str]:
        return [c.token_id for c in self.token_balance_changes]


@dataclass
class ClassifiedTrade:
    timestamp: int
    token_id: str
    token_symbol: str
    direction: str  # "buy" | "sell"
    token_amount: float
    native_amount: float
    usd_value: float
    signature: str = ""
    estimated: bool = False

    @property
    def is_buy(self) -> bool:
        return self.direction == "buy"


@dataclass
class FetchResult:
    provider: str
    transfers: list[NormalizedTransfer] = field(default_factory=list)
    records_fetched: int = 0
    pages: int = 0
    warnings: list = field(default_factory=list)  # PartialDataWarning
