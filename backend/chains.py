"""
Per-chain constants: native asset, wrapped-native id, stable assets,
known exchange programs/routers, and provider identifiers.
"""

from dataclasses import dataclass, field

# ── Solana ────────────────────────────────────────────────────────────────

WSOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
PYUSD_MINT = "2b1kV6DkPAnxd5ixfnxCpjxmKwqjjaYmCZfHsFu24GXo"
USD1_MINT = "USD1ttGY1N17NEEHLmELoaybftRBUSErhqYiQzvEmuB"

SOLANA_EXCHANGE_PROGRAMS = frozenset({
    # Jupiter aggregator v6 / v4 / v3
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",
    "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",
    "JUP3c2Uh3WA4Ng34tw6kPd2G4C5BB21Xo36Je1s32Ph",
    # Raydium AMM v4 / CLMM / CPMM
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
    "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK",
    "CPMMoo8L3F4NbTegBCKVNunggL7t1ZP3k3L3KqYZzLzL",
    # Orca v1 / Whirlpool
    "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQP",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",
    # Lifinity
    "DjVE6JNiYqPL2QXyCUUh8rNjHrbz9hXHNYt99MQ59qw1",
    # Meteora DLMM / pools
    "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo",
    "Eo7WjKq67rjJQSZxS6L3zgZe5Qn8j1fB2YhRZ2K6QvXJ",
    # Pump.fun bonding curve
    "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P",
    # Serum / OpenBook
    "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin",
    "22Y43yTVxuUkoRKdm9thyRhQ3SdgQS7c7kB6UNCiaczD",
    # Aldrin
    "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
})

# Helius "source" labels that imply a swap venue even without instruction data
SOLANA_EXCHANGE_SOURCES = frozenset({
    "JUPITER", "RAYDIUM", "ORCA", "LIFINITY", "METEORA", "PUMP_FUN", "PUMP_AMM",
    "SERUM", "OPENBOOK", "ALDRIN",
})


# ── Data classes ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ChainConfig:
    name: str
    native_symbol: str
    native_decimals: int
    wrapped_native: str
    stable_assets: frozenset
    stable_symbols: frozenset
    known_tokens: dict = field(default_factory=dict)  # token id → symbol
    native_aliases: frozenset = frozenset()  # ids some providers use for the bare native asset
    price_asset_id: str = ""  # CoinGecko coin id
    covalent_chain: str = ""
    cielo_chain: str = ""
    exchange_programs: frozenset = frozenset()
    exchange_sources: frozenset = frozenset()
    fallback_price_usd: float = 0.0
    min_placeholder_native: float = 0.0
    default_providers: tuple = ()
    case_insensitive_ids: bool = False

    def normalize_id(self, token_id: str) -> str:
        if not token_id:
            return ""
        return token_id.lower() if self.case_insensitive_ids else token_id

    def is_native(self, token_id: str) -> bool:
        tid = self.normalize_id(token_id)
        return tid == self.wrapped_native or tid in self.native_aliases

    def is_stable(self, token_id: str, symbol: str | None = None) -> bool:
        if self.normalize_id(token_id) in self.stable_assets:
            return True
        return bool(symbol) and symbol.upper() in self.stable_symbols


STABLE_SYMBOLS = frozenset({"USDC", "USDT", "USD", "USD1", "BUSD", "DAI", "PYUSD"})
EVM_NATIVE_ALIASES = frozenset({
    "0x0000000000000000000000000000000000000000",
    "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
    "native",
})

SOLANA = ChainConfig(
    name="solana",
    native_symbol="SOL",
    native_decimals=9,
    wrapped_native=WSOL_MINT,
    stable_assets=frozenset({USDC_MINT, USDT_MINT, PYUSD_MINT, USD1_MINT}),
    stable_symbols=STABLE_SYMBOLS,
    known_tokens={
        WSOL_MINT: "SOL",
        USDC_MINT: "USDC",
        USDT_MINT: "USDT",
        PYUSD_MINT: "PYUSD",
        USD1_MINT: "USD1",
    },
    native_aliases=frozenset({"11111111111111111111111111111111", "native"}),
    price_asset_id="solana",
    covalent_chain="solana-mainnet",
    cielo_chain="solana",
    exchange_programs=SOLANA_EXCHANGE_PROGRAMS,
    exchange_sources=SOLANA_EXCHANGE_SOURCES,
    fallback_price_usd=150.0,
    min_placeholder_native=0.01,
    default_providers=("helius", "cielo", "covalent"),
)

ETHEREUM = ChainConfig(
    name="ethereum",
    native_symbol="ETH",
    native_decimals=18,
    wrapped_native="0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2",
    stable_assets=frozenset({
        "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48",  # USDC
        "0xdac17f958d2ee523a2206206994597c13d831ec7",  # USDT
        "0x6b175474e89094c44da98b954eedeac495271d0f",  # DAI
        "0x6c3ea9036406852006290770bedfcaba0e23a0e8",  # PYUSD
    }),
    stable_symbols=STABLE_SYMBOLS,
    known_tokens={
        "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": "WETH",
        "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": "USDC",
        "0xdac17f958d2ee523a2206206994597c13d831ec7": "USDT",
        "0x6b175474e89094c44da98b954eedeac495271d0f": "DAI",
    },
    native_aliases=EVM_NATIVE_ALIASES,
    price_asset_id="ethereum",
    covalent_chain="eth-mainnet",
    cielo_chain="ethereum",
    exchange_programs=frozenset({
        "0x7a250d5630b4cf539739df2c5dacb4c659f2488d",  # Uniswap v2 router
        "0xe592427a0aece92de3edee1f18e0157c05861564",  # Uniswap v3 router
        "0x3fc91a3afd70395cd496c647d5a6cc9d4b2b7fad",  # Uniswap universal router
        "0x1111111254eeb25477b68fb85ed929f73a960582",  # 1inch v5
    }),
    fallback_price_usd=3000.0,
    min_placeholder_native=0.001,
    default_providers=("cielo", "covalent"),
    case_insensitive_ids=True,
)

BASE = ChainConfig(
    name="base",
    native_symbol="ETH",
    native_decimals=18,
    wrapped_native="0x4200000000000000000000000000000000000006",
    stable_assets=frozenset({
        "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",  # USDC
        "0x50c5725949a6f0c72e6c4a641f24049a917db0cb",  # DAI
    }),
    stable_symbols=STABLE_SYMBOLS,
    known_tokens={
        "0x4200000000000000000000000000000000000006": "WETH",
        "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913": "USDC",
    },
    native_aliases=EVM_NATIVE_ALIASES,
    price_asset_id="ethereum",
    covalent_chain="base-mainnet",
    cielo_chain="base",
    exchange_programs=frozenset({
        "0x3fc91a3afd70395cd496c647d5a6cc9d4b2b7fad",  # Uniswap universal router
        "0x2626664c2603336e57b271c5c0b26f421741e481",  # Uniswap v3 router02
        "0xcf77a3ba9a5ca399b7c97c74d54e5b1beb874e43",  # Aerodrome router
    }),
    fallback_price_usd=3000.0,
    min_placeholder_native=0.0005,
    default_providers=("cielo", "covalent"),
    case_insensitive_ids=True,
)

BSC = ChainConfig(
    name="bsc",
    native_symbol="BNB",
    native_decimals=18,
    wrapped_native="0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c",
    stable_assets=frozenset({
        "0x55d398326f99059ff775485246999027b3197955",  # USDT
        "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d",  # USDC
        "0xe9e7cea3dedca5984780bafc599bd69add087d56",  # BUSD
    }),
    stable_symbols=STABLE_SYMBOLS,
    known_tokens={
        "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c": "WBNB",
        "0x55d398326f99059ff775485246999027b3197955": "USDT",
        "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d": "USDC",
        "0xe9e7cea3dedca5984780bafc599bd69add087d56": "BUSD",
    },
    native_aliases=EVM_NATIVE_ALIASES,
    price_asset_id="binancecoin",
    covalent_chain="bsc-mainnet",
    cielo_chain="bsc",
    exchange_programs=frozenset({
        "0x10ed43c718714eb63d5aa57b78b54704e256024e",  # PancakeSwap v2 router
        "0x13f4ea83d0bd40e75c8222255bc855a974568dd4",  # PancakeSwap smart router
        "0x1111111254eeb25477b68fb85ed929f73a960582",  # 1inch v5
    }),
    fallback_price_usd=600.0,
    min_placeholder_native=0.003,
    default_providers=("cielo", "covalent"),
    case_insensitive_ids=True,
)

CHAINS = {c.name: c for c in (SOLANA, ETHEREUM, BASE, BSC)}

# Selector that expands to several chains for a combined run
CHAIN_GROUPS = {
    "evm": ("ethereum", "bsc", "base"),
}


def get_chain(name: str) -> ChainConfig:
    key = (name or "").strip().lower()
    if key in ("sol",):
        key = "solana"
    elif key in ("eth",):
        key = "ethereum"
    elif key in ("bnb",):
        key = "bsc"
    if key not in CHAINS:
        raise ValueError(f"Unsupported chain: {name!r}. Supported: {', '.join(sorted(CHAINS))}")
    return CHAINS[key]


def expand_chains(selector: str) -> list[str]:
    """'evm' → ['ethereum', 'bsc', 'base']; single chain → [chain]."""
    key = (selector or "").strip().lower()
    if key in CHAIN_GROUPS:
        return list(CHAIN_GROUPS[key])
    return [get_chain(key).name]
