import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")

# ── Environment ───────────────────────────────────────────────────────────

HELIUS_API_KEY = os.getenv("HELIUS_API_KEY", "")
CIELO_API_KEY = os.getenv("CIELO_API_KEY", "")
COVALENT_API_KEY = os.getenv("COVALENT_API_KEY", "")
COINGECKO_API_KEY = os.getenv("COINGECKO_API_KEY", "")

REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", 15))
RATE_LIMIT_RETRY_DELAY = float(os.getenv("RATE_LIMIT_RETRY_DELAY", 2.0))
PAGE_DELAY_SECONDS = float(os.getenv("PAGE_DELAY_SECONDS", 0.5))
METADATA_CONCURRENCY = max(1, int(os.getenv("METADATA_CONCURRENCY", 4)))
COMPARE_REPORTED_PNL = os.getenv("COMPARE_REPORTED_PNL", "false").lower() in ("true", "1", "yes")

# Comma-separated override, e.g. "cielo,helius"
PROVIDER_ORDER = [p.strip().lower() for p in os.getenv("PROVIDER_ORDER", "").split(",") if p.strip()]

# Safety bounds on pagination per provider
MAX_PAGES = {
    "helius": 50,
    "cielo": 20,
    "covalent": 20,
}


@dataclass
class Settings:
    helius_api_key: str = ""
    cielo_api_key: str = ""
    covalent_api_key: str = ""
    coingecko_api_key: str = ""
    request_timeout: float = 15.0
    rate_limit_retry_delay: float = 2.0
    page_delay_seconds: float = 0.5
    metadata_concurrency: int = 4
    compare_reported_pnl: bool = False
    provider_order: list[str] = field(default_factory=list)
    max_pages: dict[str, int] = field(default_factory=lambda: dict(MAX_PAGES))

    def api_key(self, provider: str) -> str:
        return getattr(self, f"{provider}_api_key", "") or ""

    def has_any_key(self, providers: list[str]) -> bool:
        return any(self.api_key(p) for p in providers)


def load_settings() -> Settings:
    """Build Settings from the process environment (.env already loaded)."""
    return Settings(
        helius_api_key=HELIUS_API_KEY,
        cielo_api_key=CIELO_API_KEY,
        covalent_api_key=COVALENT_API_KEY,
        coingecko_api_key=COINGECKO_API_KEY,
        request_timeout=REQUEST_TIMEOUT,
        rate_limit_retry_delay=RATE_LIMIT_RETRY_DELAY,
        page_delay_seconds=PAGE_DELAY_SECONDS,
        metadata_concurrency=METADATA_CONCURRENCY,
        compare_reported_pnl=COMPARE_REPORTED_PNL,
        provider_order=list(PROVIDER_ORDER),
    )
