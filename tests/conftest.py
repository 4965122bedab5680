import threading

import pytest

from config import Settings
from http_client import HttpResponse

WALLET = "WaLLet1111111111111111111111111111111111111"
TOKEN_MINT = "BonkMint11111111111111111111111111111111111"
OTHER_MINT = "WifMint111111111111111111111111111111111111"
JUPITER_PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"


class FakeTransport:
    """In-memory stand-in for HttpTransport.

    Routes match on a URL substring. Each route holds a queue of responses
    (HttpResponse or Exception); the last one repeats once the queue drains.
    Unmatched URLs answer 404.
    """

    def __init__(self):
        self.routes: list[tuple[str, list]] = []
        self.calls: list[tuple[str, str, dict | None, dict | None]] = []
        self._lock = threading.Lock()

    def add(self, url_part: str, *responses):
        self.routes.append((url_part, list(responses)))
        return self

    def add_json(self, url_part: str, *payloads, status: int = 200):
        return self.add(url_part, *[HttpResponse(status, p) for p in payloads])

    def calls_to(self, url_part: str) -> list:
        return [c for c in self.calls if url_part in c[1]]

    def _answer(self, url: str):
        with self._lock:
            for part, queue in self.routes:
                if part in url:
                    item = queue.pop(0) if len(queue) > 1 else queue[0]
                    break
            else:
                item = HttpResponse(404, None)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, params=None, headers=None):
        with self._lock:
            self.calls.append(("GET", url, dict(params) if params else None, headers))
        return self._answer(url)

    def post(self, url, json_body=None, headers=None):
        with self._lock:
            self.calls.append(("POST", url, json_body, headers))
        return self._answer(url)


def no_sleep(_seconds):
    pass


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


# ── Record builders ───────────────────────────────────────────────────────

def helius_swap(signature, timestamp, native_lamports, token_changes, wallet=WALLET,
                fee=5000, program=JUPITER_PROGRAM, error=None):
    """Helius enhanced transaction; token_changes is [(mint, raw_amount, decimals)]."""
    return {
        "signature": signature,
        "timestamp": timestamp,
        "fee": fee,
        "feePayer": wallet,
        "type": "SWAP",
        "source": "JUPITER",
        "transactionError": error,
        "instructions": [{"programId": program, "innerInstructions": []}],
        "nativeTransfers": [],
        "tokenTransfers": [],
        "accountData": [
            {
                "account": wallet,
                "nativeBalanceChange": native_lamports,
                "tokenBalanceChanges": [
                    {
                        "mint": mint,
                        "userAccount": wallet,
                        "rawTokenAmount": {"tokenAmount": str(raw), "decimals": decimals},
                    }
                    for mint, raw, decimals in token_changes
                ],
            }
        ],
    }


def cielo_swap(tx_hash, timestamp, token0, token1, usd, dex="Jupiter"):
    """Cielo swap item; token0/token1 are (address, symbol, amount)."""
    return {
        "tx_hash": tx_hash,
        "timestamp": timestamp,
        "tx_type": "swap",
        "chain": "solana",
        "dex": dex,
        "token0_address": token0[0],
        "token0_symbol": token0[1],
        "token0_amount": token0[2],
        "token0_amount_usd": usd,
        "token1_address": token1[0],
        "token1_symbol": token1[1],
        "token1_amount": token1[2],
        "token1_amount_usd": usd,
        "is_sell": False,
    }


def cielo_page(items, next_id=None):
    return {
        "status": "ok",
        "data": {
            "items": items,
            "paging": {"has_next_page": next_id is not None, "next_object_id": next_id},
        },
    }


# ── Fixtures ──────────────────────────────────────────────────────────────

@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def settings():
    return Settings(
        helius_api_key="helius-key",
        cielo_api_key="cielo-key",
        covalent_api_key="covalent-key",
        page_delay_seconds=0,
        rate_limit_retry_delay=0,
        metadata_concurrency=2,
    )
