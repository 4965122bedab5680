"""
Token id → symbol/image resolution.

Sources are tried in order, each on the ids the previous ones could not
resolve. Everything (placeholders included) lands in a per-run cache, so an
id is looked up over the network at most once per run.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from chains import ChainConfig
from errors import TransportError
from http_client import HttpTransport

HELIUS_RPC_URL = "https://mainnet.helius-rpc.com/"
JUPITER_TOKEN_URL = "https://tokens.jup.ag/token/{mint}"
DEXSCREENER_TOKENS_URL = "https://api.dexscreener.com/latest/dex/tokens/{addresses}"


@dataclass(frozen=True)
class TokenMetadata:
    symbol: str
    image_url: Optional[str] = None
    source: str = ""


def placeholder_symbol(token_id: str) -> str:
    return token_id[:8] + "..."


class MetadataCache:
    def __init__(self):
        self._entries: dict[str, TokenMetadata] = {}

    def __contains__(self, token_id: str) -> bool:
        return token_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, token_id: str) -> Optional[TokenMetadata]:
        return self._entries.get(token_id)

    def put(self, token_id: str, meta: TokenMetadata):
        self._entries[token_id] = meta


# ── Sources ───────────────────────────────────────────────────────────────

class MetadataSource:
    name = ""
    batch_size = 1

    def try_resolve_batch(self, token_ids: list[str]) -> dict[str, TokenMetadata]:
        raise NotImplementedError


class CuratedListSource(MetadataSource):
    """The chain's built-in token list. No network."""

    name = "curated"
    batch_size = 1000

    def __init__(self, chain: ChainConfig):
        self.chain = chain

    def try_resolve_batch(self, token_ids):
        return {
            tid: TokenMetadata(symbol=self.chain.known_tokens[tid], source=self.name)
            for tid in token_ids
            if tid in self.chain.known_tokens
        }


class HeliusAssetSource(MetadataSource):
    """Helius DAS getAssetBatch (on-chain metadata registry)."""

    name = "helius-das"
    batch_size = 50

    def __init__(self, transport: HttpTransport, api_key: str):
        self.transport = transport
        self.api_key = api_key

    def try_resolve_batch(self, token_ids):
        body = {
            "jsonrpc": "2.0",
            "id": "token-metadata",
            "method": "getAssetBatch",
            "params": {"ids": token_ids},
        }
        response = self.transport.post(f"{HELIUS_RPC_URL}?api-key={self.api_key}", json_body=body)
        if not response.ok or not isinstance(response.payload, dict):
            raise TransportError(f"HTTP {response.status_code}")

        found = {}
        for asset in response.payload.get("result") or []:
            if not asset:
                continue
            content = asset.get("content") or {}
            meta = content.get("metadata") or {}
            symbol = (meta.get("symbol") or meta.get("name") or "").strip()
            if not symbol or asset.get("id") not in token_ids:
                continue
            image = (content.get("links") or {}).get("image")
            if not image:
                files = content.get("files") or []
                if files:
                    image = files[0].get("cdn_uri") or files[0].get("uri")
            found[asset["id"]] = TokenMetadata(symbol=symbol, image_url=image or None, source=self.name)
        return found


class JupiterTokenSource(MetadataSource):
    """Jupiter token list, one mint per request."""

    name = "jupiter"
    batch_size = 1

    def __init__(self, transport: HttpTransport):
        self.transport = transport

    def try_resolve_batch(self, token_ids):
        found = {}
        for mint in token_ids:
            response = self.transport.get(JUPITER_TOKEN_URL.format(mint=mint))
            payload = response.payload if response.ok else None
            if isinstance(payload, dict) and payload.get("symbol"):
                found[mint] = TokenMetadata(
                    symbol=payload["symbol"],
                    image_url=payload.get("logoURI"),
                    source=self.name,
                )
        return found


class DexScreenerSource(MetadataSource):
    """DexScreener pairs; the pair with the deepest USD liquidity wins."""

    name = "dexscreener"
    batch_size = 30

    def __init__(self, transport: HttpTransport, chain: ChainConfig):
        self.transport = transport
        self.chain = chain

    def try_resolve_batch(self, token_ids):
        response = self.transport.get(DEXSCREENER_TOKENS_URL.format(addresses=",".join(token_ids)))
        if not response.ok or not isinstance(response.payload, dict):
            raise TransportError(f"HTTP {response.status_code}")

        wanted = set(token_ids)
        best: dict[str, tuple[float, dict]] = {}
        for pair in response.payload.get("pairs") or []:
            base = pair.get("baseToken") or {}
            tid = self.chain.normalize_id(base.get("address", ""))
            if tid not in wanted or not base.get("symbol"):
                continue
            liquidity = float((pair.get("liquidity") or {}).get("usd") or 0)
            if tid not in best or liquidity > best[tid][0]:
                best[tid] = (liquidity, pair)

        return {
            tid: TokenMetadata(
                symbol=pair["baseToken"]["symbol"],
                image_url=(pair.get("info") or {}).get("imageUrl"),
                source=self.name,
            )
            for tid, (_, pair) in best.items()
        }


def default_sources(chain: ChainConfig, transport: HttpTransport, helius_api_key: str = "") -> list[MetadataSource]:
    sources: list[MetadataSource] = []
    if chain.name == "solana" and helius_api_key:
        sources.append(HeliusAssetSource(transport, helius_api_key))
    sources.append(CuratedListSource(chain))
    if chain.name == "solana":
        sources.append(JupiterTokenSource(transport))
    sources.append(DexScreenerSource(transport, chain))
    return sources


# ── Resolver ──────────────────────────────────────────────────────────────

class TokenMetadataResolver:
    def __init__(self, sources: list[MetadataSource], cache: MetadataCache | None = None, concurrency: int = 4):
        self.sources = sources
        self.cache = cache if cache is not None else MetadataCache()
        self.concurrency = max(1, concurrency)

    def prime(self, hints):
        """Seed the cache with provider-supplied (token_id, symbol) pairs."""
        for token_id, symbol in hints:
            if token_id and symbol and token_id not in self.cache:
                self.cache.put(token_id, TokenMetadata(symbol=symbol, source="provider"))

    def _try(self, source: MetadataSource, batch: list[str]) -> dict[str, TokenMetadata]:
        try:
            return source.try_resolve_batch(batch)
        except (TransportError, ValueError, KeyError, TypeError) as e:
            print(f"[Metadata] {source.name} failed for {len(batch)} token(s): {e}")
            return {}

    def resolve_batch(self, token_ids: list[str]) -> dict[str, TokenMetadata]:
        pending = [tid for tid in dict.fromkeys(token_ids) if tid and tid not in self.cache]

        for source in self.sources:
            if not pending:
                break
            batches = [pending[i:i + source.batch_size] for i in range(0, len(pending), source.batch_size)]
            with ThreadPoolExecutor(max_workers=min(self.concurrency, len(batches))) as pool:
                for found in pool.map(lambda b: self._try(source, b), batches):
                    for tid, meta in found.items():
                        self.cache.put(tid, meta)
            resolved = len(pending) - sum(1 for tid in pending if tid not in self.cache)
            if resolved:
                print(f"[Metadata] {source.name}: resolved {resolved}/{len(pending)}")
            pending = [tid for tid in pending if tid not in self.cache]

        for tid in pending:
            self.cache.put(tid, TokenMetadata(symbol=placeholder_symbol(tid), source="placeholder"))

        return {tid: self.cache.get(tid) for tid in token_ids if tid}
