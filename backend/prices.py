import bisect

from chains import ChainConfig
from errors import TransportError
from http_client import HttpTransport

COINGECKO_RANGE_URL = "https://api.coingecko.com/api/v3/coins/{coin}/market_chart/range"
RANGE_PADDING_SECONDS = 86400


class PriceResolver:
    """Native-asset USD price series for one run.

    build() fetches once; price_at() answers by nearest timestamp. An empty
    series means every lookup returns the chain's fixed fallback price.
    """

    def __init__(self, chain: ChainConfig, transport: HttpTransport, api_key: str = ""):
        self.chain = chain
        self.transport = transport
        self.api_key = api_key
        self.timestamps: list[int] = []
        self.prices: list[float] = []
        self.used_fallback = False

    def build(self, min_ts: int, max_ts: int) -> list[tuple[int, float]]:
        self.timestamps, self.prices = [], []
        params = {
            "vs_currency": "usd",
            "from": int(min_ts) - RANGE_PADDING_SECONDS,
            "to": int(max_ts) + RANGE_PADDING_SECONDS,
        }
        headers = {"x-cg-demo-api-key": self.api_key} if self.api_key else None
        url = COINGECKO_RANGE_URL.format(coin=self.chain.price_asset_id)

        try:
            response = self.transport.get(url, params=params, headers=headers)
        except TransportError as e:
            print(f"[Prices] {self.chain.native_symbol} history unavailable: {e}")
            return self._fallback()
        if not response.ok or not isinstance(response.payload, dict):
            print(f"[Prices] {self.chain.native_symbol} history unavailable: HTTP {response.status_code}")
            return self._fallback()

        points = []
        for point in response.payload.get("prices") or []:
            try:
                ms, price = point[0], float(point[1])
            except (TypeError, ValueError, IndexError):
                continue
            if price > 0:
                points.append((int(ms) // 1000, price))
        if not points:
            print(f"[Prices] empty {self.chain.native_symbol} price series")
            return self._fallback()

        points.sort(key=lambda p: p[0])
        self.timestamps = [p[0] for p in points]
        self.prices = [p[1] for p in points]
        self.used_fallback = False
        print(f"[Prices] {len(points)} {self.chain.native_symbol}/USD points loaded")
        return points

    def _fallback(self) -> list:
        self.used_fallback = True
        print(f"  → using fallback price ${self.chain.fallback_price_usd:.2f}")
        return []

    def price_at(self, ts: int) -> float:
        if not self.timestamps:
            return self.chain.fallback_price_usd
        i = bisect.bisect_left(self.timestamps, ts)
        if i == 0:
            return self.prices[0]
        if i == len(self.timestamps):
            return self.prices[-1]
        before, after = self.timestamps[i - 1], self.timestamps[i]
        return self.prices[i] if after - ts < ts - before else self.prices[i - 1]
