"""
Turns a NormalizedTransfer into zero or more ClassifiedTrades.

Rules, in order:
  1. candidate if it touches a known exchange route, a non-native token, or a token transfer
  2. reject when only wrapped-native and stable assets move
  3. native amount = max(|plain native|, |wrapped native|), never the sum; dust ignored
  4. direction from the traded token's balance sign (up = buy, down = sell)
  5. several traded tokens share the payment proportionally to their amounts;
     with mixed directions the payment goes to the side matching the native flow
  6. buys without a payment get a placeholder native amount; such sells are dropped
  7. a stable leg in the matching direction prices the trade 1:1 in USD
"""

from typing import Callable, Optional

from chains import ChainConfig
from errors import ClassificationAmbiguity
from models import ClassifiedTrade, NormalizedTransfer

NATIVE_DUST = 0.0001
STABLE_DUST = 0.01
PLACEHOLDER_FEE_MULTIPLIER = 10
EPSILON = 1e-12


def _payment_for(direction: str, native: float, stable: float, quoted_usd: Optional[float],
                 price: float) -> Optional[tuple[float, float, bool]]:
    """(native_amount, usd_value, from_stable) paid/received by one side, or None."""
    wants_outflow = direction == "buy"
    if abs(stable) > STABLE_DUST and (stable < 0) == wants_outflow:
        if price <= 0:
            raise ClassificationAmbiguity("no native price for stable-denominated trade")
        usd = abs(stable)
        return usd / price, usd, True
    if native != 0 and (native < 0) == wants_outflow:
        amount = abs(native)
        usd = quoted_usd if quoted_usd else amount * price
        return amount, usd, False
    return None


def classify_or_raise(
    transfer: NormalizedTransfer,
    chain: ChainConfig,
    price_at: Callable[[int], float],
    symbols: dict[str, str] | None = None,
) -> list[ClassifiedTrade]:
    symbols = symbols or {}

    # 1
    has_token_change = any(not chain.is_native(c.token_id) for c in transfer.token_balance_changes)
    if not (transfer.has_known_exchange_route or has_token_change or transfer.token_transfer_count > 0):
        return []

    # 2
    wrapped = 0.0
    stable = 0.0
    traded: dict[str, float] = {}
    for change in transfer.token_balance_changes:
        tid = chain.normalize_id(change.token_id)
        if chain.is_native(tid):
            wrapped += change.amount_signed
        elif chain.is_stable(tid, symbols.get(tid)):
            stable += change.amount_signed
        elif abs(change.amount_signed) > EPSILON:
            traded[tid] = traded.get(tid, 0.0) + change.amount_signed
    traded = {tid: amt for tid, amt in traded.items() if abs(amt) > EPSILON}
    if not traded:
        return []

    # 3
    plain = transfer.native_amount_signed
    native = plain if abs(plain) >= abs(wrapped) else wrapped
    if abs(native) < NATIVE_DUST:
        native = 0.0

    # 4
    buys = {tid: amt for tid, amt in traded.items() if amt > 0}
    sells = {tid: -amt for tid, amt in traded.items() if amt < 0}

    price = price_at(transfer.timestamp)
    quoted = transfer.quoted_usd

    # 5
    sides = []
    if buys and sells:
        if native != 0:
            paid = "buy" if native < 0 else "sell"
        elif abs(stable) > STABLE_DUST:
            paid = "buy" if stable < 0 else "sell"
        elif quoted:
            # token-for-token swap valued by the provider: both sides carry the quote
            paid = None
        else:
            raise ClassificationAmbiguity(f"{transfer.signature}: token-for-token swap without a value")
        for direction, group in (("buy", buys), ("sell", sells)):
            if paid is None:
                payment = (quoted / price if price > 0 else 0.0, quoted, False)
            elif direction == paid:
                payment = _payment_for(direction, native, stable, quoted, price)
            else:
                payment = None
            sides.append((direction, group, payment))
    else:
        direction, group = ("buy", buys) if buys else ("sell", sells)
        payment = _payment_for(direction, native, stable, quoted, price)
        if payment is None and quoted:
            payment = (quoted / price if price > 0 else 0.0, quoted, False)
        sides.append((direction, group, payment))

    trades = []
    for direction, group, payment in sides:
        estimated = False
        if payment is None:
            # 6
            if direction == "sell":
                continue
            placeholder = max(transfer.fee_native * PLACEHOLDER_FEE_MULTIPLIER, chain.min_placeholder_native)
            payment = (placeholder, placeholder * price, False)
            estimated = True

        native_total, usd_total, _ = payment
        weight_total = sum(group.values())
        if weight_total <= 0:
            raise ClassificationAmbiguity(f"{transfer.signature}: zero traded amount")
        for tid, amount in group.items():
            share = amount / weight_total
            trades.append(ClassifiedTrade(
                timestamp=transfer.timestamp,
                token_id=tid,
                token_symbol=symbols.get(tid) or tid[:8] + "...",
                direction=direction,
                token_amount=amount,
                native_amount=native_total * share,
                usd_value=max(usd_total * share, 0.0),
                signature=transfer.signature,
                estimated=estimated,
            ))
    return trades


def classify_transfer(
    transfer: NormalizedTransfer,
    chain: ChainConfig,
    price_at: Callable[[int], float],
    symbols: dict[str, str] | None = None,
) -> list[ClassifiedTrade]:
    """Never raises; ambiguous transfers yield no trades."""
    try:
        return classify_or_raise(transfer, chain, price_at, symbols)
    except ClassificationAmbiguity:
        return []


def classify_transfers(
    transfers: list[NormalizedTransfer],
    chain: ChainConfig,
    price_at: Callable[[int], float],
    symbols: dict[str, str] | None = None,
) -> tuple[list[ClassifiedTrade], int]:
    """Classify a whole history. Returns (trades, skipped_count)."""
    trades = []
    skipped = 0
    for transfer in transfers:
        try:
            trades.extend(classify_or_raise(transfer, chain, price_at, symbols))
        except ClassificationAmbiguity as e:
            skipped += 1
            print(f"  → skipped ambiguous transfer: {e}")
    return trades, skipped
