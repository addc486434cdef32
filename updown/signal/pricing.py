"""Order price derivation for mid-market pairs."""

import math

MIN_PRICE = 0.01
MAX_PRICE = 0.99
PAIR_TARGET = 0.98  # combined cost of a mid-market pair


def round_price(price: float) -> float:
    """Round to the cent (half away from zero) and clamp to [0.01, 0.99]."""
    rounded = math.floor(price * 100 + 0.5) / 100
    return min(MAX_PRICE, max(MIN_PRICE, rounded))


def mid_market_prices(up_price: float, down_price: float) -> tuple[float, float]:
    """(up, down) limit prices: the cheaper side at its own price, the
    other at PAIR_TARGET minus that."""
    if up_price <= down_price:
        return round_price(up_price), round_price(PAIR_TARGET - up_price)
    return round_price(PAIR_TARGET - down_price), round_price(down_price)
