"""Placement signal: a pure function of prices, time left and thresholds."""

from updown.config.schema import SignalConfig
from updown.models.signal import Signal


def evaluate(
    up_price: float | None,
    down_price: float | None,
    minutes_remaining: float,
    config: SignalConfig,
) -> Signal:
    """Classify current market conditions for order placement.

    BAD when little time is left and one side already trades near
    certainty; GOOD when both sides sit inside the stable band; UNKNOWN when
    a price is missing. Everything else is BAD.
    """
    if up_price is None or down_price is None:
        return Signal.UNKNOWN

    if minutes_remaining <= config.clear_remaining_mins and (
        up_price >= config.clear_threshold or down_price >= config.clear_threshold
    ):
        return Signal.BAD

    if (
        config.stable_min <= up_price <= config.stable_max
        and config.stable_min <= down_price <= config.stable_max
    ):
        return Signal.GOOD

    return Signal.BAD


def is_danger_price(price: float | None, config: SignalConfig) -> bool:
    return price is not None and price <= config.danger_price
