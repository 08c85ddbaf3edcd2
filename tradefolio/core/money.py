"""Numeric sanitizing, TW rounding rules and TWD conversion rates."""
import math
from typing import Optional

from tradefolio.core.models import Currency, Market, Transaction

EPSILON_QUANTITY = 1e-6


def num(value) -> float:
    """Coerce upstream numbers to float; None, NaN, inf and junk become 0."""
    if value is None:
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(result):
        return 0.0
    return result


def round_half_up(value: float) -> float:
    return float(math.floor(value + 0.5))


def floor_if_tw(value: float, market: Market) -> float:
    """TW brokers truncate price * quantity before fees."""
    if market == Market.TW:
        return float(math.floor(value))
    return value


def trade_base_value(tx: Transaction) -> float:
    return floor_if_tw(num(tx.price) * num(tx.quantity), tx.market)


def trade_cost(tx: Transaction) -> float:
    """Cash paid for an acquisition: explicit amount, else base value + fees."""
    if tx.amount is not None:
        return num(tx.amount)
    return trade_base_value(tx) + num(tx.fees)


def trade_proceeds(tx: Transaction) -> float:
    """Cash received for a disposal: explicit amount, else base value - fees."""
    if tx.amount is not None:
        return num(tx.amount)
    return trade_base_value(tx) - num(tx.fees)


def cash_dividend_amount(tx: Transaction) -> float:
    # dividends are not truncated
    if tx.amount is not None:
        return num(tx.amount)
    return num(tx.price) * num(tx.quantity) - num(tx.fees)


def _jpy_or_usd(usd_rate: float, jpy_rate: Optional[float]) -> float:
    jpy = num(jpy_rate)
    return jpy if jpy > 0 else num(usd_rate)


def market_rate(market: Market, usd_rate: float, jpy_rate: Optional[float] = None) -> float:
    """
    TWD per unit of the market's trading currency.

    US and UK quotes use the USD rate, JP uses the JPY rate and falls back to
    the USD rate when it is missing, TW is identity.
    """
    if market in (Market.US, Market.UK):
        return num(usd_rate)
    if market == Market.JP:
        return _jpy_or_usd(usd_rate, jpy_rate)
    return 1.0


def currency_rate(currency: Currency, usd_rate: float, jpy_rate: Optional[float] = None) -> float:
    """TWD per unit of an account currency, same fallback as market_rate."""
    if currency == Currency.USD:
        return num(usd_rate)
    if currency == Currency.JPY:
        return _jpy_or_usd(usd_rate, jpy_rate)
    return 1.0
