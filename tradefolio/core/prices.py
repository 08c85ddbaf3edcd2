"""Merge externally fetched quotes into the valuation inputs.

Precedence: a price, price detail or exchange rate that is already known and
non-zero is never replaced, fetched values only fill missing or zero fields.
An explicit user refresh passes overwrite=True to take the fresh quotes, except
for prices the user typed in, which are passed as locked.
Inputs are never mutated, a new MarketData / HistoricalData is returned.
"""
import re
from typing import Dict, Iterable, Mapping, Optional, Tuple

from tradefolio.core.models import (
    HistoricalData,
    Market,
    MarketData,
    PriceQuote,
    QuoteBatch,
    Transaction,
    YearSnapshot,
    price_key,
)
from tradefolio.core.money import num

_TW_CODE = re.compile(r"^\d{4}$")
_TW_PREFIX = "TPE:"


def query_ticker(market: Market, ticker: str) -> str:
    """Symbol sent to the quote service; bare 4-digit TW codes gain "TPE:"."""
    clean = ticker.strip()
    if market == Market.TW and _TW_CODE.match(clean):
        return f"{_TW_PREFIX}{clean}"
    return clean


def build_query_map(keys: Iterable[Tuple[Market, str]]) -> Dict[str, str]:
    """Map every symbol the service may echo back to the internal price key."""
    mapping: Dict[str, str] = {}
    for market, ticker in keys:
        internal = price_key(market, ticker)
        query = query_ticker(market, ticker)
        mapping.setdefault(query, internal)
        if query.upper().startswith(_TW_PREFIX):
            mapping.setdefault(query[len(_TW_PREFIX):], internal)
    return mapping


def _pick_rate(existing: Optional[float], fetched: Optional[float], overwrite: bool) -> Optional[float]:
    if num(fetched) <= 0:
        return existing
    if overwrite or num(existing) <= 0:
        return num(fetched)
    return existing


def reconcile_quotes(
    market: MarketData,
    batch: QuoteBatch,
    keys: Iterable[Tuple[Market, str]],
    overwrite: bool = False,
    locked: Iterable[str] = (),
) -> MarketData:
    """
    Fold a QuoteBatch into the current market data.

    Args:
        market: Prices, details and rates known before the fetch
        batch: Service result keyed by the symbols that were queried
        keys: (market, ticker) pairs that were queried
        overwrite: Replace known non-zero values too
        locked: Price keys entered by hand, never replaced even with overwrite

    Returns:
        New MarketData. Returned symbols that match no key are ignored.
    """
    prices = dict(market.prices)
    details = dict(market.details)
    query_map = build_query_map(keys)
    locked = set(locked)

    for returned, quote in batch.prices.items():
        internal = query_map.get(returned) or query_map.get(f"{_TW_PREFIX}{returned}")
        if internal is None or internal in locked:
            continue

        price = num(quote.price)
        if price <= 0:
            continue

        fresh = PriceQuote(price=price, change=num(quote.change), change_percent=num(quote.change_percent))
        if overwrite or num(prices.get(internal)) <= 0:
            prices[internal] = price
            details[internal] = fresh
        elif internal not in details:
            details[internal] = fresh

    return MarketData(
        prices=prices,
        details=details,
        exchange_rate=_pick_rate(market.exchange_rate, batch.exchange_rate, overwrite) or 0.0,
        jpy_exchange_rate=_pick_rate(market.jpy_exchange_rate, batch.jpy_exchange_rate, overwrite),
    )


def reconcile_historical(
    historical: HistoricalData,
    year: int,
    prices: Mapping[str, float],
    exchange_rate: Optional[float] = None,
    jpy_exchange_rate: Optional[float] = None,
) -> HistoricalData:
    """Fill missing or zero year-end prices and rates for one year."""
    merged = dict(historical)
    current = merged.get(year) or YearSnapshot()
    snapshot_prices = dict(current.prices)

    for ticker, price in prices.items():
        if num(price) > 0 and num(snapshot_prices.get(ticker)) <= 0:
            snapshot_prices[ticker] = num(price)

    merged[year] = YearSnapshot(
        prices=snapshot_prices,
        exchange_rate=_pick_rate(current.exchange_rate, exchange_rate, overwrite=False),
        jpy_exchange_rate=_pick_rate(current.jpy_exchange_rate, jpy_exchange_rate, overwrite=False),
    )
    return merged


def seed_trade_prices(prices: Mapping[str, float], transactions: Iterable[Transaction]) -> Dict[str, float]:
    """
    Prices to store for tickers that have no positive price yet.

    The latest trade price per key is used, so a newly bought ticker is valued
    at what was paid until a quote arrives.
    """
    seeded: Dict[str, float] = {}
    for tx in sorted(transactions, key=lambda t: t.date):
        key = price_key(tx.market, tx.ticker)
        if num(prices.get(key)) <= 0 and num(tx.price) > 0:
            seeded[key] = num(tx.price)
    return seeded
