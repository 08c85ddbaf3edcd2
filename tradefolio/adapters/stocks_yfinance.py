"""Yahoo Finance stocks/ETFs adapter using yfinance."""
import logging
import re
from typing import Dict, Iterable, Optional, Tuple

import yfinance as yf

from tradefolio.core.models import Market, PriceQuote
from tradefolio.core.prices import query_ticker

logger = logging.getLogger(__name__)

_MARKET_SUFFIX = {
    Market.TW: ".TW",
    Market.UK: ".L",
    Market.JP: ".T",
}


def to_yahoo_symbol(ticker: str, market: Market) -> str:
    """
    Convert a ledger ticker to its Yahoo symbol.

    "TPE:2330" (TW) -> "2330.TW", "DTLA" (UK) -> "DTLA.L", "7203" (JP) ->
    "7203.T", "AAPL" (US) -> "AAPL". Backup markers like "(BAK)" are dropped.
    """
    clean = re.sub(r"\(BAK\)", "", ticker, flags=re.IGNORECASE).strip()
    clean = re.sub(r"^TPE:", "", clean, flags=re.IGNORECASE)
    clean = re.sub(r"\.(TW|L|T)$", "", clean, flags=re.IGNORECASE)
    return f"{clean.upper()}{_MARKET_SUFFIX.get(market, '')}"


def get_quote(ticker: str, market: Market) -> Optional[PriceQuote]:
    """
    Fetch latest close and the change against the previous close.

    Returns:
        PriceQuote in the market's currency, or None if not found
    """
    symbol = to_yahoo_symbol(ticker, market)
    try:
        hist = yf.Ticker(symbol).history(period="5d")
        if hist.empty or "Close" not in hist.columns:
            return None

        closes = hist["Close"].dropna()
        if closes.empty:
            return None

        price = float(closes.iloc[-1])
        prev = float(closes.iloc[-2]) if len(closes) > 1 else price
        change = price - prev
        return PriceQuote(
            price=price,
            change=change,
            change_percent=change / prev * 100 if prev else 0.0,
        )

    except Exception as e:
        logger.warning("Error fetching quote for %s: %s", symbol, e)
        return None


def get_current_quotes(keys: Iterable[Tuple[Market, str]]) -> Dict[str, PriceQuote]:
    """
    Fetch quotes for multiple (market, ticker) pairs.

    Returns:
        Dict keyed by the query ticker (see core.prices.query_ticker).
        Tickers not found are omitted.
    """
    quotes = {}

    for market, ticker in keys:
        quote = get_quote(ticker, market)
        if quote:
            quotes[query_ticker(market, ticker)] = quote

    return quotes


def get_year_end_price(ticker: str, market: Market, year: int) -> Optional[float]:
    """Last December close of a year, or None."""
    symbol = to_yahoo_symbol(ticker, market)
    try:
        hist = yf.Ticker(symbol).history(start=f"{year}-12-01", end=f"{year + 1}-01-01")
        if hist.empty or "Close" not in hist.columns:
            return None

        closes = hist["Close"].dropna()
        return float(closes.iloc[-1]) if not closes.empty else None

    except Exception as e:
        logger.warning("Error fetching %s year-end price for %s: %s", year, symbol, e)
        return None


def get_year_end_prices(keys: Iterable[Tuple[Market, str]], year: int) -> Dict[str, float]:
    """Year-end prices keyed by the ledger ticker. Missing tickers are omitted."""
    prices = {}

    for market, ticker in keys:
        price = get_year_end_price(ticker, market, year)
        if price:
            prices[ticker] = price

    return prices
