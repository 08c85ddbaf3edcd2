"""Yahoo Finance chart API adapter for TWD exchange rates."""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

import requests

logger = logging.getLogger(__name__)

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart"
REQUEST_HEADERS = {"User-Agent": "Mozilla/5.0"}
SUPPORTED_CURRENCIES = ("USD", "JPY")


def _pair_symbol(base_ccy: str) -> str:
    return f"{base_ccy.upper()}TWD=X"


def _fetch_chart(symbol: str, params: Dict) -> Optional[Dict]:
    resp = requests.get(f"{YAHOO_CHART_URL}/{symbol}", params=params, headers=REQUEST_HEADERS, timeout=10)
    resp.raise_for_status()
    data = resp.json()
    results = (data.get("chart") or {}).get("result") or []
    return results[0] if results else None


def get_current_rates() -> Dict[str, float]:
    """
    Fetch current exchange rates to TWD.

    Returns dict of {currency_code: TWD per unit}. TWD itself is 1.0,
    currencies that could not be fetched are omitted.
    """
    rates = {"TWD": 1.0}

    for ccy in SUPPORTED_CURRENCIES:
        try:
            result = _fetch_chart(_pair_symbol(ccy), {"interval": "1d", "range": "1d"})
            price = ((result or {}).get("meta") or {}).get("regularMarketPrice")
            if price:
                rates[ccy] = float(price)
        except (requests.RequestException, ValueError, TypeError) as e:
            logger.warning("Failed to fetch %s/TWD rate: %s", ccy, e)

    return rates


def get_year_end_rate(base_ccy: str, year: int) -> Optional[float]:
    """
    Fetch the last December close of base_ccy/TWD for a year.

    Args:
        base_ccy: Base currency code ("USD" or "JPY")
        year: Calendar year

    Returns:
        Exchange rate as float, or None if not available
    """
    if base_ccy.upper() == "TWD":
        return 1.0

    start = datetime(year, 12, 1, tzinfo=timezone.utc)
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    params = {
        "period1": int(start.timestamp()),
        "period2": int(end.timestamp()),
        "interval": "1d",
    }

    try:
        result = _fetch_chart(_pair_symbol(base_ccy), params)
        if result is None:
            return None
        closes = [c for c in result["indicators"]["quote"][0]["close"] if c is not None]
        if closes:
            return float(closes[-1])
    except requests.HTTPError as e:
        if e.response is None or e.response.status_code != 404:
            logger.warning("Year-end %s/TWD request failed for %s: %s", base_ccy, year, e)
    except (requests.RequestException, ValueError, KeyError, IndexError, TypeError) as e:
        logger.warning("Failed to fetch year-end %s/TWD rate for %s: %s", base_ccy, year, e)

    return None


def convert_to_twd(amount: float, from_ccy: str, rates: Dict[str, float]) -> Optional[float]:
    """
    Convert amount from given currency to TWD using provided rates.

    Returns:
        Amount in TWD, or None if rate not available
    """
    if from_ccy == "TWD":
        return amount

    if from_ccy not in rates:
        return None

    return amount * rates[from_ccy]
