"""Tests for the yfinance quote adapter with yf.Ticker stubbed out."""
import pandas as pd
import pytest

from tradefolio.adapters import stocks_yfinance
from tradefolio.adapters.stocks_yfinance import (
    get_current_quotes,
    get_quote,
    get_year_end_prices,
    to_yahoo_symbol,
)
from tradefolio.core.models import Market


@pytest.fixture
def history(monkeypatch):
    """Map Yahoo symbol -> DataFrame (or exception) returned by Ticker.history."""
    frames = {}
    requested = []

    class FakeTicker:
        def __init__(self, symbol):
            self.symbol = symbol

        def history(self, **kwargs):
            requested.append((self.symbol, kwargs))
            frame = frames.get(self.symbol, pd.DataFrame())
            if isinstance(frame, Exception):
                raise frame
            return frame

    monkeypatch.setattr(stocks_yfinance.yf, "Ticker", FakeTicker)
    return frames, requested


def closes(*values):
    return pd.DataFrame({"Close": list(values)})


def test_to_yahoo_symbol():
    assert to_yahoo_symbol("2330", Market.TW) == "2330.TW"
    assert to_yahoo_symbol("TPE:2330", Market.TW) == "2330.TW"
    assert to_yahoo_symbol("2330(BAK)", Market.TW) == "2330.TW"
    assert to_yahoo_symbol("dtla", Market.UK) == "DTLA.L"
    assert to_yahoo_symbol("7203", Market.JP) == "7203.T"
    assert to_yahoo_symbol("AAPL", Market.US) == "AAPL"
    assert to_yahoo_symbol("VT(BAK)", Market.US) == "VT"


def test_quote_uses_last_two_closes(history):
    frames, requested = history
    frames["AAPL"] = closes(190.0, 200.0, 202.0)

    quote = get_quote("AAPL", Market.US)

    assert quote.price == 202.0
    assert quote.change == pytest.approx(2.0)
    assert quote.change_percent == pytest.approx(1.0)
    assert requested == [("AAPL", {"period": "5d"})]


def test_single_close_has_no_change(history):
    frames, _ = history
    frames["2330.TW"] = closes(1000.0)

    quote = get_quote("2330", Market.TW)

    assert quote.price == 1000.0
    assert quote.change == 0
    assert quote.change_percent == 0


def test_missing_or_failing_ticker_returns_none(history):
    frames, _ = history
    frames["BROKEN"] = RuntimeError("rate limited")
    frames["EMPTY"] = closes(None)

    assert get_quote("NOPE", Market.US) is None
    assert get_quote("BROKEN", Market.US) is None
    assert get_quote("EMPTY", Market.US) is None


def test_current_quotes_keyed_by_query_ticker(history):
    frames, _ = history
    frames["2330.TW"] = closes(1000.0, 1010.0)
    frames["AAPL"] = closes(200.0, 198.0)

    quotes = get_current_quotes([(Market.TW, "2330"), (Market.US, "AAPL"), (Market.US, "NOPE")])

    assert set(quotes) == {"TPE:2330", "AAPL"}
    assert quotes["TPE:2330"].price == 1010.0
    assert quotes["AAPL"].change == pytest.approx(-2.0)


def test_year_end_prices_keyed_by_ledger_ticker(history):
    frames, requested = history
    frames["2330.TW"] = closes(580.0, 593.0)
    frames["VT"] = closes(104.0, None)

    prices = get_year_end_prices([(Market.TW, "2330"), (Market.US, "VT(BAK)"), (Market.US, "NOPE")], 2023)

    assert prices == {"2330": 593.0, "VT(BAK)": 104.0}
    assert requested[0] == ("2330.TW", {"start": "2023-12-01", "end": "2024-01-01"})
