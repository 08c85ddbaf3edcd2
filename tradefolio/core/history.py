"""Year-by-year net-worth reconstruction for the growth chart."""
import re
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tradefolio.core.cash import get_portfolio_state_at_date, net_invested_events
from tradefolio.core.models import (
    Account,
    CashFlow,
    ChartDataPoint,
    HistoricalData,
    Market,
    Transaction,
    YearSnapshot,
)
from tradefolio.core.money import EPSILON_QUANTITY, currency_rate, market_rate, num, round_half_up

DEFAULT_GROWTH_RATE = 0.08
TW_PREFIX = "TPE:"

_BACKUP_MARKER = re.compile(r"\(BAK\)", re.IGNORECASE)
_TW_PREFIX = re.compile(r"^TPE:", re.IGNORECASE)


def ticker_aliases(market: Market, ticker: str) -> Tuple[str, ...]:
    """
    Candidate price-map keys for a held ticker, most specific first.

    "2330" on TW yields ("2330", "TPE:2330"); "VT(BAK)" on US yields
    ("VT(BAK)", "VT").
    """
    clean = _BACKUP_MARKER.sub("", ticker).strip()
    candidates = [ticker]
    if market == Market.TW:
        bare = _TW_PREFIX.sub("", clean)
        candidates += [f"{TW_PREFIX}{bare}", bare]
    else:
        candidates.append(clean)

    seen = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.append(candidate)
    return tuple(seen)


class PriceLookup:
    """Resolves held tickers against one price map, caching the alias hit."""

    def __init__(self, prices: Mapping[str, float]):
        self._prices = prices
        self._resolved: Dict[Tuple[Market, str], Optional[float]] = {}

    def resolve(self, market: Market, ticker: str) -> Optional[float]:
        """First positive price among the ticker's aliases, or None."""
        key = (market, ticker)
        if key not in self._resolved:
            price = None
            for alias in ticker_aliases(market, ticker):
                candidate = num(self._prices.get(alias))
                if candidate > 0:
                    price = candidate
                    break
            self._resolved[key] = price
        return self._resolved[key]


def value_at_year_end(
    year: int,
    snapshot: YearSnapshot,
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> Optional[float]:
    """
    Total assets in TWD on Dec 31 of year, valued at the snapshot's prices.

    Returns None when any held ticker has no price in the snapshot, so the
    caller never mixes real and missing prices in one year.
    """
    state = get_portfolio_state_at_date(date(year, 12, 31), transactions, cash_flows, accounts)
    usd_rate = num(snapshot.exchange_rate) or exchange_rate
    jpy_rate = num(snapshot.jpy_exchange_rate) or jpy_exchange_rate
    lookup = PriceLookup(snapshot.prices)

    stock_value = 0.0
    for (market, ticker), qty in state.holdings.items():
        if qty <= EPSILON_QUANTITY:
            continue
        price = lookup.resolve(market, ticker)
        if price is None:
            return None
        if market == Market.TW:
            stock_value += round_half_up(qty * price)
        else:
            stock_value += qty * price * market_rate(market, usd_rate, jpy_rate)

    accounts_by_id = {a.id: a for a in accounts}
    cash_value = 0.0
    for account_id, balance in state.cash_balances.items():
        account = accounts_by_id.get(account_id)
        if account is not None:
            cash_value += balance * currency_rate(account.currency, usd_rate, jpy_rate)

    return stock_value + cash_value


def generate_chart_data(
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
    current_total_value_twd: float,
    exchange_rate: float,
    historical_data: Optional[HistoricalData] = None,
    jpy_exchange_rate: Optional[float] = None,
    as_of: Optional[date] = None,
    growth_rate: float = DEFAULT_GROWTH_RATE,
) -> List[ChartDataPoint]:
    """
    One ChartDataPoint per calendar year from the first ledger entry to as_of.

    Total assets per year, in priority order:
      1. the current year uses the live total (real data);
      2. a past year with a complete HistoricalData snapshot is valued from
         holdings replayed to Dec 31 (real data);
      3. otherwise cost plus a linear share of today's total profit.
    """
    as_of = as_of or date.today()
    dates = [t.date for t in transactions] + [c.date for c in cash_flows]
    if not dates:
        return []

    start_year = min(dates).year
    end_year = as_of.year
    total_years = end_year - start_year + 1
    historical_data = historical_data or {}

    events = net_invested_events(transactions, cash_flows, accounts, exchange_rate, jpy_exchange_rate)
    invested_by_year: Dict[int, float] = {}
    for event in events:
        invested_by_year[event.date.year] = invested_by_year.get(event.date.year, 0.0) + event.amount

    final_invested = sum(amount for year, amount in invested_by_year.items() if year <= end_year)
    final_total_profit = current_total_value_twd - final_invested

    data = []
    cumulative = 0.0
    est_assets = 0.0

    for year in range(start_year, end_year + 1):
        net_inflow = invested_by_year.get(year, 0.0)
        cumulative += net_inflow

        est_assets = max(0.0, (est_assets + net_inflow) * (1 + growth_rate))
        cost = max(0.0, cumulative)

        total_assets = None
        is_real_data = False

        if year == end_year:
            total_assets = current_total_value_twd
            is_real_data = True
        elif year in historical_data:
            total_assets = value_at_year_end(
                year,
                historical_data[year],
                transactions,
                cash_flows,
                accounts,
                exchange_rate,
                jpy_exchange_rate,
            )
            is_real_data = total_assets is not None

        if total_assets is None:
            progress = (year - start_year + 1) / total_years
            total_assets = cost + final_total_profit * progress

        profit = total_assets - cost
        total_assets = cost + profit  # keep stacked bars and the line aligned

        data.append(ChartDataPoint(
            year=year,
            cost=cost,
            profit=profit,
            total_assets=total_assets,
            est_total_assets=est_assets,
            asset_cost_ratio=total_assets / cost if cost > 0 else 0.0,
            is_real_data=is_real_data,
        ))

    return data
