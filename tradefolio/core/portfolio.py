"""Portfolio position calculations with weighted-average cost basis."""
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tradefolio.core.cash import net_invested_events
from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowPoint,
    CashFlowType,
    Currency,
    Holding,
    Market,
    PortfolioSummary,
    PriceQuote,
    Transaction,
    TransactionType,
)
from tradefolio.core.money import (
    EPSILON_QUANTITY,
    cash_dividend_amount,
    currency_rate,
    market_rate,
    num,
    round_half_up,
    trade_cost,
    trade_proceeds,
)
from tradefolio.core.xirr import calculate_generic_xirr

ACQUISITIONS = (TransactionType.BUY, TransactionType.TRANSFER_IN, TransactionType.DIVIDEND)
DISPOSALS = (TransactionType.SELL, TransactionType.TRANSFER_OUT)


def calculate_holdings(
    transactions: Sequence[Transaction],
    current_prices: Mapping[str, float],
    price_details: Optional[Mapping[str, PriceQuote]] = None,
    as_of: Optional[date] = None,
) -> List[Holding]:
    """
    Fold the transaction log into per-(account, ticker) positions.

    Disposals reduce total cost in proportion to the quantity sold, there are
    no discrete lots. Each surviving position also gets an XIRR computed from
    its own cash flows plus its current value dated as_of.

    Returns list of Holding objects with quantity above EPSILON_QUANTITY.
    """
    as_of = as_of or date.today()
    positions: Dict[Tuple[str, str], Holding] = {}
    flows: Dict[Tuple[str, str], List[CashFlowPoint]] = defaultdict(list)

    for tx in sorted(transactions, key=lambda t: t.date):
        key = (tx.account_id, tx.ticker)
        holding = positions.get(key)
        if holding is None:
            holding = Holding(
                ticker=tx.ticker,
                market=tx.market,
                account_id=tx.account_id,
                first_buy_date=tx.date,
            )
            positions[key] = holding

        qty = num(tx.quantity)

        if tx.type in ACQUISITIONS:
            cost = trade_cost(tx)
            holding.total_cost += cost
            holding.quantity += qty
            holding.avg_cost = holding.total_cost / holding.quantity if holding.quantity > 0 else 0.0

            # reinvested dividends are not new money
            if tx.type != TransactionType.DIVIDEND:
                flows[key].append(CashFlowPoint(-cost, tx.date))

        elif tx.type in DISPOSALS:
            if holding.quantity <= 0:
                continue

            sold = min(qty, holding.quantity)
            cost_removed = holding.total_cost * (sold / holding.quantity)
            if tx.market == Market.TW:
                cost_removed = round_half_up(cost_removed)

            holding.total_cost -= cost_removed
            holding.quantity -= sold
            flows[key].append(CashFlowPoint(trade_proceeds(tx), tx.date))

        elif tx.type == TransactionType.CASH_DIVIDEND:
            flows[key].append(CashFlowPoint(cash_dividend_amount(tx), tx.date))

    details = price_details or {}
    holdings = []

    for key, holding in positions.items():
        if holding.quantity <= EPSILON_QUANTITY:
            continue

        price = num(current_prices.get(holding.key))
        if price <= 0:
            price = holding.avg_cost  # no quote, assume no unrealized move

        value = price * holding.quantity
        if holding.market == Market.TW:
            value = round_half_up(value)

        holding.current_price = price
        holding.current_value = value
        holding.unrealized_pl = value - holding.total_cost
        holding.unrealized_pl_percent = (
            holding.unrealized_pl / holding.total_cost * 100 if holding.total_cost > 0 else 0.0
        )
        holding.annualized_return = calculate_generic_xirr(flows[key] + [CashFlowPoint(value, as_of)])

        detail = details.get(holding.key)
        if detail is not None:
            holding.daily_change = num(detail.change)
            holding.daily_change_percent = num(detail.change_percent)

        holdings.append(holding)

    return holdings


def holding_value_twd(holding: Holding, exchange_rate: float, jpy_exchange_rate: Optional[float] = None) -> float:
    return holding.current_value * market_rate(holding.market, exchange_rate, jpy_exchange_rate)


def stock_value_twd(
    holdings: Sequence[Holding],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> float:
    return sum(holding_value_twd(h, exchange_rate, jpy_exchange_rate) for h in holdings)


def cash_value_twd(
    accounts: Sequence[Account],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> float:
    return sum(num(a.balance) * currency_rate(a.currency, exchange_rate, jpy_exchange_rate) for a in accounts)


def apply_weights(
    holdings: Sequence[Holding],
    total_assets_twd: float,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> List[Holding]:
    """Return copies of holdings with weight set to their share of total assets (%)."""
    weighted = []
    for h in holdings:
        value = holding_value_twd(h, exchange_rate, jpy_exchange_rate)
        weight = value / total_assets_twd * 100 if total_assets_twd > 0 else 0.0
        weighted.append(replace(h, weight=weight))
    return weighted


def calculate_portfolio_xirr(
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
    current_total_value_twd: float,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
    as_of: Optional[date] = None,
) -> float:
    """Whole-portfolio XIRR (%): capital in is an outflow, today's total an inflow."""
    as_of = as_of or date.today()
    events = net_invested_events(transactions, cash_flows, accounts, exchange_rate, jpy_exchange_rate)
    flows = [CashFlowPoint(-e.amount, e.date) for e in events]
    flows.append(CashFlowPoint(current_total_value_twd, as_of))
    return calculate_generic_xirr(flows)


def _average_usd_exchange_rate(cash_flows: Sequence[CashFlow], accounts: Sequence[Account]) -> float:
    """Average TWD paid per USD acquired through deposits and TWD to USD transfers."""
    accounts_by_id = {a.id: a for a in accounts}
    usd_bought = 0.0
    twd_paid = 0.0

    for flow in cash_flows:
        source = accounts_by_id.get(flow.account_id)
        amount = num(flow.amount)
        rate = num(flow.exchange_rate)

        if flow.type == CashFlowType.DEPOSIT and source is not None and source.currency == Currency.USD:
            if num(flow.amount_twd) > 0:
                usd_bought += amount
                twd_paid += num(flow.amount_twd)
            elif rate > 0:
                usd_bought += amount
                twd_paid += amount * rate + num(flow.fee)

        elif flow.type == CashFlowType.TRANSFER and flow.target_account_id:
            target = accounts_by_id.get(flow.target_account_id)
            if (
                target is not None
                and target.currency == Currency.USD
                and source is not None
                and source.currency == Currency.TWD
                and rate > 0
            ):
                usd_bought += amount / rate
                twd_paid += amount + num(flow.fee)

    return twd_paid / usd_bought if usd_bought > 0 else 0.0


def calculate_portfolio_summary(
    holdings: Sequence[Holding],
    accounts: Sequence[Account],
    cash_flows: Sequence[CashFlow],
    transactions: Sequence[Transaction],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
    as_of: Optional[date] = None,
) -> PortfolioSummary:
    """
    Calculate portfolio-wide summary metrics in TWD.

    accounts must already carry their balances (see calculate_account_balances).
    """
    total_value = stock_value_twd(holdings, exchange_rate, jpy_exchange_rate)
    cash_balance = cash_value_twd(accounts, exchange_rate, jpy_exchange_rate)
    events = net_invested_events(transactions, cash_flows, accounts, exchange_rate, jpy_exchange_rate)
    net_invested = sum(e.amount for e in events)

    total_assets = total_value + cash_balance
    total_pl = total_assets - net_invested

    cash_dividends = 0.0
    stock_dividends = 0.0
    for tx in transactions:
        if tx.type == TransactionType.CASH_DIVIDEND:
            cash_dividends += cash_dividend_amount(tx) * market_rate(tx.market, exchange_rate, jpy_exchange_rate)
        elif tx.type == TransactionType.DIVIDEND:
            stock_dividends += cash_dividend_amount(tx) * market_rate(tx.market, exchange_rate, jpy_exchange_rate)

    return PortfolioSummary(
        total_cost_twd=net_invested,
        total_value_twd=total_value,
        total_pl_twd=total_pl,
        total_pl_percent=total_pl / net_invested * 100 if net_invested > 0 else 0.0,
        cash_balance_twd=cash_balance,
        net_invested_twd=net_invested,
        annualized_return=calculate_portfolio_xirr(
            transactions, cash_flows, accounts, total_assets, exchange_rate, jpy_exchange_rate, as_of
        ),
        exchange_rate_usd_to_twd=exchange_rate,
        accumulated_cash_dividends_twd=cash_dividends,
        accumulated_stock_dividends_twd=stock_dividends,
        avg_exchange_rate=_average_usd_exchange_rate(cash_flows, accounts),
    )
