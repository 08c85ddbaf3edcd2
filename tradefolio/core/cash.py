"""Per-account cash balances and point-in-time ledger replay."""
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowPoint,
    CashFlowType,
    Currency,
    Market,
    PortfolioState,
    Transaction,
    TransactionType,
)
from tradefolio.core.money import (
    cash_dividend_amount,
    currency_rate,
    market_rate,
    num,
    trade_base_value,
    trade_cost,
    trade_proceeds,
)

_QUANTITY_SIGN = {
    TransactionType.BUY: 1,
    TransactionType.DIVIDEND: 1,
    TransactionType.TRANSFER_IN: 1,
    TransactionType.SELL: -1,
    TransactionType.TRANSFER_OUT: -1,
}


def _transfer_credit(flow: CashFlow, accounts_by_id: Dict[str, Account]) -> float:
    """Amount credited to the target of a transfer, in the target currency."""
    amount = num(flow.amount)
    rate = num(flow.exchange_rate)
    if rate <= 0:
        return amount

    source = accounts_by_id.get(flow.account_id)
    target = accounts_by_id.get(flow.target_account_id)
    if source is None or target is None:
        return amount

    if source.currency == Currency.USD and target.currency == Currency.TWD:
        return amount * rate
    if source.currency == Currency.TWD and target.currency == Currency.USD:
        return amount / rate
    return amount


def _replay(
    accounts: Sequence[Account],
    cash_flows: Sequence[CashFlow],
    transactions: Sequence[Transaction],
    cutoff: Optional[date] = None,
) -> Tuple[Dict[str, float], Dict[Tuple[Market, str], float]]:
    accounts_by_id = {a.id: a for a in accounts}
    balances: Dict[str, float] = defaultdict(float)
    for account in accounts:
        balances[account.id] = 0.0
    positions: Dict[Tuple[str, str], float] = defaultdict(float)
    markets: Dict[Tuple[str, str], Market] = {}

    for flow in cash_flows:
        if cutoff is not None and flow.date > cutoff:
            continue
        amount = num(flow.amount)
        if flow.type in (CashFlowType.DEPOSIT, CashFlowType.INTEREST):
            balances[flow.account_id] += amount
        elif flow.type == CashFlowType.WITHDRAW:
            balances[flow.account_id] -= amount
        elif flow.type == CashFlowType.TRANSFER:
            balances[flow.account_id] -= amount
            if flow.target_account_id:
                balances[flow.target_account_id] += _transfer_credit(flow, accounts_by_id)

    for tx in sorted(transactions, key=lambda t: t.date):
        if cutoff is not None and tx.date > cutoff:
            continue

        if tx.type == TransactionType.BUY:
            balances[tx.account_id] -= trade_cost(tx)
        elif tx.type == TransactionType.SELL:
            balances[tx.account_id] += trade_proceeds(tx)
        elif tx.type == TransactionType.CASH_DIVIDEND:
            balances[tx.account_id] += cash_dividend_amount(tx)
        elif tx.type in (TransactionType.TRANSFER_IN, TransactionType.TRANSFER_OUT):
            # shares move, cash only pays the fee
            balances[tx.account_id] -= num(tx.fees)

        sign = _QUANTITY_SIGN.get(tx.type)
        if sign:
            key = (tx.account_id, tx.ticker)
            markets.setdefault(key, tx.market)
            qty = num(tx.quantity)
            if sign < 0:
                # disposals are capped at what the account holds, as in calculate_holdings
                qty = min(qty, max(positions[key], 0.0))
            positions[key] += sign * qty

    holdings: Dict[Tuple[Market, str], float] = defaultdict(float)
    for key, qty in positions.items():
        holdings[(markets[key], key[1])] += qty

    return dict(balances), dict(holdings)


def calculate_account_balances(
    accounts: Sequence[Account],
    cash_flows: Sequence[CashFlow],
    transactions: Sequence[Transaction],
) -> List[Account]:
    """Replay the whole ledger and return accounts with balance filled in."""
    balances, _ = _replay(accounts, cash_flows, transactions)
    return [replace(a, balance=balances.get(a.id, 0.0)) for a in accounts]


def get_portfolio_state_at_date(
    target_date: date,
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
) -> PortfolioState:
    """
    Time machine: holdings and cash as of the end of target_date.

    Holdings are raw net quantities per (market, ticker) across all
    accounts; cash balances are per account in the account currency.
    """
    balances, holdings = _replay(accounts, cash_flows, transactions, cutoff=target_date)
    return PortfolioState(holdings=holdings, cash_balances=balances)


def cash_flow_amount_twd(
    flow: CashFlow,
    account: Optional[Account],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> float:
    """
    TWD value of a cash flow seen from its source account.

    A positive amount_twd wins. Otherwise foreign accounts use the flow's
    own exchange rate when present and the current rate when not. Flows on
    unknown accounts are treated as TWD.
    """
    if num(flow.amount_twd) > 0:
        return num(flow.amount_twd)

    amount = num(flow.amount)
    if account is None or account.currency == Currency.TWD:
        return amount

    if num(flow.exchange_rate) > 0:
        return amount * num(flow.exchange_rate)
    return amount * currency_rate(account.currency, exchange_rate, jpy_exchange_rate)


def security_transfer_value_twd(
    tx: Transaction,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> float:
    """Market value of shares moved by a TRANSFER_IN/OUT, in TWD."""
    value = num(tx.amount) if tx.amount is not None else trade_base_value(tx)
    return value * market_rate(tx.market, exchange_rate, jpy_exchange_rate)


def net_invested_events(
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> List[CashFlowPoint]:
    """
    Capital entering (+) or leaving (-) the portfolio, in TWD, by date.

    Deposits and withdrawals count, internal transfers and interest do not.
    Shares transferred in or out count at their transfer value.
    """
    accounts_by_id = {a.id: a for a in accounts}
    events: List[CashFlowPoint] = []

    for flow in cash_flows:
        if flow.type not in (CashFlowType.DEPOSIT, CashFlowType.WITHDRAW):
            continue
        value = cash_flow_amount_twd(flow, accounts_by_id.get(flow.account_id), exchange_rate, jpy_exchange_rate)
        sign = 1 if flow.type == CashFlowType.DEPOSIT else -1
        events.append(CashFlowPoint(sign * value, flow.date))

    for tx in transactions:
        if tx.type == TransactionType.TRANSFER_IN:
            events.append(CashFlowPoint(security_transfer_value_twd(tx, exchange_rate, jpy_exchange_rate), tx.date))
        elif tx.type == TransactionType.TRANSFER_OUT:
            events.append(CashFlowPoint(-security_transfer_value_twd(tx, exchange_rate, jpy_exchange_rate), tx.date))

    events.sort(key=lambda e: e.date)
    return events
