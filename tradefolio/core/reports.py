"""Annual performance, per-account performance, asset allocation and rebalancing."""
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from tradefolio.core.cash import cash_flow_amount_twd, security_transfer_value_twd
from tradefolio.core.models import (
    Account,
    AccountPerformance,
    AnnualPerformanceItem,
    AssetAllocationItem,
    CashFlow,
    CashFlowType,
    ChartDataPoint,
    Holding,
    PortfolioSummary,
    RebalancePlan,
    RebalanceRow,
    Transaction,
    TransactionType,
)
from tradefolio.core.money import currency_rate, market_rate, num, round_half_up
from tradefolio.core.portfolio import holding_value_twd

CASH_LABEL = "Cash"

RebalanceTargets = Mapping[Tuple[str, str], float]


def calculate_annual_performance(
    chart_data: Sequence[ChartDataPoint],
    as_of: Optional[date] = None,
) -> List[AnnualPerformanceItem]:
    """
    Year-over-year profit and ROI from consecutive chart points, newest first.

    The first year starts from zero assets, so its inflow is its whole cost.
    """
    as_of = as_of or date.today()
    items = []
    prev = None

    for point in chart_data:
        start_assets = prev.total_assets if prev else 0.0
        net_inflow = point.cost - (prev.cost if prev else 0.0)
        profit = point.total_assets - start_assets - net_inflow
        base = start_assets + net_inflow

        items.append(AnnualPerformanceItem(
            year=point.year,
            start_assets=start_assets,
            net_inflow=net_inflow,
            end_assets=point.total_assets,
            profit=profit,
            roi=profit / base * 100 if base > 0 else 0.0,
            is_real_data=point.is_real_data,
            is_year_to_date=point.year == as_of.year,
        ))
        prev = point

    items.reverse()
    return items


def _account_net_invested(
    account: Account,
    accounts_by_id: Dict[str, Account],
    cash_flows: Sequence[CashFlow],
    transactions: Sequence[Transaction],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float],
) -> float:
    net_invested = 0.0

    for flow in cash_flows:
        if flow.account_id == account.id:
            value = cash_flow_amount_twd(flow, account, exchange_rate, jpy_exchange_rate)
            if flow.type == CashFlowType.DEPOSIT:
                net_invested += value
            elif flow.type in (CashFlowType.WITHDRAW, CashFlowType.TRANSFER):
                net_invested -= value

        if flow.type == CashFlowType.TRANSFER and flow.target_account_id == account.id:
            # credited with what left the source, so transfers net to zero
            source = accounts_by_id.get(flow.account_id)
            net_invested += cash_flow_amount_twd(flow, source, exchange_rate, jpy_exchange_rate)

    for tx in transactions:
        if tx.account_id != account.id:
            continue
        if tx.type == TransactionType.TRANSFER_IN:
            net_invested += security_transfer_value_twd(tx, exchange_rate, jpy_exchange_rate)
        elif tx.type == TransactionType.TRANSFER_OUT:
            net_invested -= security_transfer_value_twd(tx, exchange_rate, jpy_exchange_rate)

    return net_invested


def calculate_account_performance(
    accounts: Sequence[Account],
    holdings: Sequence[Holding],
    cash_flows: Sequence[CashFlow],
    transactions: Sequence[Transaction],
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> List[AccountPerformance]:
    """
    Assets, profit and ROI per account, in TWD.

    accounts must already carry their balances. Net invested is replayed
    from the flows touching each account only.
    """
    accounts_by_id = {a.id: a for a in accounts}
    results = []

    for account in accounts:
        cash = num(account.balance) * currency_rate(account.currency, exchange_rate, jpy_exchange_rate)
        market_value = sum(
            holding_value_twd(h, exchange_rate, jpy_exchange_rate)
            for h in holdings
            if h.account_id == account.id
        )
        total_assets = cash + market_value
        net_invested = _account_net_invested(
            account, accounts_by_id, cash_flows, transactions, exchange_rate, jpy_exchange_rate
        )
        profit = total_assets - net_invested

        results.append(AccountPerformance(
            id=account.id,
            name=account.name,
            currency=account.currency,
            total_assets_twd=total_assets,
            market_value_twd=market_value,
            cash_balance_twd=cash,
            profit_twd=profit,
            roi=profit / net_invested * 100 if net_invested > 0 else 0.0,
        ))

    return results


def calculate_asset_allocation(
    holdings: Sequence[Holding],
    cash_balance_twd: float,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> List[AssetAllocationItem]:
    """Slices by ticker (merged across accounts), largest first, cash pinned on top."""
    by_ticker: Dict[str, float] = {}
    total = cash_balance_twd

    for h in holdings:
        value = holding_value_twd(h, exchange_rate, jpy_exchange_rate)
        by_ticker[h.ticker] = by_ticker.get(h.ticker, 0.0) + value
        total += value

    def ratio(value: float) -> float:
        return value / total * 100 if total > 0 else 0.0

    items = [AssetAllocationItem(name=name, value=value, ratio=ratio(value)) for name, value in by_ticker.items()]
    items.sort(key=lambda item: item.value, reverse=True)

    if cash_balance_twd > 0:
        items.insert(0, AssetAllocationItem(name=CASH_LABEL, value=cash_balance_twd, ratio=ratio(cash_balance_twd)))

    return items


def calculate_rebalance(
    holdings: Sequence[Holding],
    summary: PortfolioSummary,
    targets: RebalanceTargets,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> RebalancePlan:
    """
    Trades needed to move each position to its target share of total assets.

    targets maps (account_id, ticker) to a percent; positions without one
    target 0. Cash takes whatever percentage the positions leave, so it can go
    negative when the targets add up to more than 100.
    """
    total = summary.total_value_twd + summary.cash_balance_twd

    def ratio(value: float) -> float:
        return value / total * 100 if total > 0 else 0.0

    rows = []
    for h in holdings:
        value = holding_value_twd(h, exchange_rate, jpy_exchange_rate)
        target_percent = num(targets.get((h.account_id, h.ticker)))
        target_value = total * target_percent / 100
        diff_value = target_value - value

        rate = market_rate(h.market, exchange_rate, jpy_exchange_rate)
        diff_shares = diff_value / rate / h.current_price if h.current_price > 0 and rate > 0 else 0.0

        rows.append(RebalanceRow(
            account_id=h.account_id,
            ticker=h.ticker,
            market=h.market,
            current_price=h.current_price,
            value_twd=value,
            current_percent=ratio(value),
            target_percent=target_percent,
            target_value_twd=target_value,
            diff_value_twd=diff_value,
            diff_shares=diff_shares,
        ))

    cash_target_percent = 100 - sum(r.target_percent for r in rows)
    cash_target = total * cash_target_percent / 100

    return RebalancePlan(
        rows=rows,
        total_assets_twd=total,
        cash_balance_twd=summary.cash_balance_twd,
        cash_current_percent=ratio(summary.cash_balance_twd),
        cash_target_percent=cash_target_percent,
        cash_target_twd=cash_target,
        cash_diff_twd=cash_target - summary.cash_balance_twd,
    )


def current_weight_targets(
    holdings: Sequence[Holding],
    summary: PortfolioSummary,
    exchange_rate: float,
    jpy_exchange_rate: Optional[float] = None,
) -> Dict[Tuple[str, str], float]:
    """Targets equal to today's weights, rounded to one decimal."""
    plan = calculate_rebalance(holdings, summary, {}, exchange_rate, jpy_exchange_rate)
    return {(r.account_id, r.ticker): round_half_up(r.current_percent * 10) / 10 for r in plan.rows}
