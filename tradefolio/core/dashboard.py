"""One full valuation pass over the ledger."""
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from tradefolio.core.cash import calculate_account_balances
from tradefolio.core.history import DEFAULT_GROWTH_RATE, generate_chart_data
from tradefolio.core.models import (
    Account,
    AccountPerformance,
    AnnualPerformanceItem,
    AssetAllocationItem,
    CashFlow,
    ChartDataPoint,
    HistoricalData,
    Holding,
    MarketData,
    PortfolioSummary,
    RebalancePlan,
    Transaction,
)
from tradefolio.core.portfolio import (
    apply_weights,
    calculate_holdings,
    calculate_portfolio_summary,
    cash_value_twd,
    stock_value_twd,
)
from tradefolio.core.reports import (
    RebalanceTargets,
    calculate_account_performance,
    calculate_annual_performance,
    calculate_asset_allocation,
    calculate_rebalance,
)


@dataclass
class Dashboard:
    accounts: List[Account]
    holdings: List[Holding]
    summary: PortfolioSummary
    chart: List[ChartDataPoint]
    annual_performance: List[AnnualPerformanceItem]
    account_performance: List[AccountPerformance]
    allocation: List[AssetAllocationItem]
    rebalance: RebalancePlan

    @property
    def total_assets_twd(self) -> float:
        return self.summary.total_value_twd + self.summary.cash_balance_twd


def build_dashboard(
    transactions: Sequence[Transaction],
    cash_flows: Sequence[CashFlow],
    accounts: Sequence[Account],
    market: MarketData,
    historical_data: Optional[HistoricalData] = None,
    as_of: Optional[date] = None,
    growth_rate: float = DEFAULT_GROWTH_RATE,
    rebalance_targets: Optional[RebalanceTargets] = None,
) -> Dashboard:
    """
    Recompute every derived record from the full ledger.

    Data flows one way: balances and holdings, then summary and XIRR, then
    the yearly reconstruction, then the reports built on top of it.
    """
    as_of = as_of or date.today()
    usd = market.exchange_rate
    jpy = market.jpy_exchange_rate

    balances = calculate_account_balances(accounts, cash_flows, transactions)
    holdings = calculate_holdings(transactions, market.prices, market.details, as_of=as_of)

    total_assets = stock_value_twd(holdings, usd, jpy) + cash_value_twd(balances, usd, jpy)
    holdings = apply_weights(holdings, total_assets, usd, jpy)

    summary = calculate_portfolio_summary(holdings, balances, cash_flows, transactions, usd, jpy, as_of=as_of)
    chart = generate_chart_data(
        transactions,
        cash_flows,
        balances,
        total_assets,
        usd,
        historical_data=historical_data,
        jpy_exchange_rate=jpy,
        as_of=as_of,
        growth_rate=growth_rate,
    )

    return Dashboard(
        accounts=balances,
        holdings=holdings,
        summary=summary,
        chart=chart,
        annual_performance=calculate_annual_performance(chart, as_of=as_of),
        account_performance=calculate_account_performance(balances, holdings, cash_flows, transactions, usd, jpy),
        allocation=calculate_asset_allocation(holdings, summary.cash_balance_twd, usd, jpy),
        rebalance=calculate_rebalance(holdings, summary, rebalance_targets or {}, usd, jpy),
    )
