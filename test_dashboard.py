"""End-to-end valuation pass over a small two-currency ledger."""
from datetime import date

import pytest

from tradefolio.core.dashboard import build_dashboard
from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowType,
    Currency,
    Market,
    MarketData,
    PriceQuote,
    Transaction,
    TransactionType,
    YearSnapshot,
)

AS_OF = date(2026, 3, 31)


@pytest.fixture
def ledger():
    accounts = [
        Account("tw", "TW Broker", Currency.TWD),
        Account("us", "US Broker", Currency.USD, is_sub_brokerage=True),
        Account("jp", "JP Broker", Currency.JPY),
    ]
    cash_flows = [
        CashFlow("c1", date(2024, 1, 5), "tw", CashFlowType.DEPOSIT, 500000),
        CashFlow("c2", date(2024, 2, 1), "tw", CashFlowType.TRANSFER, 64000,
                 exchange_rate=32, target_account_id="us"),
        CashFlow("c3", date(2025, 1, 10), "jp", CashFlowType.DEPOSIT, 100000, exchange_rate=0.21),
        CashFlow("c4", date(2025, 6, 1), "tw", CashFlowType.INTEREST, 150),
    ]
    transactions = [
        Transaction("t1", date(2024, 1, 8), "tw", "2330", Market.TW, TransactionType.BUY, 600, 300, fees=256),
        Transaction("t2", date(2024, 2, 5), "us", "VT", Market.US, TransactionType.BUY, 105, 10, fees=1),
        Transaction("t3", date(2024, 7, 18), "tw", "2330", Market.TW, TransactionType.CASH_DIVIDEND, 3.5, 300),
        Transaction("t4", date(2025, 1, 15), "jp", "7203", Market.JP, TransactionType.BUY, 2800, 30),
        Transaction("t5", date(2025, 3, 3), "tw", "2330", Market.TW, TransactionType.SELL, 1000, 100, fees=430),
    ]
    market = MarketData(
        prices={"TW-2330": 950, "US-VT": 130, "JP-7203": 3000},
        details={"US-VT": PriceQuote(130, 1.3, 1.01)},
        exchange_rate=32.5,
        jpy_exchange_rate=0.2,
    )
    return transactions, cash_flows, accounts, market


def test_dashboard_totals_are_consistent(ledger):
    transactions, cash_flows, accounts, market = ledger
    dashboard = build_dashboard(transactions, cash_flows, accounts, market, as_of=AS_OF)

    holdings = {h.ticker: h for h in dashboard.holdings}
    assert set(holdings) == {"2330", "VT", "7203"}
    assert holdings["2330"].quantity == 200
    assert holdings["VT"].daily_change == pytest.approx(1.3)

    stock = 200 * 950 + 10 * 130 * 32.5 + 30 * 3000 * 0.2
    assert dashboard.summary.total_value_twd == pytest.approx(stock)
    assert dashboard.total_assets_twd == pytest.approx(stock + dashboard.summary.cash_balance_twd)

    weights = sum(h.weight for h in dashboard.holdings)
    cash_share = dashboard.summary.cash_balance_twd / dashboard.total_assets_twd * 100
    assert weights + cash_share == pytest.approx(100)

    assert sum(i.ratio for i in dashboard.allocation) == pytest.approx(100)
    assert dashboard.allocation[0].name == "Cash"

    accounts_total = sum(p.total_assets_twd for p in dashboard.account_performance)
    assert accounts_total == pytest.approx(dashboard.total_assets_twd)


def test_dashboard_chart_ends_at_live_total(ledger):
    transactions, cash_flows, accounts, market = ledger
    historical = {2024: YearSnapshot(prices={"TPE:2330": 1075, "VT": 118}, exchange_rate=32.8)}

    dashboard = build_dashboard(transactions, cash_flows, accounts, market, historical_data=historical, as_of=AS_OF)

    assert [p.year for p in dashboard.chart] == [2024, 2025, 2026]
    assert [p.is_real_data for p in dashboard.chart] == [True, False, True]
    assert dashboard.chart[-1].total_assets == pytest.approx(dashboard.total_assets_twd)
    assert dashboard.chart[-1].cost == pytest.approx(dashboard.summary.net_invested_twd)

    assert [i.year for i in dashboard.annual_performance] == [2026, 2025, 2024]
    assert dashboard.annual_performance[0].is_year_to_date
    assert dashboard.annual_performance[0].end_assets == pytest.approx(dashboard.total_assets_twd)


def test_dashboard_balances(ledger):
    transactions, cash_flows, accounts, market = ledger
    dashboard = build_dashboard(transactions, cash_flows, accounts, market, as_of=AS_OF)

    balances = {a.id: a.balance for a in dashboard.accounts}
    assert balances["tw"] == pytest.approx(500000 - 64000 - 180256 + 1050 + 150 + 99570)
    assert balances["us"] == pytest.approx(2000 - 1051)
    assert balances["jp"] == pytest.approx(100000 - 84000)


def test_dashboard_rebalance_matches_weights(ledger):
    transactions, cash_flows, accounts, market = ledger
    targets = {("jp", "7203"): 10}

    dashboard = build_dashboard(transactions, cash_flows, accounts, market, as_of=AS_OF, rebalance_targets=targets)

    plan = dashboard.rebalance
    assert plan.total_assets_twd == pytest.approx(dashboard.total_assets_twd)
    rows = {r.ticker: r for r in plan.rows}
    for h in dashboard.holdings:
        assert rows[h.ticker].current_percent == pytest.approx(h.weight)
    assert rows["7203"].target_value_twd == pytest.approx(dashboard.total_assets_twd * 0.1)
    # 7203 trades in JPY, converted at 0.2
    assert rows["7203"].diff_shares == pytest.approx(rows["7203"].diff_value_twd / 0.2 / 3000)
    assert plan.cash_target_percent == pytest.approx(90)
