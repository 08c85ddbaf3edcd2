"""Tests for yearly net-worth reconstruction and ticker aliasing."""
from datetime import date

import pytest

from tradefolio.core.history import PriceLookup, generate_chart_data, ticker_aliases, value_at_year_end
from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowType,
    Currency,
    Market,
    Transaction,
    TransactionType,
    YearSnapshot,
)

AS_OF = date(2026, 6, 30)
TW_ACCOUNT = Account("tw", "TW Broker", Currency.TWD)
US_ACCOUNT = Account("us", "US Broker", Currency.USD)


@pytest.fixture
def tw_ledger():
    cash_flows = [CashFlow("c1", date(2025, 3, 1), "tw", CashFlowType.DEPOSIT, 100000)]
    transactions = [
        Transaction("t1", date(2025, 3, 2), "tw", "2330", Market.TW, TransactionType.BUY, 500, 100),
    ]
    return transactions, cash_flows, [TW_ACCOUNT]


@pytest.fixture
def mixed_ledger(tw_ledger):
    transactions, cash_flows, accounts = tw_ledger
    cash_flows = cash_flows + [
        CashFlow("c2", date(2025, 4, 1), "us", CashFlowType.DEPOSIT, 1000, exchange_rate=30),
    ]
    transactions = transactions + [
        Transaction("t2", date(2025, 4, 2), "us", "AAPL", Market.US, TransactionType.BUY, 150, 2),
    ]
    return transactions, cash_flows, accounts + [US_ACCOUNT]


def test_empty_ledger_has_no_points():
    assert generate_chart_data([], [], [TW_ACCOUNT], 0, 31.5, as_of=AS_OF) == []


def test_years_without_snapshot_are_interpolated(tw_ledger):
    transactions, cash_flows, accounts = tw_ledger
    chart = generate_chart_data(transactions, cash_flows, accounts, 130000, 31.5, as_of=AS_OF)

    assert [p.year for p in chart] == [2025, 2026]

    past, current = chart
    assert past.cost == 100000
    assert past.total_assets == pytest.approx(115000)
    assert past.profit == pytest.approx(15000)
    assert not past.is_real_data

    assert current.cost == 100000
    assert current.total_assets == 130000
    assert current.profit == 30000
    assert current.asset_cost_ratio == pytest.approx(1.3)
    assert current.is_real_data


def test_complete_snapshot_gives_real_year(tw_ledger):
    transactions, cash_flows, accounts = tw_ledger
    historical = {2025: YearSnapshot(prices={"TPE:2330": 600}, exchange_rate=31)}

    chart = generate_chart_data(
        transactions, cash_flows, accounts, 130000, 31.5, historical_data=historical, as_of=AS_OF
    )

    past = chart[0]
    assert past.total_assets == 110000
    assert past.profit == 10000
    assert past.is_real_data


def test_partial_snapshot_is_not_used(mixed_ledger):
    transactions, cash_flows, accounts = mixed_ledger
    historical = {2025: YearSnapshot(prices={"TPE:2330": 600}, exchange_rate=31)}

    chart = generate_chart_data(
        transactions, cash_flows, accounts, 160000, 31.5, historical_data=historical, as_of=AS_OF
    )

    past = chart[0]
    assert past.cost == pytest.approx(130000)
    assert past.total_assets == pytest.approx(145000)
    assert not past.is_real_data


def test_snapshot_rates_value_foreign_holdings(mixed_ledger):
    transactions, cash_flows, accounts = mixed_ledger
    snapshot = YearSnapshot(prices={"2330": 600, "AAPL": 200}, exchange_rate=31)

    value = value_at_year_end(2025, snapshot, transactions, cash_flows, accounts, 32)

    # 60000 TW shares + 50000 TW cash + (400 + 700) USD at 31
    assert value == pytest.approx(60000 + 50000 + 1100 * 31)


def test_over_sold_position_is_valued_like_the_live_holding():
    txs = [
        Transaction("t1", date(2024, 1, 2), "us", "VT", Market.US, TransactionType.BUY, 100, 2),
        Transaction("t2", date(2024, 6, 3), "us", "VT", Market.US, TransactionType.SELL, 100, 5),
        Transaction("t3", date(2024, 9, 2), "us", "VT", Market.US, TransactionType.BUY, 100, 1),
    ]
    snapshot = YearSnapshot(prices={"VT": 100}, exchange_rate=30)

    value = value_at_year_end(2024, snapshot, txs, [], [US_ACCOUNT], 32)

    # 1 share left; cash is -200 + 500 - 100 USD
    assert value == pytest.approx(1 * 100 * 30 + 200 * 30)


def test_snapshot_without_rate_uses_current_rate():
    flows = [CashFlow("c1", date(2024, 6, 1), "us", CashFlowType.DEPOSIT, 1000, amount_twd=30000)]

    with_rate = value_at_year_end(2024, YearSnapshot(exchange_rate=30), [], flows, [US_ACCOUNT], 32)
    without_rate = value_at_year_end(2024, YearSnapshot(), [], flows, [US_ACCOUNT], 32)

    assert with_rate == 30000
    assert without_rate == 32000


def test_counterfactual_grows_at_fixed_rate(tw_ledger):
    transactions, cash_flows, accounts = tw_ledger
    chart = generate_chart_data(transactions, cash_flows, accounts, 130000, 31.5, as_of=AS_OF)

    assert chart[0].est_total_assets == pytest.approx(108000)
    assert chart[1].est_total_assets == pytest.approx(116640)


def test_custom_growth_rate(tw_ledger):
    transactions, cash_flows, accounts = tw_ledger
    chart = generate_chart_data(transactions, cash_flows, accounts, 130000, 31.5, as_of=AS_OF, growth_rate=0.05)

    assert chart[-1].est_total_assets == pytest.approx(100000 * 1.05 * 1.05)


def test_net_withdrawals_floor_cost_and_baseline():
    flows = [
        CashFlow("c1", date(2024, 1, 1), "tw", CashFlowType.DEPOSIT, 1000),
        CashFlow("c2", date(2025, 1, 1), "tw", CashFlowType.WITHDRAW, 5000),
    ]
    chart = generate_chart_data([], flows, [TW_ACCOUNT], 0, 31.5, as_of=date(2025, 12, 31))

    assert chart[-1].cost == 0
    assert chart[-1].est_total_assets == 0
    assert chart[-1].asset_cost_ratio == 0


def test_points_stack_cost_and_profit(mixed_ledger):
    transactions, cash_flows, accounts = mixed_ledger
    historical = {2025: YearSnapshot(prices={"2330": 550, "AAPL": 180})}
    chart = generate_chart_data(
        transactions, cash_flows, accounts, 160000, 31.5, historical_data=historical,
        as_of=date(2027, 3, 1),
    )

    assert [p.year for p in chart] == [2025, 2026, 2027]
    assert [p.is_real_data for p in chart] == [True, False, True]
    for point in chart:
        assert point.total_assets == point.cost + point.profit


def test_tw_aliases():
    assert ticker_aliases(Market.TW, "2330") == ("2330", "TPE:2330")
    assert ticker_aliases(Market.TW, "TPE:2412") == ("TPE:2412", "2412")
    assert ticker_aliases(Market.TW, "2330(BAK)") == ("2330(BAK)", "TPE:2330", "2330")


def test_backup_marker_alias():
    assert ticker_aliases(Market.US, "VT(BAK)") == ("VT(BAK)", "VT")
    assert ticker_aliases(Market.US, "VT") == ("VT",)


def test_price_lookup_skips_zero_prices():
    lookup = PriceLookup({"2330": 0, "TPE:2330": 612.0})

    assert lookup.resolve(Market.TW, "2330") == 612.0
    assert lookup.resolve(Market.US, "AAPL") is None
