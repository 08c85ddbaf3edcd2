"""Tests for the DuckDB ledger store, run against an in-memory database."""
from datetime import date

import duckdb
import pytest

from tradefolio.core.db import (
    MEMORY,
    TRADE_SOURCE,
    add_account,
    add_cash_flow,
    add_transaction,
    clear_manual_price,
    delete_account,
    delete_all_transactions,
    delete_cash_flow,
    delete_transaction,
    get_db_path,
    get_float_setting,
    get_setting,
    init_db,
    load_accounts,
    load_cash_flows,
    load_historical_data,
    load_manual_keys,
    load_market_data,
    load_rebalance_targets,
    load_transactions,
    save_market_data,
    save_quote,
    save_rebalance_targets,
    save_year_snapshot,
    set_rebalance_target,
    set_setting,
)
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


@pytest.fixture
def conn():
    conn = init_db(MEMORY)
    yield conn
    conn.close()


@pytest.fixture
def accounts(conn):
    accounts = [
        Account("tw", "TW Broker", Currency.TWD),
        Account("us", "US Broker", Currency.USD, is_sub_brokerage=True),
    ]
    for account in accounts:
        add_account(conn, account)
    return accounts


def test_default_settings(conn):
    assert get_setting(conn, "base_currency") == "TWD"
    assert get_setting(conn, "cost_basis") == "WEIGHTED_AVERAGE"
    assert get_float_setting(conn, "exchange_rate") == 31.5
    assert get_float_setting(conn, "growth_rate") == 0.08
    assert get_setting(conn, "missing") is None
    assert get_float_setting(conn, "missing", 1.5) == 1.5


def test_set_setting_overwrites(conn):
    set_setting(conn, "growth_rate", "0.05")
    set_setting(conn, "note", "not a number")

    assert get_float_setting(conn, "growth_rate") == 0.05
    assert get_float_setting(conn, "note", 2.0) == 2.0


def test_schema_is_idempotent(tmp_path):
    path = tmp_path / "ledger.duckdb"
    init_db(str(path)).close()
    conn = init_db(str(path))

    assert get_setting(conn, "base_currency") == "TWD"
    conn.close()


def test_db_path_per_user(tmp_path):
    assert get_db_path(str(tmp_path / "x.duckdb")) == tmp_path / "x.duckdb"
    assert get_db_path(user="alice").name == "alice.duckdb"
    assert get_db_path().name == "portfolio.duckdb"


def test_accounts_round_trip(conn, accounts):
    assert load_accounts(conn) == accounts


def test_transactions_round_trip(conn, accounts):
    txs = [
        Transaction("t2", date(2024, 3, 1), "us", "AAPL", Market.US, TransactionType.SELL, 190, 1, fees=1),
        Transaction("t1", date(2024, 1, 2), "tw", "2330", Market.TW, TransactionType.BUY, 500, 1000,
                    fees=712, amount=500712, note="first lot"),
    ]
    for tx in txs:
        add_transaction(conn, tx)

    loaded = load_transactions(conn)

    assert [t.id for t in loaded] == ["t1", "t2"]
    assert loaded[0] == txs[1]
    assert loaded[1] == txs[0]


def test_transaction_requires_known_account(conn):
    tx = Transaction("t1", date(2024, 1, 2), "nope", "2330", Market.TW, TransactionType.BUY, 500, 1)
    with pytest.raises(duckdb.Error):
        add_transaction(conn, tx)


def test_delete_all_transactions(conn, accounts):
    add_transaction(conn, Transaction("t1", date(2024, 1, 2), "tw", "2330", Market.TW, TransactionType.BUY, 500, 1))

    assert delete_all_transactions(conn) == 1
    assert load_transactions(conn) == []


def test_delete_single_transaction(conn, accounts):
    add_transaction(conn, Transaction("t1", date(2024, 1, 2), "tw", "2330", Market.TW, TransactionType.BUY, 500, 1))
    add_transaction(conn, Transaction("t2", date(2024, 1, 3), "tw", "2330", Market.TW, TransactionType.BUY, 510, 1))

    assert delete_transaction(conn, "t1") is True
    assert delete_transaction(conn, "t1") is False
    assert [t.id for t in load_transactions(conn)] == ["t2"]


def test_delete_single_cash_flow(conn, accounts):
    add_cash_flow(conn, CashFlow("c1", date(2024, 1, 1), "tw", CashFlowType.DEPOSIT, 100))
    add_cash_flow(conn, CashFlow("c2", date(2024, 1, 2), "tw", CashFlowType.DEPOSIT, 200))

    assert delete_cash_flow(conn, "c2") is True
    assert delete_cash_flow(conn, "missing") is False
    assert [f.id for f in load_cash_flows(conn)] == ["c1"]


def test_delete_account_refuses_while_referenced(conn, accounts):
    add_transaction(conn, Transaction("t1", date(2024, 1, 2), "tw", "2330", Market.TW, TransactionType.BUY, 500, 1))
    add_cash_flow(conn, CashFlow("c1", date(2024, 1, 1), "tw", CashFlowType.TRANSFER, 3000,
                                 exchange_rate=30, target_account_id="us"))

    with pytest.raises(ValueError, match="1 transactions"):
        delete_account(conn, "tw")
    # a transfer target counts as a reference too
    with pytest.raises(ValueError, match="1 cash flows"):
        delete_account(conn, "us")
    assert len(load_accounts(conn)) == 2

    delete_transaction(conn, "t1")
    delete_cash_flow(conn, "c1")
    assert delete_account(conn, "us") is True
    assert [a.id for a in load_accounts(conn)] == ["tw"]


def test_delete_account_drops_its_targets(conn, accounts):
    set_rebalance_target(conn, "us", "VT", 40)
    set_rebalance_target(conn, "tw", "2330", 30)

    assert delete_account(conn, "us") is True
    assert delete_account(conn, "us") is False
    assert load_rebalance_targets(conn) == {("tw", "2330"): 30}


def test_cash_flows_round_trip(conn, accounts):
    flows = [
        CashFlow("c1", date(2024, 1, 1), "tw", CashFlowType.DEPOSIT, 100000, category="salary"),
        CashFlow("c2", date(2024, 2, 1), "tw", CashFlowType.TRANSFER, 30000, amount_twd=30000,
                 exchange_rate=30, target_account_id="us", fee=15, note="wire"),
    ]
    for flow in flows:
        add_cash_flow(conn, flow)

    assert load_cash_flows(conn) == flows


def test_market_data_latest_quote_wins(conn):
    save_market_data(conn, MarketData(prices={"TW-2330": 600}, exchange_rate=31.2), source="manual")
    save_market_data(
        conn,
        MarketData(
            prices={"TW-2330": 650, "US-AAPL": 200},
            details={"US-AAPL": PriceQuote(200, 2, 1.01)},
            exchange_rate=32.1,
            jpy_exchange_rate=0.21,
        ),
        source="yfinance",
    )

    market = load_market_data(conn)

    assert market.prices == {"TW-2330": 650, "US-AAPL": 200}
    assert market.details == {"US-AAPL": PriceQuote(200, 2, 1.01)}
    assert market.exchange_rate == 32.1
    assert market.jpy_exchange_rate == 0.21


def test_market_data_defaults(conn):
    market = load_market_data(conn)

    assert market.prices == {}
    assert market.exchange_rate == 31.5
    assert market.jpy_exchange_rate is None


def test_year_snapshots_round_trip(conn):
    save_year_snapshot(conn, 2023, YearSnapshot(prices={"2330": 593, "AAPL": 192.5}, exchange_rate=30.7))
    save_year_snapshot(conn, 2024, YearSnapshot(prices={"2330": 1075}, exchange_rate=32.8, jpy_exchange_rate=0.209))
    save_year_snapshot(conn, 2023, YearSnapshot(prices={"AAPL": 192.53}, exchange_rate=30.71))

    historical = load_historical_data(conn)

    assert historical[2023] == YearSnapshot(prices={"2330": 593, "AAPL": 192.53}, exchange_rate=30.71)
    assert historical[2024] == YearSnapshot(prices={"2330": 1075}, exchange_rate=32.8, jpy_exchange_rate=0.209)


def test_manual_price_is_latest_until_cleared(conn):
    save_market_data(conn, MarketData(prices={"TW-2330": 600}, exchange_rate=31.2), source="yfinance")
    save_quote(conn, Market.TW, "2330", 612)

    assert load_market_data(conn).prices == {"TW-2330": 612}
    assert load_manual_keys(conn) == {"TW-2330"}

    assert clear_manual_price(conn, Market.TW, "2330") == 1
    assert load_market_data(conn).prices == {"TW-2330": 600}
    assert load_manual_keys(conn) == set()


def test_fetched_quote_after_manual_price_unlocks_key(conn):
    save_quote(conn, Market.US, "VT", 100)
    save_quote(conn, Market.US, "AAPL", 190, source=TRADE_SOURCE)
    save_market_data(conn, MarketData(prices={"US-VT": 101}, exchange_rate=31.2), source="yfinance")

    assert load_market_data(conn).prices == {"US-VT": 101, "US-AAPL": 190}
    assert load_manual_keys(conn) == set()


def test_save_market_data_only_writes_selected_keys(conn):
    save_quote(conn, Market.TW, "2330", 612)
    market = MarketData(prices={"TW-2330": 650, "US-AAPL": 200}, exchange_rate=32.1)

    save_market_data(conn, market, source="yfinance", only=["US-AAPL"])

    assert load_market_data(conn).prices == {"TW-2330": 612, "US-AAPL": 200}
    assert load_manual_keys(conn) == {"TW-2330"}


def test_rebalance_targets_round_trip(conn):
    set_rebalance_target(conn, "us", "VT", 40)
    set_rebalance_target(conn, "us", "VT", 45)
    set_rebalance_target(conn, "tw", "2330", 30)

    assert load_rebalance_targets(conn) == {("us", "VT"): 45, ("tw", "2330"): 30}

    save_rebalance_targets(conn, {("tw", "0050"): 55.5})
    assert load_rebalance_targets(conn) == {("tw", "0050"): 55.5}
