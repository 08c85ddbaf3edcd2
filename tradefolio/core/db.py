"""DuckDB initialization, schema management and ledger storage.

The valuation engine never touches this module; callers load plain records
from here, pass them to the engine and save fetched quotes back.
"""
import duckdb
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowType,
    Currency,
    HistoricalData,
    Market,
    MarketData,
    PriceQuote,
    Transaction,
    TransactionType,
    YearSnapshot,
    price_key,
)

MEMORY = ":memory:"

# prices.source values written by the app itself
MANUAL_SOURCE = "manual"
TRADE_SOURCE = "trade"

DEFAULT_SETTINGS = {
    "base_currency": "TWD",
    "cost_basis": "WEIGHTED_AVERAGE",
    "exchange_rate": "31.5",
    "jpy_exchange_rate": "0",
    "growth_rate": "0.08",
}


def _enum_values(enum_cls) -> str:
    return ", ".join(f"'{member.value}'" for member in enum_cls)


def get_db_path(custom_path: str | None = None, user: str | None = None) -> Path:
    """Get the database file path. Each user gets a separate file."""
    if custom_path:
        return Path(custom_path)
    filename = f"{user}.duckdb" if user else "portfolio.duckdb"
    return Path(__file__).parent.parent.parent / "data" / filename


def init_db(db_path: str | None = None, user: str | None = None) -> duckdb.DuckDBPyConnection:
    """Initialize database and create schema if needed."""
    if db_path == MEMORY:
        conn = duckdb.connect(MEMORY)
    else:
        path = get_db_path(db_path, user)
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = duckdb.connect(str(path))

    _create_schema(conn)
    return conn


def _create_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create all tables if they don't exist."""

    conn.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key VARCHAR PRIMARY KEY,
            value VARCHAR NOT NULL
        )
    """)

    for key, value in DEFAULT_SETTINGS.items():
        conn.execute("""
            INSERT INTO settings (key, value)
            VALUES (?, ?)
            ON CONFLICT DO NOTHING
        """, [key, value])

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS accounts (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL,
            currency VARCHAR NOT NULL CHECK (currency IN ({_enum_values(Currency)})),
            is_sub_brokerage BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS transactions (
            id VARCHAR PRIMARY KEY,
            date DATE NOT NULL,
            account_id VARCHAR NOT NULL,
            ticker VARCHAR NOT NULL,
            market VARCHAR NOT NULL CHECK (market IN ({_enum_values(Market)})),
            type VARCHAR NOT NULL CHECK (type IN ({_enum_values(TransactionType)})),
            price DOUBLE NOT NULL,
            quantity DOUBLE NOT NULL,
            fees DOUBLE DEFAULT 0,
            amount DOUBLE,
            note VARCHAR,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (account_id) REFERENCES accounts(id)
        )
    """)

    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS cash_flows (
            id VARCHAR PRIMARY KEY,
            date DATE NOT NULL,
            account_id VARCHAR NOT NULL,
            type VARCHAR NOT NULL CHECK (type IN ({_enum_values(CashFlowType)})),
            amount DOUBLE NOT NULL,
            amount_twd DOUBLE,
            exchange_rate DOUBLE,
            target_account_id VARCHAR,
            fee DOUBLE DEFAULT 0,
            category VARCHAR,
            note VARCHAR,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (account_id) REFERENCES accounts(id)
        )
    """)

    # Quote cache, latest row per (market, ticker) wins
    conn.execute("CREATE SEQUENCE IF NOT EXISTS prices_seq")
    conn.execute("""
        CREATE TABLE IF NOT EXISTS prices (
            id INTEGER PRIMARY KEY DEFAULT nextval('prices_seq'),
            market VARCHAR NOT NULL,
            ticker VARCHAR NOT NULL,
            ts TIMESTAMP NOT NULL,
            price DOUBLE NOT NULL,
            change DOUBLE,
            change_percent DOUBLE,
            source VARCHAR NOT NULL
        )
    """)

    # Target weights per position, in percent of total assets
    conn.execute("""
        CREATE TABLE IF NOT EXISTS rebalance_targets (
            account_id VARCHAR NOT NULL,
            ticker VARCHAR NOT NULL,
            target_percent DOUBLE NOT NULL,
            PRIMARY KEY (account_id, ticker)
        )
    """)

    # Year-end snapshots
    conn.execute("""
        CREATE TABLE IF NOT EXISTS historical_prices (
            year INTEGER NOT NULL,
            ticker VARCHAR NOT NULL,
            price DOUBLE NOT NULL,
            PRIMARY KEY (year, ticker)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS historical_rates (
            year INTEGER PRIMARY KEY,
            exchange_rate DOUBLE,
            jpy_exchange_rate DOUBLE
        )
    """)

    conn.commit()


def get_setting(conn: duckdb.DuckDBPyConnection, key: str) -> str | None:
    """Get a setting value by key."""
    result = conn.execute("SELECT value FROM settings WHERE key = ?", [key]).fetchone()
    return result[0] if result else None


def set_setting(conn: duckdb.DuckDBPyConnection, key: str, value: str) -> None:
    """Set a setting value."""
    conn.execute("""
        INSERT INTO settings (key, value) VALUES (?, ?)
        ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value
    """, [key, value])
    conn.commit()


def get_float_setting(conn: duckdb.DuckDBPyConnection, key: str, default: float = 0.0) -> float:
    value = get_setting(conn, key)
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def add_account(conn: duckdb.DuckDBPyConnection, account: Account) -> None:
    conn.execute("""
        INSERT INTO accounts (id, name, currency, is_sub_brokerage)
        VALUES (?, ?, ?, ?)
    """, [account.id, account.name, Currency(account.currency).value, account.is_sub_brokerage])
    conn.commit()


def load_accounts(conn: duckdb.DuckDBPyConnection) -> List[Account]:
    rows = conn.execute("""
        SELECT id, name, currency, is_sub_brokerage
        FROM accounts
        ORDER BY created_at, id
    """).fetchall()
    return [
        Account(id=r[0], name=r[1], currency=Currency(r[2]), is_sub_brokerage=bool(r[3]))
        for r in rows
    ]


def delete_account(conn: duckdb.DuckDBPyConnection, account_id: str) -> bool:
    """
    Delete an account and its rebalance targets.

    Raises ValueError while transactions or cash flows still reference the
    account, either as owner or as transfer target. Returns False when no
    such account exists.
    """
    tx_count = conn.execute(
        "SELECT COUNT(*) FROM transactions WHERE account_id = ?", [account_id]
    ).fetchone()[0]
    flow_count = conn.execute(
        "SELECT COUNT(*) FROM cash_flows WHERE account_id = ? OR target_account_id = ?",
        [account_id, account_id],
    ).fetchone()[0]
    if tx_count or flow_count:
        raise ValueError(
            f"Account {account_id} is used by {tx_count} transactions and {flow_count} cash flows"
        )

    exists = conn.execute("SELECT COUNT(*) FROM accounts WHERE id = ?", [account_id]).fetchone()[0]
    if not exists:
        return False

    conn.execute("DELETE FROM rebalance_targets WHERE account_id = ?", [account_id])
    conn.execute("DELETE FROM accounts WHERE id = ?", [account_id])
    conn.commit()
    return True


def add_transaction(conn: duckdb.DuckDBPyConnection, tx: Transaction) -> None:
    conn.execute("""
        INSERT INTO transactions
            (id, date, account_id, ticker, market, type, price, quantity, fees, amount, note)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        tx.id, tx.date, tx.account_id, tx.ticker, Market(tx.market).value,
        TransactionType(tx.type).value, tx.price, tx.quantity, tx.fees, tx.amount, tx.note,
    ])
    conn.commit()


def load_transactions(conn: duckdb.DuckDBPyConnection) -> List[Transaction]:
    rows = conn.execute("""
        SELECT id, date, account_id, ticker, market, type, price, quantity, fees, amount, note
        FROM transactions
        ORDER BY date, created_at, id
    """).fetchall()
    return [
        Transaction(
            id=r[0],
            date=r[1],
            account_id=r[2],
            ticker=r[3],
            market=Market(r[4]),
            type=TransactionType(r[5]),
            price=r[6],
            quantity=r[7],
            fees=r[8] or 0.0,
            amount=r[9],
            note=r[10],
        )
        for r in rows
    ]


def delete_all_transactions(conn: duckdb.DuckDBPyConnection) -> int:
    """Delete the whole transaction log. Returns the number of rows removed."""
    count = conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0]
    conn.execute("DELETE FROM transactions")
    conn.commit()
    return count


def delete_transaction(conn: duckdb.DuckDBPyConnection, transaction_id: str) -> bool:
    """Delete one transaction. Returns False when the id is unknown."""
    count = conn.execute("SELECT COUNT(*) FROM transactions WHERE id = ?", [transaction_id]).fetchone()[0]
    if not count:
        return False
    conn.execute("DELETE FROM transactions WHERE id = ?", [transaction_id])
    conn.commit()
    return True


def add_cash_flow(conn: duckdb.DuckDBPyConnection, flow: CashFlow) -> None:
    conn.execute("""
        INSERT INTO cash_flows
            (id, date, account_id, type, amount, amount_twd, exchange_rate,
             target_account_id, fee, category, note)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        flow.id, flow.date, flow.account_id, CashFlowType(flow.type).value, flow.amount,
        flow.amount_twd, flow.exchange_rate, flow.target_account_id, flow.fee,
        flow.category, flow.note,
    ])
    conn.commit()


def load_cash_flows(conn: duckdb.DuckDBPyConnection) -> List[CashFlow]:
    rows = conn.execute("""
        SELECT id, date, account_id, type, amount, amount_twd, exchange_rate,
               target_account_id, fee, category, note
        FROM cash_flows
        ORDER BY date, created_at, id
    """).fetchall()
    return [
        CashFlow(
            id=r[0],
            date=r[1],
            account_id=r[2],
            type=CashFlowType(r[3]),
            amount=r[4],
            amount_twd=r[5],
            exchange_rate=r[6],
            target_account_id=r[7],
            fee=r[8] or 0.0,
            category=r[9],
            note=r[10],
        )
        for r in rows
    ]


def delete_cash_flow(conn: duckdb.DuckDBPyConnection, flow_id: str) -> bool:
    """Delete one cash flow. Returns False when the id is unknown."""
    count = conn.execute("SELECT COUNT(*) FROM cash_flows WHERE id = ?", [flow_id]).fetchone()[0]
    if not count:
        return False
    conn.execute("DELETE FROM cash_flows WHERE id = ?", [flow_id])
    conn.commit()
    return True


def save_market_data(
    conn: duckdb.DuckDBPyConnection,
    market: MarketData,
    source: str,
    only: Optional[Iterable[str]] = None,
) -> None:
    """
    Append current quotes to the cache and store the exchange rates as settings.

    only limits the quotes written to those price keys.
    """
    now = datetime.now()
    wanted = set(only) if only is not None else None

    for key, price in market.prices.items():
        if wanted is not None and key not in wanted:
            continue
        market_code, ticker = key.split("-", 1)
        detail = market.details.get(key)
        conn.execute("""
            INSERT INTO prices (market, ticker, ts, price, change, change_percent, source)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, [
            market_code, ticker, now, price,
            detail.change if detail else None,
            detail.change_percent if detail else None,
            source,
        ])

    conn.commit()
    set_setting(conn, "exchange_rate", str(market.exchange_rate))
    set_setting(conn, "jpy_exchange_rate", str(market.jpy_exchange_rate or 0))


def load_market_data(conn: duckdb.DuckDBPyConnection) -> MarketData:
    """Latest cached quote per ticker plus the stored exchange rates."""
    rows = conn.execute("""
        SELECT market, ticker, price, change, change_percent
        FROM prices
        QUALIFY ROW_NUMBER() OVER (PARTITION BY market, ticker ORDER BY ts DESC, id DESC) = 1
    """).fetchall()

    prices = {}
    details = {}
    for market_code, ticker, price, change, change_percent in rows:
        key = price_key(Market(market_code), ticker)
        prices[key] = price
        if change is not None:
            details[key] = PriceQuote(price=price, change=change, change_percent=change_percent or 0.0)

    jpy_rate = get_float_setting(conn, "jpy_exchange_rate")
    return MarketData(
        prices=prices,
        details=details,
        exchange_rate=get_float_setting(conn, "exchange_rate", float(DEFAULT_SETTINGS["exchange_rate"])),
        jpy_exchange_rate=jpy_rate if jpy_rate > 0 else None,
    )


def save_quote(
    conn: duckdb.DuckDBPyConnection,
    market: Market,
    ticker: str,
    price: float,
    source: str = MANUAL_SOURCE,
) -> None:
    """Append a single price without change data, it becomes the latest for its key."""
    conn.execute("""
        INSERT INTO prices (market, ticker, ts, price, source)
        VALUES (?, ?, ?, ?, ?)
    """, [Market(market).value, ticker, datetime.now(), price, source])
    conn.commit()


def clear_manual_price(conn: duckdb.DuckDBPyConnection, market: Market, ticker: str) -> int:
    """Drop hand-entered prices for a key so the last fetched quote applies again."""
    params = [Market(market).value, ticker, MANUAL_SOURCE]
    count = conn.execute(
        "SELECT COUNT(*) FROM prices WHERE market = ? AND ticker = ? AND source = ?", params
    ).fetchone()[0]
    conn.execute("DELETE FROM prices WHERE market = ? AND ticker = ? AND source = ?", params)
    conn.commit()
    return count


def load_manual_keys(conn: duckdb.DuckDBPyConnection) -> Set[str]:
    """Price keys whose latest cached price was entered by hand."""
    rows = conn.execute("""
        SELECT market, ticker, source
        FROM prices
        QUALIFY ROW_NUMBER() OVER (PARTITION BY market, ticker ORDER BY ts DESC, id DESC) = 1
    """).fetchall()
    return {price_key(Market(m), t) for m, t, source in rows if source == MANUAL_SOURCE}


def save_year_snapshot(conn: duckdb.DuckDBPyConnection, year: int, snapshot: YearSnapshot) -> None:
    for ticker, price in snapshot.prices.items():
        conn.execute("""
            INSERT INTO historical_prices (year, ticker, price) VALUES (?, ?, ?)
            ON CONFLICT (year, ticker) DO UPDATE SET price = EXCLUDED.price
        """, [year, ticker, price])

    conn.execute("""
        INSERT INTO historical_rates (year, exchange_rate, jpy_exchange_rate) VALUES (?, ?, ?)
        ON CONFLICT (year) DO UPDATE SET
            exchange_rate = EXCLUDED.exchange_rate,
            jpy_exchange_rate = EXCLUDED.jpy_exchange_rate
    """, [year, snapshot.exchange_rate, snapshot.jpy_exchange_rate])
    conn.commit()


def load_historical_data(conn: duckdb.DuckDBPyConnection) -> HistoricalData:
    historical: HistoricalData = {}

    for year, exchange_rate, jpy_rate in conn.execute(
        "SELECT year, exchange_rate, jpy_exchange_rate FROM historical_rates"
    ).fetchall():
        historical[year] = YearSnapshot(exchange_rate=exchange_rate, jpy_exchange_rate=jpy_rate)

    for year, ticker, price in conn.execute(
        "SELECT year, ticker, price FROM historical_prices ORDER BY year, ticker"
    ).fetchall():
        historical.setdefault(year, YearSnapshot()).prices[ticker] = price

    return historical


def set_rebalance_target(
    conn: duckdb.DuckDBPyConnection, account_id: str, ticker: str, target_percent: float
) -> None:
    conn.execute("""
        INSERT INTO rebalance_targets (account_id, ticker, target_percent) VALUES (?, ?, ?)
        ON CONFLICT (account_id, ticker) DO UPDATE SET target_percent = EXCLUDED.target_percent
    """, [account_id, ticker, target_percent])
    conn.commit()


def save_rebalance_targets(conn: duckdb.DuckDBPyConnection, targets: Dict[Tuple[str, str], float]) -> None:
    """Replace every stored target."""
    conn.execute("DELETE FROM rebalance_targets")
    for (account_id, ticker), target_percent in targets.items():
        conn.execute(
            "INSERT INTO rebalance_targets (account_id, ticker, target_percent) VALUES (?, ?, ?)",
            [account_id, ticker, target_percent],
        )
    conn.commit()


def load_rebalance_targets(conn: duckdb.DuckDBPyConnection) -> Dict[Tuple[str, str], float]:
    rows = conn.execute("SELECT account_id, ticker, target_percent FROM rebalance_targets").fetchall()
    return {(account_id, ticker): target for account_id, ticker, target in rows}
