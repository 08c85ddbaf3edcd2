"""Gradio UI for TradeFolio."""
import logging
import os
import uuid
from datetime import date

import gradio as gr
import pandas as pd

from tradefolio.adapters import fx_yahoo, stocks_yfinance
from tradefolio.core.cash import get_portfolio_state_at_date
from tradefolio.core.dashboard import Dashboard, build_dashboard
from tradefolio.core.db import (
    TRADE_SOURCE,
    add_account,
    add_cash_flow,
    add_transaction,
    clear_manual_price,
    delete_account,
    delete_all_transactions,
    delete_cash_flow,
    delete_transaction,
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
from tradefolio.core.history import DEFAULT_GROWTH_RATE
from tradefolio.core.models import (
    Account,
    CashFlow,
    CashFlowType,
    Currency,
    Market,
    QuoteBatch,
    Transaction,
    TransactionType,
)
from tradefolio.core.money import EPSILON_QUANTITY, num
from tradefolio.core.prices import reconcile_historical, reconcile_quotes, seed_trade_prices
from tradefolio.core.reports import current_weight_targets

logger = logging.getLogger(__name__)

# Global database connection
conn = None


def get_conn():
    """Get or initialize database connection."""
    global conn
    if conn is None:
        conn = init_db(os.getenv("TRADEFOLIO_DB"), user=os.getenv("TRADEFOLIO_USER"))
    return conn


def _held_keys(as_of: date):
    """(market, ticker) pairs with a positive net quantity on as_of."""
    conn = get_conn()
    state = get_portfolio_state_at_date(as_of, load_transactions(conn), load_cash_flows(conn), load_accounts(conn))
    return sorted(key for key, qty in state.holdings.items() if qty > EPSILON_QUANTITY)


def compute_dashboard(as_of: date | None = None) -> Dashboard:
    """Load the ledger and run a full valuation pass."""
    conn = get_conn()
    return build_dashboard(
        load_transactions(conn),
        load_cash_flows(conn),
        load_accounts(conn),
        load_market_data(conn),
        historical_data=load_historical_data(conn),
        as_of=as_of,
        growth_rate=get_float_setting(conn, "growth_rate", DEFAULT_GROWTH_RATE),
        rebalance_targets=load_rebalance_targets(conn),
    )


def refresh_prices():
    """Refresh quotes and exchange rates from external APIs."""
    conn = get_conn()
    keys = _held_keys(date.today())
    if not keys:
        return "No holdings found to refresh."

    messages = []

    rates = fx_yahoo.get_current_rates()
    if "USD" in rates:
        messages.append(f"✓ USD/TWD {rates['USD']:.4f}")
    else:
        messages.append("⚠ USD/TWD rate unavailable, keeping stored rate")

    quotes = stocks_yfinance.get_current_quotes(keys)
    messages.append(f"✓ Updated {len(quotes)}/{len(keys)} quotes from yfinance")

    batch = QuoteBatch(
        prices=quotes,
        exchange_rate=rates.get("USD", 0.0),
        jpy_exchange_rate=rates.get("JPY"),
    )
    manual = load_manual_keys(conn)
    merged = reconcile_quotes(load_market_data(conn), batch, keys, overwrite=True, locked=manual)
    save_market_data(conn, merged, source="yfinance", only=[k for k in merged.prices if k not in manual])
    if manual:
        messages.append(f"⚠ Kept {len(manual)} manually entered prices")

    logger.info("Price refresh: %d of %d tickers updated", len(quotes), len(keys))
    return "\n".join(messages)


def fetch_year_end(year):
    """Fetch Dec 31 prices and rates for a past year and store them."""
    conn = get_conn()
    year = int(year)
    if year >= date.today().year:
        return f"✗ {year} is not a past year"

    keys = _held_keys(date(year, 12, 31))
    if not keys:
        return f"No holdings at the end of {year}."

    prices = stocks_yfinance.get_year_end_prices(keys, year)
    merged = reconcile_historical(
        load_historical_data(conn),
        year,
        prices,
        exchange_rate=fx_yahoo.get_year_end_rate("USD", year),
        jpy_exchange_rate=fx_yahoo.get_year_end_rate("JPY", year),
    )
    save_year_snapshot(conn, year, merged[year])

    missing = [ticker for _, ticker in keys if ticker not in prices]
    if missing:
        return f"⚠ {year}: {len(prices)} prices stored, missing {', '.join(missing)}"
    return f"✓ {year}: {len(prices)} prices stored"


def summary_markdown(dashboard: Dashboard) -> str:
    s = dashboard.summary
    return f"""
## Portfolio Summary

**Total Assets:** {dashboard.total_assets_twd:,.0f} TWD
**Stock Value:** {s.total_value_twd:,.0f} TWD
**Cash:** {s.cash_balance_twd:,.0f} TWD
**Net Invested:** {s.net_invested_twd:,.0f} TWD
**Total P/L:** {s.total_pl_twd:,.0f} TWD ({s.total_pl_percent:.2f}%)
**Annualized Return (XIRR):** {s.annualized_return:.2f}%
**Cash Dividends:** {s.accumulated_cash_dividends_twd:,.0f} TWD
**USD/TWD:** {s.exchange_rate_usd_to_twd:.2f} (avg. bought {s.avg_exchange_rate:.2f})
"""


def holdings_frame(dashboard: Dashboard) -> pd.DataFrame:
    columns = ["Account", "Market", "Ticker", "Quantity", "Avg Cost", "Price", "Value",
               "Unrealized P/L", "P/L %", "Weight %", "XIRR %", "Day %"]
    rows = [
        {
            "Account": h.account_id,
            "Market": h.market.value,
            "Ticker": h.ticker,
            "Quantity": f"{h.quantity:,.4f}",
            "Avg Cost": f"{h.avg_cost:,.2f}",
            "Price": f"{h.current_price:,.2f}",
            "Value": f"{h.current_value:,.2f}",
            "Unrealized P/L": f"{h.unrealized_pl:,.2f}",
            "P/L %": f"{h.unrealized_pl_percent:.2f}",
            "Weight %": f"{h.weight:.1f}",
            "XIRR %": f"{h.annualized_return:.2f}",
            "Day %": f"{h.daily_change_percent:.2f}" if h.daily_change_percent is not None else "",
        }
        for h in dashboard.holdings
    ]
    return pd.DataFrame(rows, columns=columns)


def chart_frame(dashboard: Dashboard) -> pd.DataFrame:
    columns = ["Year", "Cost", "Profit", "Total Assets", "Est. @ Growth", "Assets/Cost", "Source"]
    rows = [
        {
            "Year": p.year,
            "Cost": round(p.cost),
            "Profit": round(p.profit),
            "Total Assets": round(p.total_assets),
            "Est. @ Growth": round(p.est_total_assets),
            "Assets/Cost": round(p.asset_cost_ratio, 3),
            "Source": "real" if p.is_real_data else "estimated",
        }
        for p in dashboard.chart
    ]
    return pd.DataFrame(rows, columns=columns)


def annual_frame(dashboard: Dashboard) -> pd.DataFrame:
    today = date.today()
    columns = ["Year", "Start Assets", "Net Inflow", "End Assets", "Profit", "ROI %", "Source"]
    rows = [
        {
            "Year": f"{item.year} (to {today:%b})" if item.is_year_to_date else str(item.year),
            "Start Assets": round(item.start_assets),
            "Net Inflow": round(item.net_inflow),
            "End Assets": round(item.end_assets),
            "Profit": round(item.profit),
            "ROI %": round(item.roi, 2),
            "Source": "real" if item.is_real_data else "estimated",
        }
        for item in dashboard.annual_performance
    ]
    return pd.DataFrame(rows, columns=columns)


def accounts_frame(dashboard: Dashboard) -> pd.DataFrame:
    columns = ["Account", "Currency", "Market Value", "Cash", "Total Assets", "Profit", "ROI %"]
    rows = [
        {
            "Account": perf.name,
            "Currency": perf.currency.value,
            "Market Value": round(perf.market_value_twd),
            "Cash": round(perf.cash_balance_twd),
            "Total Assets": round(perf.total_assets_twd),
            "Profit": round(perf.profit_twd),
            "ROI %": round(perf.roi, 2),
        }
        for perf in dashboard.account_performance
    ]
    return pd.DataFrame(rows, columns=columns)


def allocation_frame(dashboard: Dashboard) -> pd.DataFrame:
    columns = ["Asset", "Value (TWD)", "Ratio %"]
    rows = [
        {"Asset": item.name, "Value (TWD)": round(item.value), "Ratio %": round(item.ratio, 2)}
        for item in dashboard.allocation
    ]
    return pd.DataFrame(rows, columns=columns)


def rebalance_frame(dashboard: Dashboard) -> pd.DataFrame:
    plan = dashboard.rebalance
    columns = ["Account", "Ticker", "Price", "Value (TWD)", "Current %", "Target %",
               "Target (TWD)", "Diff (TWD)", "Diff Shares"]
    rows = [
        {
            "Account": r.account_id,
            "Ticker": r.ticker,
            "Price": f"{r.current_price:,.2f}",
            "Value (TWD)": round(r.value_twd),
            "Current %": round(r.current_percent, 1),
            "Target %": round(r.target_percent, 1),
            "Target (TWD)": round(r.target_value_twd),
            "Diff (TWD)": round(r.diff_value_twd),
            "Diff Shares": f"{r.diff_shares:+,.2f}",
        }
        for r in plan.rows
    ]
    if plan.rows or plan.cash_balance_twd:
        rows.append({
            "Account": "",
            "Ticker": "Cash",
            "Price": "",
            "Value (TWD)": round(plan.cash_balance_twd),
            "Current %": round(plan.cash_current_percent, 1),
            "Target %": round(plan.cash_target_percent, 1),
            "Target (TWD)": round(plan.cash_target_twd),
            "Diff (TWD)": round(plan.cash_diff_twd),
            "Diff Shares": "",
        })
    return pd.DataFrame(rows, columns=columns)


def get_overview_data():
    """All dashboard outputs for one refresh of the UI."""
    dashboard = compute_dashboard()
    return (
        summary_markdown(dashboard),
        holdings_frame(dashboard),
        chart_frame(dashboard),
        annual_frame(dashboard),
        accounts_frame(dashboard),
        allocation_frame(dashboard),
        rebalance_frame(dashboard),
    )


def get_transactions(limit=50):
    """Get recent transactions, newest first."""
    conn = get_conn()
    txns = load_transactions(conn)[::-1][:int(limit)]

    columns = ["Id", "Date", "Account", "Market", "Ticker", "Type", "Quantity", "Price", "Fees", "Amount", "Note"]
    rows = [
        {
            "Id": t.id,
            "Date": str(t.date),
            "Account": t.account_id,
            "Market": t.market.value,
            "Ticker": t.ticker,
            "Type": t.type.value,
            "Quantity": f"{t.quantity:,.4f}",
            "Price": f"{t.price:,.4f}",
            "Fees": f"{t.fees:,.2f}",
            "Amount": f"{t.amount:,.2f}" if t.amount is not None else "",
            "Note": t.note or "",
        }
        for t in txns
    ]
    return pd.DataFrame(rows, columns=columns)


def get_cash_flows(limit=50):
    """Get recent cash flows, newest first."""
    conn = get_conn()
    flows = load_cash_flows(conn)[::-1][:int(limit)]

    columns = ["Id", "Date", "Account", "Type", "Amount", "Amount (TWD)", "Rate", "Target", "Fee", "Note"]
    rows = [
        {
            "Id": f.id,
            "Date": str(f.date),
            "Account": f.account_id,
            "Type": f.type.value,
            "Amount": f"{f.amount:,.2f}",
            "Amount (TWD)": f"{f.amount_twd:,.0f}" if f.amount_twd else "",
            "Rate": f"{f.exchange_rate:.4f}" if f.exchange_rate else "",
            "Target": f.target_account_id or "",
            "Fee": f"{f.fee:,.2f}",
            "Note": f.note or "",
        }
        for f in flows
    ]
    return pd.DataFrame(rows, columns=columns)


def _optional(value):
    return float(value) if value not in (None, "") else None


def create_account(account_id, name, currency, is_sub_brokerage=False):
    """Add a new account."""
    conn = get_conn()

    try:
        account_id = (account_id or "").strip() or uuid.uuid4().hex[:8]
        add_account(conn, Account(
            id=account_id,
            name=name.strip(),
            currency=Currency(currency),
            is_sub_brokerage=bool(is_sub_brokerage),
        ))
        return f"✓ Added account: {name} ({account_id})"
    except Exception as e:
        return f"✗ Error: {str(e)}"


def record_transaction(tx_date, account_id, market, ticker, tx_type, quantity, price, fees=0, amount=None, note=""):
    """Add a new transaction."""
    conn = get_conn()

    try:
        tx = Transaction(
            id=uuid.uuid4().hex,
            date=date.fromisoformat(str(tx_date).strip()),
            account_id=account_id,
            ticker=ticker.strip().upper(),
            market=Market(market),
            type=TransactionType(tx_type),
            price=float(price or 0),
            quantity=float(quantity or 0),
            fees=float(fees or 0),
            amount=_optional(amount),
            note=note or None,
        )
        add_transaction(conn, tx)
        for key, price in seed_trade_prices(load_market_data(conn).prices, [tx]).items():
            save_quote(conn, tx.market, tx.ticker, price, source=TRADE_SOURCE)
            logger.info("Seeded %s at trade price %s", key, price)
        return f"✓ Added {tx.type.value} {tx.quantity:g} {tx.ticker}"
    except Exception as e:
        return f"✗ Error: {str(e)}"


def record_cash_flow(flow_date, account_id, flow_type, amount, amount_twd=None, exchange_rate=None,
                     target_account_id=None, fee=0, note=""):
    """Add a new deposit, withdrawal, transfer or interest entry."""
    conn = get_conn()

    try:
        flow = CashFlow(
            id=uuid.uuid4().hex,
            date=date.fromisoformat(str(flow_date).strip()),
            account_id=account_id,
            type=CashFlowType(flow_type),
            amount=float(amount or 0),
            amount_twd=_optional(amount_twd),
            exchange_rate=_optional(exchange_rate),
            target_account_id=target_account_id or None,
            fee=float(fee or 0),
            note=note or None,
        )
        if flow.type == CashFlowType.TRANSFER and not flow.target_account_id:
            return "✗ Error: a transfer needs a target account"
        add_cash_flow(conn, flow)
        return f"✓ Added {flow.type.value} of {flow.amount:,.2f} to {account_id}"
    except Exception as e:
        return f"✗ Error: {str(e)}"


def clear_transactions():
    """Delete every transaction. Accounts and cash flows are kept."""
    count = delete_all_transactions(get_conn())
    logger.info("Deleted %d transactions", count)
    return f"✓ Deleted {count} transactions"


def remove_transaction(transaction_id):
    """Delete one transaction by id."""
    transaction_id = (transaction_id or "").strip()
    if not delete_transaction(get_conn(), transaction_id):
        return f"✗ Error: no transaction with id {transaction_id!r}"
    logger.info("Deleted transaction %s", transaction_id)
    return f"✓ Deleted transaction {transaction_id}"


def remove_cash_flow(flow_id):
    """Delete one cash flow by id."""
    flow_id = (flow_id or "").strip()
    if not delete_cash_flow(get_conn(), flow_id):
        return f"✗ Error: no cash flow with id {flow_id!r}"
    logger.info("Deleted cash flow %s", flow_id)
    return f"✓ Deleted cash flow {flow_id}"


def remove_account(account_id):
    """Delete an account that no ledger entry uses."""
    try:
        if not delete_account(get_conn(), account_id or ""):
            return f"✗ Error: no account with id {account_id!r}"
    except ValueError as e:
        return f"✗ Error: {str(e)}"
    logger.info("Deleted account %s", account_id)
    return f"✓ Deleted account {account_id}"


def set_manual_price(market, ticker, price):
    """Store a hand-entered price that refreshes keep. A price of 0 or less clears it."""
    conn = get_conn()

    try:
        market = Market(market)
        ticker = (ticker or "").strip().upper()
        if not ticker:
            return "✗ Error: ticker is required"
        price = num(price)
        if price <= 0:
            count = clear_manual_price(conn, market, ticker)
            return f"✓ Cleared {count} manual prices for {ticker}"
        save_quote(conn, market, ticker, price)
        return f"✓ {ticker} priced at {price:,.4f} until cleared"
    except Exception as e:
        return f"✗ Error: {str(e)}"


def update_rebalance_target(account_id, ticker, percent):
    """Set the target weight (%) of one position."""
    try:
        percent = float(percent)
    except (TypeError, ValueError):
        return "✗ Error: target must be a number"
    if not account_id or not (ticker or "").strip():
        return "✗ Error: account and ticker are required"
    ticker = ticker.strip().upper()
    set_rebalance_target(get_conn(), account_id, ticker, percent)
    return f"✓ Target for {ticker} in {account_id} set to {percent:.1f}%"


def reset_rebalance_targets():
    """Replace every target with the current weights."""
    conn = get_conn()
    dashboard = compute_dashboard()
    market = load_market_data(conn)
    targets = current_weight_targets(
        dashboard.holdings, dashboard.summary, market.exchange_rate, market.jpy_exchange_rate
    )
    save_rebalance_targets(conn, targets)
    return f"✓ Reset {len(targets)} targets to current weights"


def account_choices():
    return [a.id for a in load_accounts(get_conn())]


def get_settings_info():
    """Get current settings."""
    conn = get_conn()

    return f"""
## Current Settings

**Base Currency:** {get_setting(conn, "base_currency")}
**Cost Basis Method:** {get_setting(conn, "cost_basis")}
**USD/TWD:** {get_setting(conn, "exchange_rate")}
**JPY/TWD:** {get_setting(conn, "jpy_exchange_rate")}
**Benchmark Growth Rate:** {get_float_setting(conn, "growth_rate", DEFAULT_GROWTH_RATE):.2%}
"""


def update_growth_rate(percent):
    """Store the benchmark growth rate used by the net-worth chart."""
    try:
        rate = float(percent) / 100
    except (TypeError, ValueError):
        return "✗ Error: growth rate must be a number"
    set_setting(get_conn(), "growth_rate", str(rate))
    return f"✓ Growth rate set to {rate:.2%}"


def create_ui():
    """Create and configure the Gradio interface."""

    with gr.Blocks(title="TradeFolio") as demo:
        gr.Markdown("# 📈 TradeFolio")
        gr.Markdown("Multi-account, multi-currency investment ledger valued in TWD")

        with gr.Row():
            refresh_btn = gr.Button("🔄 Refresh Prices", variant="primary", size="sm")
            refresh_output = gr.Textbox(label="Refresh Status", lines=3, interactive=False)

        with gr.Tabs():
            with gr.Tab("📊 Overview"):
                summary_md = gr.Markdown()
                holdings_df = gr.DataFrame(label="Holdings")

                gr.Markdown("### Edit Price")
                with gr.Row():
                    price_market = gr.Dropdown(label="Market", choices=[m.value for m in Market], value="TW", scale=1)
                    price_ticker = gr.Textbox(label="Ticker", scale=1)
                    price_value = gr.Number(label="Price (0 clears)", scale=1)
                    price_btn = gr.Button("Set Price", size="sm", scale=1)
                price_output = gr.Textbox(label="Result", interactive=False)

            with gr.Tab("📈 Net Worth"):
                chart_df = gr.DataFrame(label="Year-end Net Worth")
                annual_df = gr.DataFrame(label="Annual Performance")

                gr.Markdown("### Year-end Data")
                with gr.Row():
                    year_input = gr.Number(label="Year", value=date.today().year - 1, precision=0)
                    year_btn = gr.Button("Fetch Year-end Prices", size="sm")
                year_output = gr.Textbox(label="Result", interactive=False)

            with gr.Tab("💳 Accounts"):
                accounts_df = gr.DataFrame(label="Account Performance")

            with gr.Tab("🥧 Allocation"):
                allocation_df = gr.DataFrame(label="Asset Allocation")

            with gr.Tab("⚖️ Rebalance"):
                rebalance_df = gr.DataFrame(label="Rebalance Plan")

                gr.Markdown("### Set Target Weight")
                with gr.Row():
                    target_account = gr.Dropdown(label="Account", choices=[], scale=1)
                    target_ticker = gr.Textbox(label="Ticker", scale=1)
                    target_percent = gr.Number(label="Target %", value=0, scale=1)
                    target_btn = gr.Button("Save Target", size="sm", scale=1)
                with gr.Row():
                    target_reset_btn = gr.Button("Reset Targets to Current Weights", size="sm")
                target_output = gr.Textbox(label="Result", interactive=False)

            with gr.Tab("📝 Transactions"):
                txn_limit = gr.Slider(label="Show last N transactions", minimum=10, maximum=200, value=50, step=10)
                txn_df = gr.DataFrame(label="Recent Transactions")

                gr.Markdown("### Add New Transaction")
                with gr.Row():
                    txn_date = gr.Textbox(label="Date (YYYY-MM-DD)", value=str(date.today()), scale=1)
                    txn_account = gr.Dropdown(label="Account", choices=[], scale=1)
                    txn_market = gr.Dropdown(label="Market", choices=[m.value for m in Market], value="TW", scale=1)
                    txn_ticker = gr.Textbox(label="Ticker", scale=1)
                    txn_type = gr.Dropdown(
                        label="Type", choices=[t.value for t in TransactionType], value="BUY", scale=1
                    )
                with gr.Row():
                    txn_qty = gr.Number(label="Quantity", scale=1)
                    txn_price = gr.Number(label="Price", scale=1)
                    txn_fee = gr.Number(label="Fees", value=0, scale=1)
                    txn_amount = gr.Number(label="Amount override (optional)", value=None, scale=1)

                txn_note = gr.Textbox(label="Note (optional)")
                txn_add_btn = gr.Button("Add Transaction")
                txn_add_output = gr.Textbox(label="Result", interactive=False)

                with gr.Row():
                    txn_delete_id = gr.Textbox(label="Transaction Id", scale=2)
                    txn_delete_btn = gr.Button("Delete Transaction", size="sm", variant="stop", scale=1)
                    txn_clear_btn = gr.Button("Delete All Transactions", size="sm", variant="stop", scale=1)

            with gr.Tab("💵 Cash Flows"):
                flow_df = gr.DataFrame(label="Recent Cash Flows")

                gr.Markdown("### Add Cash Flow")
                with gr.Row():
                    flow_date = gr.Textbox(label="Date (YYYY-MM-DD)", value=str(date.today()), scale=1)
                    flow_account = gr.Dropdown(label="Account", choices=[], scale=1)
                    flow_type = gr.Dropdown(
                        label="Type", choices=[t.value for t in CashFlowType], value="DEPOSIT", scale=1
                    )
                    flow_amount = gr.Number(label="Amount (account currency)", scale=1)
                with gr.Row():
                    flow_amount_twd = gr.Number(label="Amount in TWD (optional)", value=None, scale=1)
                    flow_rate = gr.Number(label="Exchange rate (optional)", value=None, scale=1)
                    flow_target = gr.Dropdown(label="Transfer target", choices=[], scale=1)
                    flow_fee = gr.Number(label="Fee", value=0, scale=1)

                flow_note = gr.Textbox(label="Note (optional)")
                flow_add_btn = gr.Button("Add Cash Flow")
                flow_add_output = gr.Textbox(label="Result", interactive=False)

                with gr.Row():
                    flow_delete_id = gr.Textbox(label="Cash Flow Id", scale=2)
                    flow_delete_btn = gr.Button("Delete Cash Flow", size="sm", variant="stop", scale=1)

                gr.Markdown("### Add New Account")
                with gr.Row():
                    acc_id = gr.Textbox(label="Id (optional)", scale=1)
                    acc_name = gr.Textbox(label="Name", scale=2)
                    acc_currency = gr.Dropdown(
                        label="Currency", choices=[c.value for c in Currency], value="TWD", scale=1
                    )
                    acc_sub = gr.Checkbox(label="Sub-brokerage", scale=1)

                acc_add_btn = gr.Button("Add Account")
                acc_add_output = gr.Textbox(label="Result", interactive=False)

                with gr.Row():
                    acc_delete = gr.Dropdown(label="Unused account", choices=[], scale=2)
                    acc_delete_btn = gr.Button("Delete Account", size="sm", variant="stop", scale=1)

            with gr.Tab("⚙️ Settings"):
                settings_md = gr.Markdown()
                with gr.Row():
                    growth_input = gr.Number(label="Benchmark growth rate (%)", value=DEFAULT_GROWTH_RATE * 100, scale=1)
                    growth_btn = gr.Button("Save", size="sm")
                growth_output = gr.Textbox(label="Result", interactive=False)

        outputs = [summary_md, holdings_df, chart_df, annual_df, accounts_df, allocation_df, rebalance_df]
        account_dropdowns = [txn_account, flow_account, flow_target, target_account, acc_delete]

        def refresh_account_choices():
            choices = account_choices()
            return tuple(gr.update(choices=choices) for _ in account_dropdowns)

        txn_limit.change(fn=get_transactions, inputs=txn_limit, outputs=txn_df)
        txn_add_btn.click(
            fn=record_transaction,
            inputs=[txn_date, txn_account, txn_market, txn_ticker, txn_type,
                    txn_qty, txn_price, txn_fee, txn_amount, txn_note],
            outputs=txn_add_output,
        ).then(fn=get_transactions, inputs=txn_limit, outputs=txn_df).then(
            fn=get_overview_data, outputs=outputs
        )
        txn_clear_btn.click(fn=clear_transactions, outputs=txn_add_output).then(
            fn=get_transactions, inputs=txn_limit, outputs=txn_df
        ).then(fn=get_overview_data, outputs=outputs)
        txn_delete_btn.click(fn=remove_transaction, inputs=txn_delete_id, outputs=txn_add_output).then(
            fn=get_transactions, inputs=txn_limit, outputs=txn_df
        ).then(fn=get_overview_data, outputs=outputs)

        flow_add_btn.click(
            fn=record_cash_flow,
            inputs=[flow_date, flow_account, flow_type, flow_amount, flow_amount_twd,
                    flow_rate, flow_target, flow_fee, flow_note],
            outputs=flow_add_output,
        ).then(fn=get_cash_flows, outputs=flow_df).then(fn=get_overview_data, outputs=outputs)
        flow_delete_btn.click(fn=remove_cash_flow, inputs=flow_delete_id, outputs=flow_add_output).then(
            fn=get_cash_flows, outputs=flow_df
        ).then(fn=get_overview_data, outputs=outputs)

        acc_add_btn.click(
            fn=create_account,
            inputs=[acc_id, acc_name, acc_currency, acc_sub],
            outputs=acc_add_output,
        ).then(fn=refresh_account_choices, outputs=account_dropdowns).then(
            fn=get_overview_data, outputs=outputs
        )
        acc_delete_btn.click(fn=remove_account, inputs=acc_delete, outputs=acc_add_output).then(
            fn=refresh_account_choices, outputs=account_dropdowns
        ).then(fn=get_overview_data, outputs=outputs)

        price_btn.click(
            fn=set_manual_price, inputs=[price_market, price_ticker, price_value], outputs=price_output
        ).then(fn=get_overview_data, outputs=outputs)

        target_btn.click(
            fn=update_rebalance_target, inputs=[target_account, target_ticker, target_percent], outputs=target_output
        ).then(fn=get_overview_data, outputs=outputs)
        target_reset_btn.click(fn=reset_rebalance_targets, outputs=target_output).then(
            fn=get_overview_data, outputs=outputs
        )

        growth_btn.click(fn=update_growth_rate, inputs=growth_input, outputs=growth_output).then(
            fn=get_settings_info, outputs=settings_md
        ).then(fn=get_overview_data, outputs=outputs)

        demo.load(fn=get_transactions, outputs=txn_df)
        demo.load(fn=get_cash_flows, outputs=flow_df)
        demo.load(fn=refresh_account_choices, outputs=account_dropdowns)
        demo.load(fn=get_settings_info, outputs=settings_md)

        refresh_btn.click(fn=refresh_prices, outputs=refresh_output).then(
            fn=get_overview_data, outputs=outputs
        )
        year_btn.click(fn=fetch_year_end, inputs=year_input, outputs=year_output).then(
            fn=get_overview_data, outputs=outputs
        )
        demo.load(fn=get_overview_data, outputs=outputs)

    return demo


def launch(share=False, server_port=7860):
    """Launch the Gradio UI."""
    demo = create_ui()
    demo.launch(share=share, server_port=server_port, server_name="0.0.0.0")
