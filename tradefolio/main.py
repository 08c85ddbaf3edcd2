"""Main entry point for TradeFolio."""
import logging
import os

from tradefolio.core.db import get_setting, init_db
from tradefolio.ui import launch


def configure_logging() -> None:
    level = getattr(logging, (os.getenv("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def main():
    """Initialize and run the application."""
    configure_logging()
    print("Initializing TradeFolio...")

    conn = init_db(os.getenv("TRADEFOLIO_DB"), user=os.getenv("TRADEFOLIO_USER"))

    print(f"✓ Base currency: {get_setting(conn, 'base_currency')}")
    print(f"✓ Cost basis method: {get_setting(conn, 'cost_basis')}")
    print(f"✓ USD/TWD: {get_setting(conn, 'exchange_rate')}")

    for table in ("accounts", "transactions", "cash_flows", "historical_rates"):
        count = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        print(f"  - {table} ({count} rows)")

    conn.close()

    print("\n🚀 Launching Gradio UI...")
    print("Access the dashboard at: http://localhost:7860")
    launch(share=False, server_port=7860)


if __name__ == "__main__":
    main()
