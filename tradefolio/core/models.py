"""Data models for the ledger and the records derived from it."""
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Market(str, Enum):
    TW = "TW"
    US = "US"
    UK = "UK"
    JP = "JP"


class Currency(str, Enum):
    TWD = "TWD"
    USD = "USD"
    JPY = "JPY"


class TransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"  # reinvested as shares
    CASH_DIVIDEND = "CASH_DIVIDEND"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"


class CashFlowType(str, Enum):
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"
    INTEREST = "INTEREST"


def price_key(market: Market, ticker: str) -> str:
    """Key used for current price and price detail maps, e.g. "TW-2330"."""
    return f"{Market(market).value}-{ticker}"


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    currency: Currency
    is_sub_brokerage: bool = False
    balance: float = 0.0  # derived by the cash ledger


@dataclass(frozen=True)
class Transaction:
    id: str
    date: date
    account_id: str
    ticker: str
    market: Market
    type: TransactionType
    price: float
    quantity: float
    fees: float = 0.0
    amount: Optional[float] = None  # overrides the computed cash effect
    note: Optional[str] = None


@dataclass(frozen=True)
class CashFlow:
    id: str
    date: date
    account_id: str
    type: CashFlowType
    amount: float  # in the account currency
    amount_twd: Optional[float] = None  # fixed TWD value, takes precedence
    exchange_rate: Optional[float] = None  # rate at the time of the flow
    target_account_id: Optional[str] = None  # TRANSFER only
    fee: float = 0.0
    category: Optional[str] = None
    note: Optional[str] = None


@dataclass
class Holding:
    """Computed position for one (account, ticker) pair."""
    ticker: str
    market: Market
    account_id: str
    quantity: float = 0.0
    avg_cost: float = 0.0  # in market currency
    total_cost: float = 0.0
    current_price: float = 0.0
    current_value: float = 0.0
    unrealized_pl: float = 0.0
    unrealized_pl_percent: float = 0.0
    weight: float = 0.0  # % of stock value plus cash, in TWD
    annualized_return: float = 0.0  # XIRR %
    daily_change: Optional[float] = None
    daily_change_percent: Optional[float] = None
    first_buy_date: Optional[date] = None

    @property
    def key(self) -> str:
        return price_key(self.market, self.ticker)


@dataclass(frozen=True)
class CashFlowPoint:
    """Signed dated amount fed to the XIRR solver (negative = outflow)."""
    amount: float
    date: date


@dataclass(frozen=True)
class PriceQuote:
    price: float
    change: float = 0.0
    change_percent: float = 0.0


@dataclass
class QuoteBatch:
    """Result shape of the live quote service."""
    prices: Dict[str, PriceQuote] = field(default_factory=dict)
    exchange_rate: float = 0.0
    jpy_exchange_rate: Optional[float] = None


@dataclass
class MarketData:
    """Live inputs of a valuation pass."""
    prices: Dict[str, float] = field(default_factory=dict)
    details: Dict[str, PriceQuote] = field(default_factory=dict)
    exchange_rate: float = 0.0
    jpy_exchange_rate: Optional[float] = None


@dataclass
class YearSnapshot:
    """Year-end (Dec 31) prices and rates for one past year."""
    prices: Dict[str, float] = field(default_factory=dict)
    exchange_rate: Optional[float] = None
    jpy_exchange_rate: Optional[float] = None


HistoricalData = Dict[int, YearSnapshot]


@dataclass
class PortfolioState:
    """Holdings and cash replayed up to a cutoff date."""
    holdings: Dict[Tuple[Market, str], float] = field(default_factory=dict)
    cash_balances: Dict[str, float] = field(default_factory=dict)


@dataclass
class PortfolioSummary:
    total_cost_twd: float
    total_value_twd: float
    total_pl_twd: float
    total_pl_percent: float
    cash_balance_twd: float
    net_invested_twd: float
    annualized_return: float
    exchange_rate_usd_to_twd: float
    accumulated_cash_dividends_twd: float
    accumulated_stock_dividends_twd: float
    avg_exchange_rate: float


@dataclass
class ChartDataPoint:
    year: int
    cost: float  # cumulative net invested
    profit: float
    total_assets: float
    est_total_assets: float  # fixed-growth counterfactual
    asset_cost_ratio: float
    is_real_data: bool = False


@dataclass
class AnnualPerformanceItem:
    year: int
    start_assets: float
    net_inflow: float
    end_assets: float
    profit: float
    roi: float
    is_real_data: bool = False
    is_year_to_date: bool = False


@dataclass
class AccountPerformance:
    id: str
    name: str
    currency: Currency
    total_assets_twd: float
    market_value_twd: float
    cash_balance_twd: float
    profit_twd: float
    roi: float


@dataclass
class AssetAllocationItem:
    name: str
    value: float  # TWD
    ratio: float  # percent


@dataclass
class RebalanceRow:
    """Gap between one (account, ticker) position and its target weight."""
    account_id: str
    ticker: str
    market: Market
    current_price: float
    value_twd: float
    current_percent: float
    target_percent: float
    target_value_twd: float
    diff_value_twd: float  # positive = buy
    diff_shares: float


@dataclass
class RebalancePlan:
    rows: List[RebalanceRow]
    total_assets_twd: float
    cash_balance_twd: float
    cash_current_percent: float
    cash_target_percent: float  # whatever the stock targets leave, may be negative
    cash_target_twd: float
    cash_diff_twd: float
