"""
Huobi Pro Pydantic Models.

Market data replies wrap their payload in "tick" or "data" next to a
status of "ok" or "error". Account endpoints come in two generations: v1
replies use status/err-msg, v2 replies use an integer code and message.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXCHANGE = "Huobi"

# Order types as accepted by order/orders/place
BUY_LIMIT = "buy-limit"
SELL_LIMIT = "sell-limit"
BUY_MARKET = "buy-market"
SELL_MARKET = "sell-market"
BUY_IOC = "buy-ioc"
SELL_IOC = "sell-ioc"
BUY_LIMIT_MAKER = "buy-limit-maker"
SELL_LIMIT_MAKER = "sell-limit-maker"
BUY_STOP_LIMIT = "buy-stop-limit"
SELL_STOP_LIMIT = "sell-stop-limit"

# Order states
STATE_CREATED = "created"
STATE_SUBMITTED = "submitted"
STATE_PARTIAL_FILLED = "partial-filled"
STATE_PARTIAL_CANCELED = "partial-canceled"
STATE_FILLED = "filled"
STATE_CANCELED = "canceled"
STATE_CANCELLING = "canceling"

SPOT_ACCOUNT = "spot"
MARGIN_ACCOUNT = "margin"

BALANCE_TRADE = "trade"
BALANCE_FROZEN = "frozen"

SYMBOL_ONLINE = "online"

DEPTH_STEP0 = "step0"

KLINE_PERIODS = ("1min", "5min", "15min", "30min", "60min", "4hour", "1day", "1week", "1mon", "1year")


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _from_ms(value: Any) -> Any:
    if isinstance(value, int | float | Decimal):
        return datetime.fromtimestamp(int(value) / 1000, tz=UTC)
    return value


# =============================================================================
# MARKET DATA
# =============================================================================


class KlineItem(_Model):
    """One candle; the id is its opening time in seconds."""

    id: int
    open: Decimal
    close: Decimal
    low: Decimal
    high: Decimal
    amount: Decimal = Decimal("0")
    vol: Decimal = Decimal("0")
    count: int = 0

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.id, tz=UTC)


class Ticker(_Model):
    """One entry of market/tickers."""

    symbol: str
    open: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    vol: Decimal = Decimal("0")
    count: int = 0
    bid: Decimal = Decimal("0")
    bid_size: Decimal = Field(default=Decimal("0"), alias="bidSize")
    ask: Decimal = Decimal("0")
    ask_size: Decimal = Field(default=Decimal("0"), alias="askSize")

    @field_validator("open", "close", "low", "high", "amount", "vol", "bid", "ask", mode="before")
    @classmethod
    def _null_price(cls, value: Any) -> Any:
        return Decimal("0") if value is None else value


class Detail(_Model):
    """24 hour aggregate from market/detail."""

    id: int = 0
    amount: Decimal = Decimal("0")
    open: Decimal = Decimal("0")
    close: Decimal = Decimal("0")
    high: Decimal = Decimal("0")
    low: Decimal = Decimal("0")
    count: int = 0
    vol: Decimal = Decimal("0")


class DetailMerged(Detail):
    """Detail plus best bid and ask as [price, size]."""

    bid: list[Decimal] = Field(default_factory=list)
    ask: list[Decimal] = Field(default_factory=list)
    version: int = 0


class Orderbook(_Model):
    bids: list[list[Decimal]] = Field(default_factory=list)
    asks: list[list[Decimal]] = Field(default_factory=list)
    ts: int = 0
    version: int = 0


class Trade(_Model):
    id: Decimal = Decimal("0")
    trade_id: int = Field(default=0, alias="trade-id")
    price: Decimal
    amount: Decimal
    direction: str = ""
    ts: datetime

    parse_time = field_validator("ts", mode="before")(_from_ms)


class TradeBatch(_Model):
    """A group of trades sharing one matching timestamp."""

    id: int = 0
    ts: int = 0
    data: list[Trade] = Field(default_factory=list)


class Symbol(_Model):
    base_currency: str = Field(alias="base-currency")
    quote_currency: str = Field(alias="quote-currency")
    price_precision: int = Field(default=0, alias="price-precision")
    amount_precision: int = Field(default=0, alias="amount-precision")
    symbol_partition: str = Field(default="", alias="symbol-partition")
    symbol: str
    state: str = SYMBOL_ONLINE
    min_order_amt: Decimal = Field(default=Decimal("0"), alias="min-order-amt")
    max_order_amt: Decimal = Field(default=Decimal("0"), alias="max-order-amt")
    min_order_value: Decimal = Field(default=Decimal("0"), alias="min-order-value")


# =============================================================================
# ACCOUNT
# =============================================================================


class Account(_Model):
    id: int
    type: str = ""
    subtype: str = ""
    state: str = ""


class BalanceDetail(_Model):
    currency: str
    type: str
    balance: Decimal = Decimal("0")


class AccountBalance(_Model):
    id: int = 0
    type: str = ""
    state: str = ""
    balances: list[BalanceDetail] = Field(default_factory=list, alias="list")


class AggregatedBalance(_Model):
    currency: str
    balance: Decimal = Decimal("0")


class DepositAddress(_Model):
    currency: str = ""
    address: str = ""
    address_tag: str = Field(default="", alias="addressTag")
    chain: str = ""


class ChainQuota(_Model):
    chain: str = ""
    max_withdraw_amt: Decimal = Field(default=Decimal("0"), alias="maxWithdrawAmt")
    withdraw_quota_per_day: Decimal = Field(default=Decimal("0"), alias="withdrawQuotaPerDay")
    remain_withdraw_quota_per_day: Decimal = Field(
        default=Decimal("0"), alias="remainWithdrawQuotaPerDay"
    )
    withdraw_quota_per_year: Decimal = Field(default=Decimal("0"), alias="withdrawQuotaPerYear")
    remain_withdraw_quota_per_year: Decimal = Field(
        default=Decimal("0"), alias="remainWithdrawQuotaPerYear"
    )


class WithdrawQuota(_Model):
    currency: str = ""
    chains: list[ChainQuota] = Field(default_factory=list)


class DepositWithdraw(_Model):
    """A row of query/deposit-withdraw."""

    id: int
    type: str = ""
    currency: str = ""
    chain: str = ""
    tx_hash: str = Field(default="", alias="tx-hash")
    amount: Decimal = Decimal("0")
    address: str = ""
    address_tag: str = Field(default="", alias="address-tag")
    fee: Decimal = Decimal("0")
    state: str = ""
    created_at: datetime | None = Field(default=None, alias="created-at")
    updated_at: datetime | None = Field(default=None, alias="updated-at")

    parse_time = field_validator("created_at", "updated_at", mode="before")(_from_ms)


# =============================================================================
# MARGIN
# =============================================================================


class MarginCurrencyRate(_Model):
    currency: str
    interest_rate: Decimal = Field(default=Decimal("0"), alias="interest-rate")
    min_loan_amt: Decimal = Field(default=Decimal("0"), alias="min-loan-amt")
    max_loan_amt: Decimal = Field(default=Decimal("0"), alias="max-loan-amt")
    loanable_amt: Decimal = Field(default=Decimal("0"), alias="loanable-amt")
    actual_rate: Decimal = Field(default=Decimal("0"), alias="actual-rate")


class MarginRates(_Model):
    symbol: str
    currencies: list[MarginCurrencyRate] = Field(default_factory=list)


class MarginOrder(_Model):
    id: int
    user_id: int = Field(default=0, alias="user-id")
    account_id: int = Field(default=0, alias="account-id")
    currency: str = ""
    symbol: str = ""
    loan_amount: Decimal = Field(default=Decimal("0"), alias="loan-amount")
    loan_balance: Decimal = Field(default=Decimal("0"), alias="loan-balance")
    interest_rate: Decimal = Field(default=Decimal("0"), alias="interest-rate")
    interest_amount: Decimal = Field(default=Decimal("0"), alias="interest-amount")
    interest_balance: Decimal = Field(default=Decimal("0"), alias="interest-balance")
    state: str = ""
    created_at: datetime | None = Field(default=None, alias="created-at")
    accrued_at: datetime | None = Field(default=None, alias="accrued-at")

    parse_time = field_validator("created_at", "accrued_at", mode="before")(_from_ms)


class MarginAccountBalance(_Model):
    id: int = 0
    type: str = ""
    state: str = ""
    symbol: str = ""
    fl_price: Decimal = Field(default=Decimal("0"), alias="fl-price")
    fl_type: str = Field(default="", alias="fl-type")
    risk_rate: Decimal = Field(default=Decimal("0"), alias="risk-rate")
    balances: list[BalanceDetail] = Field(default_factory=list, alias="list")


# =============================================================================
# ORDERS
# =============================================================================


class OrderInfo(_Model):
    id: int
    symbol: str = ""
    account_id: int = Field(default=0, alias="account-id")
    client_order_id: str = Field(default="", alias="client-order-id")
    amount: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    type: str = ""
    state: str = ""
    source: str = ""
    filled_amount: Decimal = Field(default=Decimal("0"), alias="field-amount")
    filled_cash_amount: Decimal = Field(default=Decimal("0"), alias="field-cash-amount")
    filled_fees: Decimal = Field(default=Decimal("0"), alias="field-fees")
    created_at: datetime | None = Field(default=None, alias="created-at")
    finished_at: datetime | None = Field(default=None, alias="finished-at")
    canceled_at: datetime | None = Field(default=None, alias="canceled-at")

    @field_validator("created_at", "finished_at", "canceled_at", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> Any:
        # Unset times come back as 0
        if value in (0, None):
            return None
        return _from_ms(value)

    @field_validator("filled_amount", "filled_cash_amount", "filled_fees", mode="before")
    @classmethod
    def _null_amount(cls, value: Any) -> Any:
        return Decimal("0") if value is None else value


class MatchResult(_Model):
    """A fill on one of the account's orders."""

    id: int
    order_id: int = Field(default=0, alias="order-id")
    match_id: int = Field(default=0, alias="match-id")
    trade_id: int = Field(default=0, alias="trade-id")
    symbol: str = ""
    type: str = ""
    source: str = ""
    price: Decimal = Decimal("0")
    filled_amount: Decimal = Field(default=Decimal("0"), alias="filled-amount")
    filled_fees: Decimal = Field(default=Decimal("0"), alias="filled-fees")
    role: str = ""
    created_at: datetime | None = Field(default=None, alias="created-at")

    parse_time = field_validator("created_at", mode="before")(_from_ms)


class FailedCancel(_Model):
    order_id: str = Field(default="", alias="order-id")
    err_code: str = Field(default="", alias="err-code")
    err_msg: str = Field(default="", alias="err-msg")


class CancelOrderBatch(_Model):
    success: list[str] = Field(default_factory=list)
    failed: list[FailedCancel] = Field(default_factory=list)


class CancelOpenOrdersBatch(_Model):
    success_count: int = Field(default=0, alias="success-count")
    failed_count: int = Field(default=0, alias="failed-count")
    next_id: int = Field(default=-1, alias="next-id")
