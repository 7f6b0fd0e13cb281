"""
Exchange Protocol Layer.

This module defines the contract every exchange adapter fulfils. Trading
code depends on BotExchange rather than on a concrete adapter, so a
strategy written against one venue runs against any other.

Key design principles:
- Uniform surface: Every venue exposes the same operations
- Explicit gaps: Unsupported operations raise FunctionNotSupportedError
- Async I/O: Anything that talks to a venue is a coroutine
- Shared model: Inputs and outputs use irix.model types only

The exchange layer provides:
1. Lifecycle (defaults, setup, start)
2. Market data (tickers, order books, trades, candles)
3. Account and order management
4. Funding (deposits, withdrawals, fees)
5. Websocket subscription passthroughs
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol, runtime_checkable

from irix.config import ExchangeConfig
from irix.currency import Code, Pair, Pairs
from irix.enums import Asset, AuthEndpoint, OrderType, WithdrawPermission
from irix.exchange.types import FeeBuilder, FundHistory, WithdrawalHistory
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw
from irix.stream import ChannelSubscription, Websocket


@runtime_checkable
class BotExchange(Protocol):
    """
    Protocol for an exchange the trading bot can drive.

    Semantic Role: Venue abstraction
    Relationships:
    - Implemented by: Every adapter under irix.adapters
    - Built on: irix.exchange.Base for shared bookkeeping
    - Produces: irix.model tickers, books, holdings and orders
    """

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def set_defaults(self) -> None:
        """
        Set venue defaults.

        Semantic Role: Adapter bootstrap
        Relationships:
        - Precedes: setup
        - Configures: Name, features, pair formats, endpoints, rate limits

        """
        ...

    def setup(self, cfg: ExchangeConfig) -> None:
        """
        Apply an exchange config.

        Semantic Role: Operator overrides
        Relationships:
        - Disabled config: Disables the exchange and returns
        - Delegates to: Base.setup_defaults

        Args:
            cfg: Exchange config loaded from file or built by get_default_config

        """
        ...

    async def start(self) -> None:
        """Begin background work such as refreshing tradable pairs."""
        ...

    async def get_default_config(self) -> ExchangeConfig:
        """Build a config reflecting the adapter's defaults."""
        ...

    def get_name(self) -> str: ...

    def is_enabled(self) -> bool: ...

    def set_enabled(self, enabled: bool) -> None: ...

    async def validate_credentials(self, asset: Asset) -> None:
        """
        Prove credentials by fetching account info.

        Raises:
            IrixError: Unless the failure was a transient network error

        """
        ...

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def fetch_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """
        Get a ticker, preferring the cache.

        Semantic Role: Cheap price lookup
        Relationships:
        - Cache miss: Falls through to update_ticker

        """
        ...

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Fetch a ticker from the venue and cache it."""
        ...

    async def fetch_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        """Get an order book, preferring the cache."""
        ...

    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        """Fetch an order book from the venue, verify and cache it."""
        ...

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        """List the venue's symbols for an asset."""
        ...

    async def update_tradable_pairs(self, force: bool = False) -> None:
        """Refresh available pairs for every asset."""
        ...

    def get_enabled_pairs(self, asset: Asset) -> Pairs: ...

    def get_available_pairs(self, asset: Asset) -> Pairs: ...

    def get_asset_types(self, enabled: bool = False) -> list[Asset]: ...

    def supports_asset(self, asset: Asset) -> bool: ...

    def get_pair_asset_type(self, pair: Pair) -> Asset: ...

    def get_last_pairs_update_time(self) -> int: ...

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]: ...

    async def get_historic_trades(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime
    ) -> list[trade.Data]: ...

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        """
        Fetch candles in one request.

        Semantic Role: Bounded history
        Relationships:
        - Limited by: The venue's result limit
        - Extended form: get_historic_candles_extended pages through ranges

        """
        ...

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item: ...

    # =========================================================================
    # ACCOUNT AND ORDERS
    # =========================================================================

    async def fetch_account_info(self, asset: Asset) -> account.Holdings: ...

    async def update_account_info(self, asset: Asset) -> account.Holdings: ...

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        """
        Place an order.

        Semantic Role: Trade entry
        Relationships:
        - Validates: order.Submit.validate_order before sending
        - Market orders: May be reported fully matched immediately

        """
        ...

    async def modify_order(self, modify: order.Modify) -> str:
        """Amend an order, returning the (possibly new) order id."""
        ...

    async def cancel_order(self, cancel: order.Cancel) -> None: ...

    async def cancel_batch_orders(
        self, cancels: list[order.Cancel]
    ) -> order.CancelBatchResponse: ...

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse: ...

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail: ...

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]: ...

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]: ...

    def get_order_execution_limits(self, asset: Asset, pair: Pair) -> order.MinMaxLevel: ...

    def check_order_execution_limits(
        self,
        asset: Asset,
        pair: Pair,
        price: Decimal,
        amount: Decimal,
        order_type: OrderType,
    ) -> None: ...

    async def update_order_execution_limits(self, asset: Asset) -> None: ...

    # =========================================================================
    # FUNDING
    # =========================================================================

    async def get_fee_by_type(self, builder: FeeBuilder) -> Decimal:
        """
        Calculate a fee.

        Semantic Role: Cost estimate
        Relationships:
        - Without valid credentials: Trade fees use the offline schedule

        """
        ...

    def get_withdraw_permissions(self) -> WithdrawPermission: ...

    def supports_withdraw_permissions(self, permissions: WithdrawPermission | int) -> bool: ...

    def format_withdraw_permissions(self) -> str: ...

    async def get_funding_history(self) -> list[FundHistory]: ...

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]: ...

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str: ...

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse: ...

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse: ...

    async def withdraw_fiat_funds_to_international_bank(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse: ...

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def get_authenticated_api_support(self, endpoint: AuthEndpoint) -> bool: ...

    def set_http_client_user_agent(self, user_agent: str) -> None: ...

    def get_http_client_user_agent(self) -> str: ...

    def set_client_proxy_address(self, address: str) -> None: ...

    def supports_rest(self) -> bool: ...

    def supports_rest_ticker_batch_updates(self) -> bool: ...

    def supports_auto_pair_updates(self) -> bool: ...

    def enable_rate_limiter(self) -> None: ...

    def disable_rate_limiter(self) -> None: ...

    # =========================================================================
    # WEBSOCKET
    # =========================================================================

    def supports_websocket(self) -> bool: ...

    def is_websocket_enabled(self) -> bool: ...

    def get_websocket(self) -> Websocket:
        """
        Get the websocket.

        Raises:
            FunctionNotSupportedError: If the adapter has none

        """
        ...

    async def flush_websocket_channels(self) -> None: ...

    async def subscribe_to_websocket_channels(
        self, channels: list[ChannelSubscription]
    ) -> None: ...

    async def unsubscribe_to_websocket_channels(
        self, channels: list[ChannelSubscription]
    ) -> None: ...

    def get_subscriptions(self) -> list[ChannelSubscription]: ...

    async def authenticate_websocket(self) -> None: ...

    def is_asset_websocket_supported(self, asset: Asset) -> bool: ...

    def disable_asset_websocket_support(self, asset: Asset) -> None: ...
