"""
Enums for exchange adapters.

This module defines the shared vocabulary used by every adapter: asset
classes, endpoint keys, order sides, types and statuses, fee kinds and
withdrawal permission flags. Venue strings are mapped onto these values
by the `from_exchange` parsers so that the rest of the package never sees
venue spelling.
"""

from __future__ import annotations

import enum

# =============================================================================
# MARKET STRUCTURE ENUMS
# =============================================================================


class Asset(str, enum.Enum):
    """
    Asset classes an exchange can list pairs under.

    A pair is always tracked per asset class; the same pair string may be
    enabled on spot and disabled on futures.
    """

    SPOT = "spot"
    MARGIN = "margin"
    MARGIN_FUNDING = "marginfunding"
    INDEX = "index"
    BINARY = "binary"
    PERPETUAL_CONTRACT = "perpetualcontract"
    PERPETUAL_SWAP = "perpetualswap"
    FUTURES = "futures"
    UPSIDE_DOWN = "upsidedown"
    DOWNSIDE_PROFIT_CONTRACT = "downsideprofitcontract"
    COIN_MARGINED_FUTURES = "coinmarginedfutures"
    USDT_MARGINED_FUTURES = "usdtmarginedfutures"

    @classmethod
    def from_exchange(cls, value: str) -> Asset:
        """
        Parse an asset name case-insensitively.

        Raises:
            ValueError: If the value names no known asset class

        """
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(f"{value} is not a valid asset type") from None


class URL(str, enum.Enum):
    """
    Endpoint keys under which an exchange stores its base URLs.

    The value is the key name used in configuration files.
    """

    REST_SPOT = "RestSpotURL"
    REST_SPOT_SUPPLEMENTARY = "RestSpotSupplementaryURL"
    REST_USDT_MARGINED = "RestUSDTMarginedFuturesURL"
    REST_COIN_MARGINED = "RestCoinMarginedFuturesURL"
    REST_FUTURES = "RestFuturesURL"
    REST_SWAP = "RestSwapURL"
    REST_SANDBOX = "RestSandboxURL"
    WEBSOCKET_SPOT = "WebsocketSpotURL"
    WEBSOCKET_SPOT_SUPPLEMENTARY = "WebsocketSpotSupplementaryURL"
    CHAIN_ANALYSIS = "ChainAnalysisURL"
    EDGE_CASE_1 = "EdgeCase1URL"
    EDGE_CASE_2 = "EdgeCase2URL"
    EDGE_CASE_3 = "EdgeCase3URL"

    @classmethod
    def from_key(cls, key: str) -> URL:
        """Look up an endpoint key by its configuration name."""
        for item in cls:
            if item.value == key:
                return item
        raise ValueError(f"{key} is not a valid endpoint key")


class AuthEndpoint(int, enum.Enum):
    """Channels over which authenticated requests can be sent."""

    REST = 0
    WEBSOCKET = 1


# =============================================================================
# ORDER ENUMS
# =============================================================================


class OrderSide(str, enum.Enum):
    """
    Standardized order side.

    BID and ASK are kept distinct from BUY and SELL because some venues
    report book sides rather than trade directions.
    """

    BUY = "BUY"
    SELL = "SELL"
    BID = "BID"
    ASK = "ASK"
    ANY = "ANY"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_exchange(cls, side: str) -> OrderSide:
        """
        Convert an exchange side string to the standardized enum.

        Args:
            side: Exchange side string (e.g., "buy", "Bid", "ANY")

        Returns:
            Standardized OrderSide value

        Raises:
            ValueError: If the side is not recognised

        """
        match side.upper():
            case "BUY":
                return cls.BUY
            case "SELL":
                return cls.SELL
            case "BID":
                return cls.BID
            case "ASK":
                return cls.ASK
            case "ANY":
                return cls.ANY
            case _:
                raise ValueError(f"{side} not recognised as order side")

    @property
    def is_long(self) -> bool:
        """Whether the side adds to a position."""
        return self in (OrderSide.BUY, OrderSide.BID)

    @property
    def is_short(self) -> bool:
        """Whether the side reduces a position."""
        return self in (OrderSide.SELL, OrderSide.ASK)


class OrderType(str, enum.Enum):
    """Standardized order type."""

    LIMIT = "LIMIT"
    MARKET = "MARKET"
    POST_ONLY = "POST_ONLY"
    IMMEDIATE_OR_CANCEL = "IMMEDIATE_OR_CANCEL"
    STOP = "STOP"
    STOP_LIMIT = "STOP LIMIT"
    STOP_MARKET = "STOP MARKET"
    TAKE_PROFIT = "TAKE PROFIT"
    TAKE_PROFIT_MARKET = "TAKE PROFIT MARKET"
    TRAILING_STOP = "TRAILING_STOP"
    FILL_OR_KILL = "FOK"
    IOS = "IOS"
    TRIGGER = "TRIGGER"
    LIQUIDATION = "LIQUIDATION"
    ANY = "ANY"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_exchange(cls, order_type: str) -> OrderType:
        """
        Convert an exchange order type string to the standardized enum.

        Venue aliases such as "EXCHANGE LIMIT" or "stop loss" are accepted.

        Raises:
            ValueError: If the type is not recognised

        """
        normalized = order_type.upper()
        for item in cls:
            if normalized in _ORDER_TYPE_ALIASES.get(item, ()) or normalized == item.value:
                if item is cls.UNKNOWN:
                    break
                return item
        raise ValueError(f"{order_type} not recognised as order type")


_ORDER_TYPE_ALIASES: dict[OrderType, tuple[str, ...]] = {
    OrderType.LIMIT: ("EXCHANGE LIMIT",),
    OrderType.MARKET: ("EXCHANGE MARKET",),
    OrderType.IMMEDIATE_OR_CANCEL: ("IMMEDIATE OR CANCEL", "IOC", "EXCHANGE IOC"),
    OrderType.STOP: ("STOP LOSS", "STOP_LOSS", "EXCHANGE STOP"),
    OrderType.STOP_LIMIT: ("EXCHANGE STOP LIMIT", "STOP_LIMIT"),
    OrderType.TRAILING_STOP: ("TRAILING STOP", "EXCHANGE TRAILING STOP"),
    OrderType.FILL_OR_KILL: ("EXCHANGE FOK", "FILL_OR_KILL"),
    OrderType.POST_ONLY: ("POST ONLY",),
    OrderType.TAKE_PROFIT: ("TAKE_PROFIT",),
}


class OrderStatus(str, enum.Enum):
    """Standardized order lifecycle status."""

    ANY = "ANY"
    NEW = "NEW"
    ACTIVE = "ACTIVE"
    PARTIALLY_CANCELLED = "PARTIALLY_CANCELLED"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    PENDING_CANCEL = "PENDING_CANCEL"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    MARKET_UNAVAILABLE = "MARKET_UNAVAILABLE"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    HIDDEN = "HIDDEN"
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_exchange(cls, status: str) -> OrderStatus:
        """
        Convert an exchange status string to the standardized enum.

        Raises:
            ValueError: If the status is not recognised

        """
        normalized = status.upper()
        for item, aliases in _ORDER_STATUS_ALIASES.items():
            if normalized in aliases:
                return item
        raise ValueError(f"{status} not recognised as order status")


_ORDER_STATUS_ALIASES: dict[OrderStatus, tuple[str, ...]] = {
    OrderStatus.ANY: ("ANY",),
    OrderStatus.NEW: ("NEW", "PLACED"),
    OrderStatus.ACTIVE: ("ACTIVE",),
    OrderStatus.PARTIALLY_FILLED: (
        "PARTIALLY_FILLED",
        "PARTIALLY MATCHED",
        "PARTIALLY FILLED",
    ),
    OrderStatus.FILLED: ("FILLED", "FULLY MATCHED", "FULLY FILLED"),
    OrderStatus.PARTIALLY_CANCELLED: ("PARTIALLY_CANCELLED", "PARTIALLY CANCELLED"),
    OrderStatus.OPEN: ("OPEN",),
    OrderStatus.CLOSED: ("CLOSED",),
    OrderStatus.CANCELLED: ("CANCELLED", "CANCELED"),
    OrderStatus.PENDING_CANCEL: (
        "PENDING_CANCEL",
        "PENDING CANCEL",
        "PENDING CANCELLATION",
    ),
    OrderStatus.REJECTED: ("REJECTED",),
    OrderStatus.EXPIRED: ("EXPIRED",),
    OrderStatus.HIDDEN: ("HIDDEN",),
    OrderStatus.INSUFFICIENT_BALANCE: ("INSUFFICIENT_BALANCE",),
    OrderStatus.MARKET_UNAVAILABLE: ("MARKET_UNAVAILABLE",),
}


# =============================================================================
# FEES AND FUNDING
# =============================================================================


class FeeType(int, enum.Enum):
    """Kinds of fee an exchange can be asked to calculate."""

    BANK_FEE = 0
    INTERNATIONAL_BANK_DEPOSIT_FEE = 1
    INTERNATIONAL_BANK_WITHDRAWAL_FEE = 2
    CRYPTOCURRENCY_TRADE_FEE = 3
    CRYPTOCURRENCY_DEPOSIT_FEE = 4
    CRYPTOCURRENCY_WITHDRAWAL_FEE = 5
    OFFLINE_TRADE_FEE = 6


class BankTransactionType(int, enum.Enum):
    """Fiat transfer rails used when pricing bank fees."""

    WIRE_TRANSFER = 0
    PERFECT_MONEY = 1
    NETELLER = 2
    ADV_CASH = 3
    PAYEER = 4
    SKRILL = 5
    SIMPLEX = 6
    SEPA = 7
    SWIFT = 8
    RAPID_TRANSFER = 9
    MISTER_TANGO_SEPA = 10
    QIWI = 11
    VISA_MASTERCARD = 12
    WEB_MONEY = 13
    CAPITALIST = 14
    WESTERN_UNION = 15
    MONEY_GRAM = 16
    CONTACT = 17


class WithdrawPermission(enum.IntFlag):
    """
    Withdrawal methods an exchange allows, as combinable bit flags.

    NONE means withdrawals are only possible through the website.
    """

    NONE = 0
    AUTO_WITHDRAW_CRYPTO = 1 << 0
    AUTO_WITHDRAW_CRYPTO_WITH_API_PERMISSION = 1 << 1
    AUTO_WITHDRAW_CRYPTO_WITH_SETUP = 1 << 2
    WITHDRAW_CRYPTO_WITH_2FA = 1 << 3
    WITHDRAW_CRYPTO_WITH_SMS = 1 << 4
    WITHDRAW_CRYPTO_WITH_EMAIL = 1 << 5
    WITHDRAW_CRYPTO_WITH_WEBSITE_APPROVAL = 1 << 6
    WITHDRAW_CRYPTO_WITH_API_PERMISSION = 1 << 7
    AUTO_WITHDRAW_FIAT = 1 << 8
    AUTO_WITHDRAW_FIAT_WITH_API_PERMISSION = 1 << 9
    AUTO_WITHDRAW_FIAT_WITH_SETUP = 1 << 10
    WITHDRAW_FIAT_WITH_2FA = 1 << 11
    WITHDRAW_FIAT_WITH_SMS = 1 << 12
    WITHDRAW_FIAT_WITH_EMAIL = 1 << 13
    WITHDRAW_FIAT_WITH_WEBSITE_APPROVAL = 1 << 14
    WITHDRAW_FIAT_WITH_API_PERMISSION = 1 << 15
    WITHDRAW_CRYPTO_VIA_WEBSITE_ONLY = 1 << 16
    WITHDRAW_FIAT_VIA_WEBSITE_ONLY = 1 << 17
    NO_FIAT_WITHDRAWALS = 1 << 18

    @property
    def text(self) -> str:
        """Human readable label for a single flag."""
        return WITHDRAW_PERMISSION_TEXT.get(self.value, UNKNOWN_WITHDRAWAL_TEXT)


NO_API_WITHDRAWAL_METHODS_TEXT = "NONE, WEBSITE ONLY"
UNKNOWN_WITHDRAWAL_TEXT = "UNKNOWN"

WITHDRAW_PERMISSION_TEXT: dict[int, str] = {
    1 << 0: "AUTO WITHDRAW CRYPTO",
    1 << 1: "AUTO WITHDRAW CRYPTO WITH API PERMISSION",
    1 << 2: "AUTO WITHDRAW CRYPTO WITH SETUP",
    1 << 3: "WITHDRAW CRYPTO WITH 2FA",
    1 << 4: "WITHDRAW CRYPTO WITH SMS",
    1 << 5: "WITHDRAW CRYPTO WITH EMAIL",
    1 << 6: "WITHDRAW CRYPTO WITH WEBSITE APPROVAL",
    1 << 7: "WITHDRAW CRYPTO WITH API PERMISSION",
    1 << 8: "AUTO WITHDRAW FIAT",
    1 << 9: "AUTO WITHDRAW FIAT WITH API PERMISSION",
    1 << 10: "AUTO WITHDRAW FIAT WITH SETUP",
    1 << 11: "WITHDRAW FIAT WITH 2FA",
    1 << 12: "WITHDRAW FIAT WITH SMS",
    1 << 13: "WITHDRAW FIAT WITH EMAIL",
    1 << 14: "WITHDRAW FIAT WITH WEBSITE APPROVAL",
    1 << 15: "WITHDRAW FIAT WITH API PERMISSION",
    1 << 16: "WITHDRAW CRYPTO VIA WEBSITE ONLY",
    1 << 17: "WITHDRAW FIAT VIA WEBSITE ONLY",
    1 << 18: "NO FIAT WITHDRAWAL",
}
