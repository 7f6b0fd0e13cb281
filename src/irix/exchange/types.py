"""Feature flags, credentials, fee and funding types shared by exchanges."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from irix.currency import Code, Pair
from irix.enums import BankTransactionType, FeeType, WithdrawPermission
from irix.exchange.endpoints import Endpoints
from irix.model.kline import ExchangeCapabilities

# =============================================================================
# FEATURES
# =============================================================================


class ProtocolFeatures(BaseModel):
    """What one transport (REST or websocket) can do."""

    ticker_batching: bool = False
    auto_pair_updates: bool = False
    account_balance: bool = False
    crypto_deposit: bool = False
    crypto_withdrawal: bool = False
    fiat_withdraw: bool = False
    get_order: bool = False
    get_orders: bool = False
    cancel_orders: bool = False
    cancel_order: bool = False
    submit_order: bool = False
    submit_orders: bool = False
    modify_order: bool = False
    deposit_history: bool = False
    withdrawal_history: bool = False
    trade_history: bool = False
    user_trade_history: bool = False
    trade_fee: bool = False
    fiat_deposit_fee: bool = False
    fiat_withdrawal_fee: bool = False
    crypto_deposit_fee: bool = False
    crypto_withdrawal_fee: bool = False
    ticker_fetching: bool = False
    kline_fetching: bool = False
    trade_fetching: bool = False
    orderbook_fetching: bool = False
    account_info: bool = False
    subscribe: bool = False
    unsubscribe: bool = False
    authenticated_endpoints: bool = False
    message_correlation: bool = False
    message_sequence_numbers: bool = False
    candle_history: bool = False


class FeaturesSupported(BaseModel):
    """Capabilities the venue offers."""

    rest: bool = False
    rest_capabilities: ProtocolFeatures = Field(default_factory=ProtocolFeatures)
    websocket: bool = False
    websocket_capabilities: ProtocolFeatures = Field(default_factory=ProtocolFeatures)
    withdraw_permissions: WithdrawPermission = WithdrawPermission.NONE
    kline: ExchangeCapabilities = Field(default_factory=ExchangeCapabilities)


class FeaturesEnabled(BaseModel):
    """Capabilities switched on for this run."""

    auto_pair_updates: bool = False
    kline: ExchangeCapabilities = Field(default_factory=ExchangeCapabilities)
    save_trade_data: bool = False


class Features(BaseModel):
    """Supported and enabled features."""

    supports: FeaturesSupported = Field(default_factory=FeaturesSupported)
    enabled: FeaturesEnabled = Field(default_factory=FeaturesEnabled)


# =============================================================================
# API SETTINGS
# =============================================================================


class Credentials(BaseModel):
    """Secrets used to sign requests. The secret holds decoded text when base64 decoding applies."""

    key: str = ""
    secret: str = ""
    client_id: str = ""
    pem_key: str = ""


class CredentialsValidator(BaseModel):
    """Which credentials must be present before authenticating."""

    requires_pem: bool = False
    requires_key: bool = False
    requires_secret: bool = False
    requires_client_id: bool = False
    requires_base64_decode_secret: bool = False


class API(BaseModel):
    """Authentication support, credentials and endpoints."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    authenticated_support: bool = False
    authenticated_websocket_support: bool = False
    pem_key_support: bool = False
    endpoints: Endpoints | None = None
    credentials: Credentials = Field(default_factory=Credentials)
    credentials_validator: CredentialsValidator = Field(
        default_factory=CredentialsValidator
    )


# =============================================================================
# FEES AND FUNDING
# =============================================================================


class FeeBuilder(BaseModel):
    """
    Inputs for a fee calculation.

    Attributes:
        fee_type: Which fee to compute
        pair: Pair for trade fees; its base is the currency for crypto
            deposit and withdrawal fees
        is_maker: Maker rather than taker fee
        fiat_currency: Currency for bank fees
        bank_transaction_type: Transfer type for bank fees
        purchase_price: Price multiplied into trade fees
        amount: Amount the fee applies to

    """

    fee_type: FeeType = FeeType.CRYPTOCURRENCY_TRADE_FEE
    pair: Pair = Field(default_factory=Pair)
    is_maker: bool = False
    fiat_currency: Code = Field(default_factory=Code)
    bank_transaction_type: BankTransactionType = BankTransactionType.WIRE_TRANSFER
    purchase_price: Decimal = Decimal(0)
    amount: Decimal = Decimal(0)


class FundHistory(BaseModel):
    """One deposit or withdrawal as reported by the venue."""

    exchange_name: str = ""
    status: str = ""
    transfer_id: str = ""
    description: str = ""
    timestamp: datetime | None = None
    currency: str = ""
    amount: Decimal = Decimal(0)
    fee: Decimal = Decimal(0)
    transfer_type: str = ""
    crypto_to_address: str = ""
    crypto_from_address: str = ""
    crypto_tx_id: str = ""
    bank_to: str = ""
    bank_from: str = ""


class WithdrawalHistory(BaseModel):
    """One withdrawal as reported by the venue."""

    status: str = ""
    transfer_id: str = ""
    description: str = ""
    timestamp: datetime | None = None
    currency: str = ""
    amount: Decimal = Decimal(0)
    fee: Decimal = Decimal(0)
    transfer_type: str = ""
    crypto_to_address: str = ""
    crypto_tx_id: str = ""
    bank_to: str = ""
