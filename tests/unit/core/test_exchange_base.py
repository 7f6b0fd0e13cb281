"""Tests for behaviour shared by every exchange adapter."""

import base64
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from irix.adapters.bitfinex import Bitfinex
from irix.adapters.btcmarkets import BTCMarkets
from irix.adapters.btse import BTSE
from irix.adapters.coinbasepro import CoinbasePro
from irix.adapters.cryptocom import CryptoCom
from irix.adapters.gemini import Gemini
from irix.adapters.huobi import Huobi
from irix.adapters.kraken import Kraken
from irix.adapters.lbank import Lbank
from irix.adapters.zb import ZB
from irix.config import API_URL_NON_DEFAULT_MESSAGE, ExchangeConfig
from irix.currency import Pair, PairFormat, Pairs
from irix.enums import URL, Asset, FeeType, WithdrawPermission
from irix.errors import (
    AssetError,
    CredentialsError,
    EndpointError,
    FunctionNotSupportedError,
    PairError,
    RequestError,
)
from irix.exchange import Base, Endpoints, FeeBuilder
from irix.model import ticker
from irix.protocols import BotExchange
from irix.stream import Websocket

REST_URL = "https://api.stub.test"
WS_URL = "wss://ws.stub.test"


class StubExchange(Base):
    """Minimal adapter with one spot market and no venue behind it."""

    def __init__(self, name: str = "Stub") -> None:
        super().__init__()
        self._stub_name = name
        self.ticker_updates = 0
        self.fee_types: list[FeeType] = []

    def set_defaults(self) -> None:
        self.name = self._stub_name
        self.enabled = True
        self.verbose = False
        fmt = PairFormat(uppercase=True, delimiter="-")
        self.set_global_pair_format(fmt, fmt.model_copy(), Asset.SPOT)
        self.features.supports.rest = True
        self.set_default_endpoints({URL.REST_SPOT: REST_URL, URL.WEBSOCKET_SPOT: WS_URL})
        self.requester = self.new_requester()

    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        self.ticker_updates += 1
        price = ticker.Price(last=Decimal("100"), pair=pair, exchange=self.name, asset=asset)
        ticker.process_ticker(price)
        return price

    async def update_orderbook(self, pair, asset):
        raise FunctionNotSupportedError()

    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        return ["BTC-USD", "ETH-USD"]

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        self.fee_types.append(builder.fee_type)
        return Decimal("0.1")


def _stub(name: str = "Stub") -> StubExchange:
    exchange = StubExchange(name)
    exchange.set_defaults()
    return exchange


def _config(**overrides) -> ExchangeConfig:
    payload = {
        "name": "Stub",
        "enabled": True,
        "httpTimeout": 0,
        "currencyPairs": {
            "pairs": {
                "spot": {
                    "asset_enabled": True,
                    "enabled": "BTC-USD",
                    "available": "BTC-USD,ETH-USD",
                }
            },
        },
        "api": {"authenticatedSupport": False},
    }
    payload.update(overrides)
    return ExchangeConfig.model_validate(payload)


class TestWithdrawPermissions:
    """Test rendering withdraw permission flags."""

    def test_no_permissions(self):
        """Test an exchange without API withdrawals says so."""
        exchange = _stub()

        assert exchange.format_withdraw_permissions() == "NONE, WEBSITE ONLY"

    def test_joins_known_flags(self):
        """Test set flags are joined in bit order."""
        exchange = _stub()
        exchange.features.supports.withdraw_permissions = (
            WithdrawPermission.AUTO_WITHDRAW_CRYPTO | WithdrawPermission.WITHDRAW_FIAT_WITH_2FA
        )

        assert (
            exchange.format_withdraw_permissions()
            == "AUTO WITHDRAW CRYPTO & WITHDRAW FIAT WITH 2FA"
        )

    def test_unknown_bit(self):
        """Test bits without a label render their position."""
        exchange = _stub()
        exchange.features.supports.withdraw_permissions = WithdrawPermission(1 << 20)

        assert exchange.format_withdraw_permissions() == "UNKNOWN[1<<20]"

    def test_supports_withdraw_permissions(self):
        """Test every requested bit must be supported."""
        exchange = _stub()
        exchange.features.supports.withdraw_permissions = (
            WithdrawPermission.AUTO_WITHDRAW_CRYPTO | WithdrawPermission.NO_FIAT_WITHDRAWALS
        )

        assert exchange.supports_withdraw_permissions(WithdrawPermission.AUTO_WITHDRAW_CRYPTO)
        assert not exchange.supports_withdraw_permissions(
            WithdrawPermission.AUTO_WITHDRAW_CRYPTO | WithdrawPermission.AUTO_WITHDRAW_FIAT
        )


class TestSetup:
    """Test applying an exchange config."""

    def test_disabled_config_only_disables(self):
        """Test a disabled config leaves the adapter unconfigured."""
        exchange = _stub()

        exchange.setup(_config(enabled=False))

        assert not exchange.is_enabled()
        assert exchange.config is None
        assert not exchange.loaded_by_config

    def test_loads_pairs_from_config(self):
        """Test enabled and available pairs come from the config."""
        exchange = _stub()

        exchange.setup(_config())

        assert exchange.is_enabled()
        assert exchange.loaded_by_config
        assert exchange.get_enabled_pairs(Asset.SPOT).strings() == ["BTC-USD"]
        assert exchange.get_available_pairs(Asset.SPOT).strings() == ["BTC-USD", "ETH-USD"]

    def test_endpoint_override(self):
        """Test config URLs replace defaults and placeholders are skipped."""
        exchange = _stub()
        cfg = _config(
            api={
                "authenticatedSupport": False,
                "urlEndpoints": {
                    "RestSpotURL": "https://override.stub.test",
                    "WebsocketSpotURL": API_URL_NON_DEFAULT_MESSAGE,
                },
            }
        )

        exchange.setup(cfg)

        assert exchange.get_endpoint(URL.REST_SPOT) == "https://override.stub.test"
        assert exchange.get_endpoint(URL.WEBSOCKET_SPOT) == WS_URL
        assert cfg.api.url_endpoints == {
            "RestSpotURL": "https://override.stub.test",
            "WebsocketSpotURL": WS_URL,
        }

    def test_invalid_endpoint_key_raises(self):
        """Test an unknown endpoint key in config is rejected."""
        exchange = _stub()
        cfg = _config(
            api={"authenticatedSupport": False, "urlEndpoints": {"BogusURL": "https://x.test"}}
        )

        with pytest.raises(EndpointError):
            exchange.setup(cfg)

    def test_orderbook_verification_bypass(self):
        """Test the config can switch order book verification off."""
        exchange = _stub()

        exchange.setup(_config(orderbook={"verificationBypass": True}))

        assert exchange.can_verify_orderbook is False

    def test_credentials_loaded_when_authenticated(self):
        """Test keys are set only when authenticated support is on."""
        exchange = _stub()
        cfg = _config(
            api={
                "authenticatedSupport": True,
                "credentials": {"key": "realkey", "secret": "realsecret"},
            }
        )

        exchange.setup(cfg)

        assert exchange.api.credentials.key == "realkey"
        assert exchange.api.credentials.secret == "realsecret"


class TestPairs:
    """Test pair bookkeeping."""

    def test_update_available_drops_missing_enabled(self):
        """Test enabled pairs vanish when the venue stops listing them."""
        exchange = _stub()
        exchange.set_pairs(Pairs.from_strings(["BTC-USD", "ETH-USD"]), Asset.SPOT, False)
        exchange.set_pairs(Pairs.from_strings(["BTC-USD", "ETH-USD"]), Asset.SPOT, True)

        exchange.update_pairs(Pairs.from_strings(["btc-usd"]), Asset.SPOT, False)

        assert exchange.get_available_pairs(Asset.SPOT).strings() == ["BTC-USD"]
        assert exchange.get_enabled_pairs(Asset.SPOT).strings() == ["BTC-USD"]

    async def test_update_tradable_pairs(self):
        """Test listing the venue refreshes available pairs."""
        exchange = _stub()

        await exchange.update_tradable_pairs()

        assert exchange.get_available_pairs(Asset.SPOT).strings() == ["BTC-USD", "ETH-USD"]

    def test_set_pairs_empty_raises(self):
        """Test an empty pair list is rejected."""
        exchange = _stub()

        with pytest.raises(PairError):
            exchange.set_pairs(Pairs(), Asset.SPOT, True)

    def test_format_exchange_currencies(self):
        """Test pairs render in request format."""
        exchange = _stub()

        text = exchange.format_exchange_currencies(
            [Pair("btc", "usd"), Pair("eth", "usd")], Asset.SPOT
        )

        assert text == "BTC-USDETH-USD"


class TestFees:
    """Test fee fallbacks."""

    async def test_offline_fee_without_credentials(self):
        """Test trade fees fall back to offline rates without credentials."""
        exchange = _stub()
        exchange.api.credentials_validator.requires_key = True

        await exchange.get_fee_by_type(FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_TRADE_FEE))

        assert exchange.fee_types == [FeeType.OFFLINE_TRADE_FEE]

    async def test_trade_fee_with_credentials(self):
        """Test valid credentials keep the live trade fee."""
        exchange = _stub()
        exchange.skip_auth_check = True

        await exchange.get_fee_by_type(FeeBuilder(fee_type=FeeType.CRYPTOCURRENCY_TRADE_FEE))

        assert exchange.fee_types == [FeeType.CRYPTOCURRENCY_TRADE_FEE]


class TestCachedFetches:
    """Test cache-first market data."""

    async def test_fetch_ticker_updates_on_miss(self):
        """Test a cache miss fetches from the venue then serves the cache."""
        exchange = _stub("StubTickerCache")
        pair = Pair("BTC", "USD")

        first = await exchange.fetch_ticker(pair, Asset.SPOT)
        second = await exchange.fetch_ticker(pair, Asset.SPOT)

        assert first.last == Decimal("100")
        assert second.last == Decimal("100")
        assert exchange.ticker_updates == 1

    async def test_validate_credentials_ignores_transient_errors(self):
        """Test a network blip does not fail credential validation."""
        exchange = _stub()
        exchange.update_account_info = AsyncMock(
            side_effect=RequestError("timeout", transient=True)
        )

        await exchange.validate_credentials(Asset.SPOT)

    async def test_validate_credentials_raises_other_errors(self):
        """Test unsupported account info is not hidden."""
        exchange = _stub()

        with pytest.raises(FunctionNotSupportedError):
            await exchange.validate_credentials(Asset.SPOT)


class TestWebsocketAccess:
    """Test websocket plumbing on the base adapter."""

    def test_get_websocket_without_one_raises(self):
        """Test adapters without streaming report it as unsupported."""
        exchange = _stub()

        with pytest.raises(FunctionNotSupportedError):
            exchange.get_websocket()

    async def test_flush_without_websocket_is_noop(self):
        """Test flushing is skipped when there is no websocket."""
        exchange = _stub()

        await exchange.flush_websocket_channels()

    def test_websocket_enabled(self):
        """Test the enabled flag comes from the websocket."""
        exchange = _stub()
        exchange.websocket = Websocket("Stub", enabled=True)

        assert exchange.is_websocket_enabled()
        assert exchange.get_websocket() is exchange.websocket

    def test_disable_asset_websocket_support(self):
        """Test an asset can be excluded from streaming."""
        exchange = _stub()

        exchange.disable_asset_websocket_support(Asset.SPOT)

        assert not exchange.is_asset_websocket_supported(Asset.SPOT)

    def test_disable_unsupported_asset_raises(self):
        """Test only supported assets can be excluded."""
        exchange = _stub()

        with pytest.raises(AssetError):
            exchange.disable_asset_websocket_support(Asset.FUTURES)


class TestEndpoints:
    """Test running URL storage."""

    def test_invalid_uri_keeps_previous(self):
        """Test an unparsable URL is ignored."""
        endpoints = Endpoints("Stub")
        endpoints.set_running(URL.REST_SPOT, REST_URL)

        endpoints.set_running(URL.REST_SPOT, "not a url")

        assert endpoints.get_url(URL.REST_SPOT) == REST_URL

    def test_unknown_key_raises(self):
        """Test only known endpoint keys are accepted."""
        endpoints = Endpoints("Stub")

        with pytest.raises(EndpointError, match="keyVal invalid"):
            endpoints.set_running("BogusURL", REST_URL)

    def test_missing_url_raises(self):
        """Test looking up an unset key fails."""
        endpoints = Endpoints("Stub")

        with pytest.raises(EndpointError, match="no endpoint path"):
            endpoints.get_url(URL.EDGE_CASE_1)

    def test_string_keys(self):
        """Test config names resolve to endpoint keys."""
        endpoints = Endpoints("Stub")

        endpoints.set_running("RestSpotURL", REST_URL)

        assert endpoints.get_url_map() == {"RestSpotURL": REST_URL}


class TestCredentials:
    """Test credentials set directly rather than from a config file."""

    @pytest.mark.parametrize("exchange_cls", [BTCMarkets, CoinbasePro, Kraken])
    def test_base64_secret_allows_authenticated_requests(self, exchange_cls):
        """Test a base64 secret validates and signs with the decoded bytes."""
        raw = bytes(range(32))
        exchange = exchange_cls()
        exchange.set_defaults()

        exchange.set_api_keys("realkey", base64.b64encode(raw).decode(), "passphrase")

        assert exchange.validate_api_credentials()
        assert exchange.allow_authenticated_request()
        exchange.check_authenticated_request()
        assert exchange.secret_bytes() == raw

    def test_undecodable_secret_disables_authentication(self):
        """Test a secret that is not base64 switches authenticated support off."""
        exchange = Kraken()
        exchange.set_defaults()
        exchange.api.authenticated_support = True

        exchange.set_api_keys("realkey", "not base64!")

        assert exchange.api.authenticated_support is False
        assert not exchange.validate_api_credentials()
        with pytest.raises(CredentialsError):
            exchange.check_authenticated_request()

    def test_plain_secret_signs_as_text(self):
        """Test venues without base64 secrets sign with the text as given."""
        exchange = _stub()

        exchange.set_api_keys("realkey", "realsecret")

        assert exchange.secret_bytes() == b"realsecret"


ADAPTERS = [
    Bitfinex,
    BTCMarkets,
    BTSE,
    CoinbasePro,
    CryptoCom,
    Gemini,
    Huobi,
    Kraken,
    Lbank,
    ZB,
]


class TestBotExchangeContract:
    """Test every adapter satisfies the exchange protocol."""

    @pytest.mark.parametrize("exchange_cls", ADAPTERS, ids=lambda cls: cls.__name__)
    def test_adapter_is_bot_exchange(self, exchange_cls):
        """Test the adapter passes the runtime protocol check."""
        exchange = exchange_cls()
        exchange.set_defaults()

        assert isinstance(exchange, BotExchange)
