"""
Shared exchange plumbing.

Base carries everything an adapter needs besides the venue specific REST
and websocket calls: pair format negotiation between requests and stored
configuration, running endpoint URLs, credential checks, the rate limited
requester, feature flags and websocket passthroughs. It also provides the
default behaviour of the BotExchange contract: cache-first fetches,
setup from an ExchangeConfig, and FunctionNotSupportedError for operations
an adapter does not override.
"""

from __future__ import annotations

import abc
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any

from irix.config import (
    API_URL_NON_DEFAULT_MESSAGE,
    DEFAULT_API_CLIENT_ID,
    DEFAULT_API_KEY,
    DEFAULT_API_SECRET,
    DEFAULT_HTTP_TIMEOUT,
    WEBSOCKET_URL_NON_DEFAULT_MESSAGE,
    APIConfig,
    CredentialsValidatorConfig,
    ExchangeConfig,
    FeaturesConfig,
    FeaturesEnabledConfig,
    FeaturesSupportedConfig,
    ProtocolFeaturesConfig,
)
from irix.config import config as settings
from irix.crypto import base64_decode
from irix.currency import Code, Pair, PairFormat, Pairs, PairsManager, PairStore
from irix.enums import (
    NO_API_WITHDRAWAL_METHODS_TEXT,
    UNKNOWN_WITHDRAWAL_TEXT,
    URL,
    WITHDRAW_PERMISSION_TEXT,
    Asset,
    AuthEndpoint,
    FeeType,
    OrderType,
    WithdrawPermission,
)
from irix.errors import (
    AssetError,
    ConfigError,
    CredentialsError,
    EndpointError,
    FunctionNotSupportedError,
    IrixError,
    KlineError,
    NotFoundError,
    NotYetImplementedError,
    PairError,
    RequestError,
)
from irix.exchange.endpoints import Endpoints
from irix.exchange.types import (
    API,
    FeeBuilder,
    Features,
    FundHistory,
    WithdrawalHistory,
)
from irix.model import account, kline, order, orderbook, ticker, trade, withdraw
from irix.request import RateLimiter, Requester
from irix.stream import ChannelSubscription, Websocket

logger = logging.getLogger(__name__)

WARNING_AUTHENTICATED_REQUEST_WITHOUT_CREDENTIALS = (
    "exchange {name} authenticated HTTP request called but not supported due to "
    "unset/default API keys"
)


class Base(abc.ABC):
    """
    State and default behaviour shared by every exchange adapter.

    Adapters set their name, features, pair formats, endpoints and
    requester in `set_defaults`, then `setup` applies an ExchangeConfig
    on top.
    """

    def __init__(self) -> None:
        self.name = ""
        self.enabled = False
        self.verbose = False
        self.loaded_by_config = False
        self.skip_auth_check = False
        self.api = API()
        self.base_currencies: list[Code] = []
        self.currency_pairs = PairsManager()
        self.features = Features()
        self.http_timeout = DEFAULT_HTTP_TIMEOUT
        self.http_user_agent = ""
        self.http_debugging = False
        self.websocket_response_check_timeout = 0.0
        self.websocket_response_max_limit = 0.0
        self.websocket_orderbook_buffer_limit = 0
        self.websocket: Websocket | None = None
        self.requester: Requester | None = None
        self.config: ExchangeConfig | None = None
        self.can_verify_orderbook = True
        self.execution_limits = order.ExecutionLimits()
        self._websocket_unsupported_assets: set[Asset] = set()

    # =========================================================================
    # REQUESTER
    # =========================================================================

    def new_requester(self, limiter: RateLimiter | None = None) -> Requester:
        """Build a requester using the process wide HTTP defaults."""
        return Requester(
            self.name,
            limiter,
            timeout=settings.http.timeout,
            user_agent=settings.http.user_agent,
            max_retries=settings.http.max_retries,
            retry_backoff=settings.http.retry_backoff,
        )

    def _ensure_requester(self) -> Requester:
        if self.requester is None:
            self.requester = self.new_requester()
        return self.requester

    async def send_http_request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        body: str | bytes | None = None,
        limit: str | None = None,
        auth: bool = False,
    ) -> Any:
        """Send a request through this exchange's requester."""
        requester = self._ensure_requester()
        requester.verbose = self.verbose
        requester.http_debugging = self.http_debugging
        return await requester.send_payload(
            method, url, params=params, headers=headers, body=body, limit=limit, auth=auth
        )

    def set_http_client_timeout(self, timeout: float) -> None:
        """
        Set the HTTP timeout in seconds.

        Raises:
            ConfigError: If the timeout is not positive

        """
        if timeout <= 0:
            raise ConfigError(f"{self.name} cannot set HTTP timeout, must be greater than 0")
        self._ensure_requester().set_timeout(timeout)
        self.http_timeout = timeout

    def set_http_client_user_agent(self, user_agent: str) -> None:
        """Set the User-Agent header for every request."""
        self._ensure_requester().set_user_agent(user_agent)
        self.http_user_agent = user_agent

    def get_http_client_user_agent(self) -> str:
        """Current User-Agent header."""
        return self.http_user_agent

    def set_client_proxy_address(self, address: str) -> None:
        """
        Route HTTP traffic through a proxy. An empty address is ignored.

        Raises:
            ConfigError: If the address is invalid

        """
        if not address:
            return
        self._ensure_requester().set_proxy(address)

    def enable_rate_limiter(self) -> None:
        """Turn the rate limiter on."""
        self._ensure_requester().enable_rate_limiter()

    def disable_rate_limiter(self) -> None:
        """Turn the rate limiter off."""
        self._ensure_requester().disable_rate_limiter()

    # =========================================================================
    # IDENTITY AND CAPABILITIES
    # =========================================================================

    def get_name(self) -> str:
        return self.name

    def is_enabled(self) -> bool:
        return self.enabled

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def get_base(self) -> Base:
        return self

    def get_authenticated_api_support(self, endpoint: AuthEndpoint) -> bool:
        """Whether authenticated requests are supported over a transport."""
        match endpoint:
            case AuthEndpoint.REST:
                return self.api.authenticated_support
            case AuthEndpoint.WEBSOCKET:
                return self.api.authenticated_websocket_support
        return False

    def supports_rest_ticker_batch_updates(self) -> bool:
        return self.features.supports.rest_capabilities.ticker_batching

    def supports_auto_pair_updates(self) -> bool:
        """Whether the venue lists its own tradable pairs."""
        return (
            self.features.supports.rest_capabilities.auto_pair_updates
            or self.features.supports.websocket_capabilities.auto_pair_updates
        )

    def get_last_pairs_update_time(self) -> int:
        """Unix time of the last pair update."""
        return self.currency_pairs.last_updated

    def get_asset_types(self, enabled: bool = False) -> list[Asset]:
        return self.currency_pairs.get_asset_types(enabled)

    def get_pair_asset_type(self, pair: Pair) -> Asset:
        """
        Find the asset a pair is available under.

        Raises:
            AssetError: If no asset lists the pair

        """
        for asset in self.get_asset_types():
            if self.get_available_pairs(asset).contains(pair, True):
                return asset
        raise AssetError("asset type not associated with currency pair")

    def supports_asset(self, asset: Asset) -> bool:
        return asset in self.currency_pairs.pairs

    def supports_rest(self) -> bool:
        return self.features.supports.rest

    def supports_websocket(self) -> bool:
        return self.features.supports.websocket

    def is_websocket_enabled(self) -> bool:
        """Whether a websocket is configured and switched on."""
        if self.websocket is None:
            return False
        return self.websocket.is_enabled()

    def get_withdraw_permissions(self) -> WithdrawPermission:
        return self.features.supports.withdraw_permissions

    def supports_withdraw_permissions(self, permissions: WithdrawPermission | int) -> bool:
        """Whether every requested permission bit is supported."""
        mine = int(self.get_withdraw_permissions())
        return int(permissions) & mine == int(permissions)

    def format_withdraw_permissions(self) -> str:
        """
        Render withdraw permission flags as text.

        Returns:
            Flag names joined by " & ", or "NONE, WEBSITE ONLY" when none
            are set. Unrecognised bits render as UNKNOWN[1<<i].

        """
        permissions = int(self.get_withdraw_permissions())
        services: list[str] = []
        for i in range(32):
            check = 1 << i
            if not permissions & check:
                continue
            text = WITHDRAW_PERMISSION_TEXT.get(check)
            services.append(text if text else f"{UNKNOWN_WITHDRAWAL_TEXT}[1<<{i}]")
        if services:
            return " & ".join(services)
        return NO_API_WITHDRAWAL_METHODS_TEXT

    def check_transient_error(self, err: Exception | None) -> Exception | None:
        """
        Filter out network errors that should not disable authentication.

        Returns:
            None for a transient network error, otherwise the error itself

        """
        if isinstance(err, RequestError) and err.transient:
            logger.warning(
                f"{self.name} net error captured, will not disable authentication {err}"
            )
            return None
        return err

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    def new_endpoints(self) -> Endpoints:
        return Endpoints(self.name)

    def set_default_endpoints(self, mapping: dict[URL, str]) -> None:
        """
        Install the adapter's default URLs.

        Raises:
            EndpointError: If a key is invalid

        """
        if self.api.endpoints is None:
            self.api.endpoints = self.new_endpoints()
        self.api.endpoints.set_defaults(mapping)

    def get_endpoint(self, key: URL) -> str:
        """
        Look up a running URL.

        Raises:
            EndpointError: If no endpoints are set or the key is missing

        """
        if self.api.endpoints is None:
            raise EndpointError(f"{self.name} endpoints not set")
        return self.api.endpoints.get_url(key)

    def set_api_url(self) -> None:
        """
        Apply endpoint overrides from config, then write the running map back.

        Placeholder and empty values are skipped; insecure schemes are
        logged but still applied.

        Raises:
            ConfigError: If there is no config
            EndpointError: If no endpoints are set or a key is invalid

        """
        if self.config is None:
            raise ConfigError(f"{self.name} config cannot be nil")
        if self.api.endpoints is None:
            raise EndpointError(f"{self.name} endpoints not set")
        for key, value in self.config.api.url_endpoints.items():
            if not value or value in (
                API_URL_NON_DEFAULT_MESSAGE,
                WEBSOCKET_URL_NON_DEFAULT_MESSAGE,
            ):
                continue
            if "https" not in value and "wss" not in value:
                logger.warning(
                    f"{self.name} is using HTTP instead of HTTPS or WS instead of WSS "
                    f"[{value}] for API functionality, an attacker could eavesdrop on "
                    "this connection. Use at your own risk."
                )
            self.api.endpoints.set_running(key, value)
        self.config.api.url_endpoints = self.api.endpoints.get_url_map()

    # =========================================================================
    # PAIR FORMATS
    # =========================================================================

    def get_pair_format(self, asset: Asset, request_format: bool) -> PairFormat:
        """
        Return the request or config pair format for an asset.

        Raises:
            PairError: If the relevant format is not set
            AssetError: If the asset has no store

        """
        if self.currency_pairs.use_global_format:
            if request_format:
                if self.currency_pairs.request_format is None:
                    raise PairError("global request format is nil")
                return self.currency_pairs.request_format
            if self.currency_pairs.config_format is None:
                raise PairError("global config format is nil")
            return self.currency_pairs.config_format

        store = self.currency_pairs.get(asset)
        if request_format:
            if store.request_format is None:
                raise PairError("asset type request format is nil")
            return store.request_format
        if store.config_format is None:
            raise PairError("asset type config format is nil")
        return store.config_format

    def get_enabled_pairs(self, asset: Asset) -> Pairs:
        """Enabled pairs in config format; empty when the asset is disabled."""
        try:
            if not self.currency_pairs.is_asset_enabled(asset):
                return Pairs()
        except AssetError:
            return Pairs()
        fmt = self.get_pair_format(asset, False)
        return self.currency_pairs.get_pairs(asset, True).format(
            fmt.delimiter, fmt.index, fmt.uppercase
        )

    def get_available_pairs(self, asset: Asset) -> Pairs:
        """Available pairs in config format."""
        fmt = self.get_pair_format(asset, False)
        return self.currency_pairs.get_pairs(asset, False).format(
            fmt.delimiter, fmt.index, fmt.uppercase
        )

    def get_request_formatted_pair_and_asset_type(self, symbol: str) -> tuple[Pair, Asset]:
        """
        Resolve a venue symbol to an enabled pair and its asset.

        Raises:
            PairError: If no enabled pair renders to the symbol

        """
        for asset in self.get_asset_types(False):
            fmt = self.get_pair_format(asset, True)
            for pair in self.get_enabled_pairs(asset):
                formatted = pair.format(fmt.delimiter, fmt.uppercase)
                if str(formatted).lower() == symbol.lower():
                    return formatted, asset
        raise PairError(f"pair not found: {symbol}")

    def supports_pair(self, pair: Pair, enabled_only: bool, asset: Asset) -> None:
        """
        Check a pair, or its reciprocal, is supported.

        Raises:
            PairError: If the pair is not in the enabled or available list

        """
        pairs = self.get_enabled_pairs(asset) if enabled_only else self.get_available_pairs(asset)
        if not pairs.contains(pair, False):
            raise PairError("pair not supported")

    def format_exchange_currencies(self, pairs: list[Pair], asset: Asset) -> str:
        """
        Render pairs in request format joined by the format's separator.

        Raises:
            PairError: If the result is empty

        """
        fmt = self.get_pair_format(asset, True)
        text = fmt.separator.join(fmt.format(pair) for pair in pairs)
        if not text:
            raise PairError(f"{self.name} returned empty string")
        return text

    def format_exchange_currency(self, pair: Pair, asset: Asset) -> Pair:
        """Pair reformatted to the request format."""
        fmt = self.get_pair_format(asset, True)
        return pair.format(fmt.delimiter, fmt.uppercase)

    def format_symbol(self, pair: Pair, asset: Asset) -> str:
        """Pair as a request-format symbol string."""
        return self.get_pair_format(asset, True).format(pair)

    def set_global_pair_format(
        self, request: PairFormat | None, config: PairFormat | None, *assets: Asset
    ) -> None:
        """
        Use one request and config format for every listed asset.

        Raises:
            PairError: If a format is missing
            AssetError: If no assets are given or pairs are already set

        """
        if request is None:
            raise PairError(f"{self.name} cannot set pairs manager, request pair format not provided")
        if config is None:
            raise PairError(f"{self.name} cannot set pairs manager, config pair format not provided")
        if not assets:
            raise AssetError(f"{self.name} cannot set pairs manager, no assets provided")
        self.currency_pairs.use_global_format = True
        self.currency_pairs.request_format = request
        self.currency_pairs.config_format = config
        if self.currency_pairs.pairs:
            raise AssetError(f"{self.name} cannot set pairs manager, pairs already set")
        for asset in assets:
            self.currency_pairs.pairs[asset] = PairStore(
                asset_enabled=True,
                request_format=request.model_copy(),
                config_format=config.model_copy(),
            )

    def store_asset_pair_format(self, asset: Asset | None, store: PairStore) -> None:
        """
        Register per-asset formats. The asset is enabled unless stated.

        Raises:
            AssetError: If no asset is given
            PairError: If a format is missing

        """
        if asset is None:
            raise AssetError(f"{self.name} cannot add to pairs manager, no asset provided")
        if store.request_format is None:
            raise PairError(
                f"{self.name} cannot add to pairs manager, request pair format not provided"
            )
        if store.config_format is None:
            raise PairError(
                f"{self.name} cannot add to pairs manager, config pair format not provided"
            )
        if store.asset_enabled is None:
            store = store.model_copy(update={"asset_enabled": True})
        self.currency_pairs.store(asset, store)

    def set_currency_pair_format(self) -> None:
        """Copy the adapter's pair formats into the config."""
        if self.config is None:
            raise ConfigError(f"{self.name} config cannot be nil")
        if self.config.currency_pairs is None:
            self.config.currency_pairs = PairsManager()
        cfg_pairs = self.config.currency_pairs
        cfg_pairs.use_global_format = self.currency_pairs.use_global_format
        if cfg_pairs.use_global_format:
            cfg_pairs.request_format = self.currency_pairs.request_format
            cfg_pairs.config_format = self.currency_pairs.config_format
            return
        cfg_pairs.request_format = None
        cfg_pairs.config_format = None
        for asset in self.get_asset_types():
            if asset in cfg_pairs.pairs:
                continue
            cfg_pairs.store(asset, self.currency_pairs.get(asset))

    def set_config_pairs(self) -> None:
        """
        Load enabled and available pairs from the config.

        Raises:
            ConfigError: If there is no config
            AssetError: If a configured asset is unknown to the adapter and
                per-asset formats are in use

        """
        if self.config is None or self.config.currency_pairs is None:
            raise ConfigError(f"{self.name} config currency pairs not set")
        cfg_pairs = self.config.currency_pairs
        for asset in cfg_pairs.get_asset_types():
            if not self.supports_asset(asset):
                logger.warning(
                    f"{self.name} exchange asset type {asset.value} unsupported, "
                    "please manually remove from configuration"
                )
            cfg_store = cfg_pairs.get(asset)
            asset_enabled = bool(cfg_store.asset_enabled)
            if not cfg_pairs.use_global_format:
                exch_store = self.currency_pairs.get(asset)
                cfg_store.request_format = exch_store.request_format
                cfg_store.config_format = exch_store.config_format
                cfg_pairs.store(asset, cfg_store)
            self.currency_pairs.store_pairs(asset, cfg_store.available, False)
            self.currency_pairs.store_pairs(asset, cfg_store.enabled, True)
            self.currency_pairs.pairs[asset].asset_enabled = asset_enabled

    def set_pairs(self, pairs: Pairs, asset: Asset, enabled: bool) -> None:
        """
        Replace enabled or available pairs in the adapter and config.

        Raises:
            PairError: If pairs is empty

        """
        if not pairs:
            raise PairError(f"{self.name} SetPairs error - pairs is empty")
        fmt = self.get_pair_format(asset, False)
        formatted = Pairs(pair.format(fmt.delimiter, fmt.uppercase) for pair in pairs)
        self.currency_pairs.store_pairs(asset, formatted, enabled)
        if self.config is not None and self.config.currency_pairs is not None:
            self.config.currency_pairs.store_pairs(asset, formatted, enabled)

    def update_pairs(
        self, products: Pairs, asset: Asset, enabled: bool, force: bool = False
    ) -> None:
        """
        Store a fresh pair list from the venue.

        Pairs are upper-cased and empty entries dropped. Nothing is stored
        unless the list changed or force is set. When available pairs shrink,
        enabled pairs that disappeared are dropped too.
        """
        products = Pairs(p for p in products.upper() if str(p))
        update_type = "enabled" if enabled else "available"
        target = self.currency_pairs.get_pairs(asset, enabled)
        new_pairs, removed_pairs = target.find_differences(products)
        if not (force or new_pairs or removed_pairs):
            return

        asset_name = asset.value.upper()
        if force:
            logger.debug(f"{self.name} forced update of {update_type} [{asset_name}] pairs.")
        else:
            if new_pairs:
                logger.debug(
                    f"{self.name} Updating {update_type} pairs [{asset_name}] - "
                    f"Added: {new_pairs.join()}."
                )
            if removed_pairs:
                logger.debug(
                    f"{self.name} Updating {update_type} pairs [{asset_name}] - "
                    f"Removed: {removed_pairs.join()}."
                )
        self._store_pairs_everywhere(asset, products, enabled)
        if enabled:
            return

        enabled_pairs = self.currency_pairs.get_pairs(asset, True)
        _, remove = enabled_pairs.find_differences(products)
        if not remove:
            return
        for pair in remove:
            enabled_pairs = enabled_pairs.remove_pair(pair)
        logger.debug(
            f"{self.name} Checked and updated enabled pairs [{asset_name}] - "
            f"Removed: {remove.join()}."
        )
        self._store_pairs_everywhere(asset, enabled_pairs, True)

    def _store_pairs_everywhere(self, asset: Asset, pairs: Pairs, enabled: bool) -> None:
        if self.config is not None and self.config.currency_pairs is not None:
            self.config.currency_pairs.store_pairs(asset, pairs, enabled)
        self.currency_pairs.store_pairs(asset, pairs, enabled)

    # =========================================================================
    # CREDENTIALS
    # =========================================================================

    def set_api_keys(self, key: str, secret: str, client_id: str = "") -> None:
        """
        Store API credentials.

        The secret is kept as given; base64 secrets are decoded when signing.
        When such a secret does not decode, authenticated support is switched
        off instead.
        """
        self.api.credentials.key = key
        self.api.credentials.client_id = client_id
        if not self.api.credentials_validator.requires_base64_decode_secret:
            self.api.credentials.secret = secret
            return
        try:
            base64_decode(secret)
        except IrixError:
            self.api.authenticated_support = False
            self.api.authenticated_websocket_support = False
            logger.warning(
                f"exchange {self.name} unable to base64 decode secret key.. "
                "Disabling Authenticated API support"
            )
            return
        self.api.credentials.secret = secret

    def secret_bytes(self) -> bytes:
        """
        Secret as bytes for HMAC keys, base64 decoded when required.

        Raises:
            CredentialsError: If a base64 secret does not decode

        """
        if self.api.credentials_validator.requires_base64_decode_secret:
            return base64_decode(self.api.credentials.secret)
        return self.api.credentials.secret.encode()

    def set_pem_key(self, pem_key: str) -> None:
        self.api.credentials.pem_key = pem_key

    def set_api_credential_defaults(self) -> None:
        """Copy credential requirements into the config."""
        if self.config is None:
            raise ConfigError(f"{self.name} config cannot be nil")
        if self.config.api.credentials_validator is None:
            self.config.api.credentials_validator = CredentialsValidatorConfig()
        validator = self.api.credentials_validator
        cfg_validator = self.config.api.credentials_validator
        cfg_validator.requires_key = validator.requires_key
        cfg_validator.requires_secret = validator.requires_secret
        cfg_validator.requires_client_id = validator.requires_client_id
        cfg_validator.requires_pem = validator.requires_pem
        cfg_validator.requires_base64_decode_secret = validator.requires_base64_decode_secret

    def validate_api_credentials(self) -> bool:
        """Whether every required credential is set to a real value."""
        validator = self.api.credentials_validator
        creds = self.api.credentials
        if validator.requires_key and creds.key in ("", DEFAULT_API_KEY):
            logger.warning(f"exchange {self.name} requires API key but default/empty one set")
            return False
        if validator.requires_secret and creds.secret in ("", DEFAULT_API_SECRET):
            logger.warning(f"exchange {self.name} requires API secret but default/empty one set")
            return False
        if validator.requires_pem and (not creds.pem_key or "JUSTADUMMY" in creds.pem_key):
            logger.warning(f"exchange {self.name} requires API PEM key but default/empty one set")
            return False
        if validator.requires_client_id and creds.client_id in ("", DEFAULT_API_CLIENT_ID):
            logger.warning(
                f"exchange {self.name} requires API ClientID but default/empty one set"
            )
            return False
        if validator.requires_base64_decode_secret and not self.loaded_by_config:
            try:
                base64_decode(creds.secret)
            except IrixError:
                logger.warning(
                    f"exchange {self.name} unable to base64 decode secret key.. "
                    "Disabling Authenticated API support"
                )
                return False
        return True

    def allow_authenticated_request(self) -> bool:
        """Whether an authenticated request may be sent now."""
        if self.skip_auth_check:
            return True
        if not self.loaded_by_config:
            return self.validate_api_credentials()
        if not self.api.authenticated_support and not self.api.authenticated_websocket_support:
            return False
        return self.validate_api_credentials()

    def check_authenticated_request(self) -> None:
        """
        Raises:
            CredentialsError: If authenticated requests are not allowed
        """
        if not self.allow_authenticated_request():
            raise CredentialsError(
                WARNING_AUTHENTICATED_REQUEST_WITHOUT_CREDENTIALS.format(name=self.name)
            )

    # =========================================================================
    # SETUP
    # =========================================================================

    def set_feature_defaults(self) -> None:
        """Reconcile feature flags between the adapter and its config."""
        if self.config is None:
            raise ConfigError(f"{self.name} config cannot be nil")
        supports = self.features.supports
        if self.config.features is None:
            auto = supports.rest_capabilities.auto_pair_updates
            self.config.features = FeaturesConfig(
                supports=FeaturesSupportedConfig(
                    rest=supports.rest,
                    rest_capabilities=ProtocolFeaturesConfig(auto_pair_updates=auto),
                    websocket=supports.websocket,
                ),
                enabled=FeaturesEnabledConfig(auto_pair_updates=auto),
            )
            if not auto:
                now = int(time.time())
                if self.config.currency_pairs is not None:
                    self.config.currency_pairs.last_updated = now
                self.currency_pairs.last_updated = now
            return

        cfg_features = self.config.features
        cfg_supports = cfg_features.supports
        if supports.rest_capabilities.auto_pair_updates != cfg_supports.rest_capabilities.auto_pair_updates:
            cfg_supports.rest_capabilities.auto_pair_updates = (
                supports.rest_capabilities.auto_pair_updates
            )
            if not cfg_supports.rest_capabilities.auto_pair_updates and self.config.currency_pairs:
                self.config.currency_pairs.last_updated = int(time.time())
        cfg_supports.rest = supports.rest
        cfg_supports.rest_capabilities.ticker_batching = supports.rest_capabilities.ticker_batching
        cfg_supports.websocket = supports.websocket
        if self.is_save_trade_data_enabled() != cfg_features.enabled.save_trade_data:
            self.set_save_trade_data_status(cfg_features.enabled.save_trade_data)
        self.features.enabled.auto_pair_updates = cfg_features.enabled.auto_pair_updates

    def setup_defaults(self, cfg: ExchangeConfig) -> None:
        """
        Apply an exchange config on top of the adapter defaults.

        Raises:
            ConfigError: On an invalid timeout or proxy
            PairError: If pair formats cannot be negotiated
            EndpointError: If an endpoint override has an invalid key

        """
        self.enabled = True
        self.loaded_by_config = True
        self.config = cfg
        self.verbose = cfg.verbose

        self.api.authenticated_support = cfg.api.authenticated_support
        self.api.authenticated_websocket_support = cfg.api.authenticated_websocket_api_support
        if self.api.authenticated_support or self.api.authenticated_websocket_support:
            creds = cfg.api.credentials
            self.set_api_keys(creds.key, creds.secret, creds.client_id)
            if self.api.pem_key_support and creds.pem_key:
                self.set_pem_key(creds.pem_key)

        if cfg.http_timeout <= 0:
            cfg.http_timeout = DEFAULT_HTTP_TIMEOUT
        self.set_http_client_timeout(cfg.http_timeout)

        if cfg.currency_pairs is None:
            cfg.currency_pairs = PairsManager()

        self.http_debugging = cfg.http_debugging
        self.set_http_client_user_agent(cfg.http_user_agent)
        if cfg.websocket_response_check_timeout > 0:
            self.websocket_response_check_timeout = cfg.websocket_response_check_timeout
        if cfg.websocket_response_max_limit > 0:
            self.websocket_response_max_limit = cfg.websocket_response_max_limit
        if cfg.orderbook.websocket_buffer_limit > 0:
            self.websocket_orderbook_buffer_limit = cfg.orderbook.websocket_buffer_limit

        self.set_currency_pair_format()
        self.set_config_pairs()
        self.set_feature_defaults()

        if self.api.endpoints is None:
            self.api.endpoints = self.new_endpoints()
        self.set_api_url()
        self.set_api_credential_defaults()
        self.set_client_proxy_address(cfg.proxy_address)
        if cfg.base_currencies:
            self.base_currencies = list(cfg.base_currencies)

        if cfg.orderbook.verification_bypass:
            logger.warning(f"{self.name} orderbook verification has been bypassed via config.")
        self.can_verify_orderbook = not cfg.orderbook.verification_bypass

    def setup(self, cfg: ExchangeConfig) -> None:
        """Apply a config; a disabled config just disables the exchange."""
        if not cfg.enabled:
            self.set_enabled(False)
            return
        self.setup_defaults(cfg)

    async def start(self) -> None:
        """Refresh tradable pairs when the venue supports listing them."""
        if self.verbose:
            logger.info(
                f"{self.name} Websocket: {'enabled' if self.is_websocket_enabled() else 'disabled'}."
            )
        if not (self.supports_auto_pair_updates() and self.features.enabled.auto_pair_updates):
            return
        try:
            await self.update_tradable_pairs(False)
        except IrixError as e:
            logger.error(f"{self.name} failed to update tradable pairs. Err: {e}")

    async def get_default_config(self) -> ExchangeConfig:
        """Build a config from the adapter's defaults."""
        self.set_defaults()
        cfg = ExchangeConfig(
            name=self.name,
            http_timeout=DEFAULT_HTTP_TIMEOUT,
            base_currencies=list(self.base_currencies),
            api=APIConfig(),
        )
        self.setup_defaults(cfg)
        if self.features.supports.rest_capabilities.auto_pair_updates:
            await self.update_tradable_pairs(True)
        return cfg

    # =========================================================================
    # KLINES, TRADES AND EXECUTION LIMITS
    # =========================================================================

    def format_exchange_kline_interval(self, interval: kline.Interval) -> str:
        """Interval as a number of seconds."""
        return str(interval.value)

    def kline_interval_enabled(self, interval: kline.Interval) -> bool:
        return self.features.enabled.kline.interval_enabled(interval)

    def validate_kline(self, pair: Pair, asset: Asset, interval: kline.Interval) -> None:
        """
        Check a candle request is serviceable.

        Raises:
            KlineError: Listing every failed check

        """
        errors: list[str] = []
        try:
            asset_enabled = self.currency_pairs.is_asset_enabled(asset)
        except AssetError:
            asset_enabled = False
        if not asset_enabled:
            errors.append("asset not enabled")
        elif not self.currency_pairs.pairs[asset].enabled.contains(pair, True):
            errors.append("pair not enabled")
        if not self.kline_interval_enabled(interval):
            errors.append("interval not supported")
        if errors:
            raise KlineError(f"{asset.value} {pair} {interval.short()}: {','.join(errors)}")

    def is_save_trade_data_enabled(self) -> bool:
        return self.features.enabled.save_trade_data

    def set_save_trade_data_status(self, enabled: bool) -> None:
        """Switch trade saving on or off in the adapter and config."""
        self.features.enabled.save_trade_data = enabled
        if self.config is not None and self.config.features is not None:
            self.config.features.enabled.save_trade_data = enabled
        if self.verbose:
            logger.debug(f"{self.name} Set save trade data to {enabled}")

    def add_trades_to_buffer(self, *trades: trade.Data) -> None:
        """Buffer trades when trade saving is enabled."""
        if not self.is_save_trade_data_enabled():
            return
        trade.buffer.add(self.name, *trades)

    def get_order_execution_limits(self, asset: Asset, pair: Pair) -> order.MinMaxLevel:
        return self.execution_limits.get_limits(asset, pair)

    def check_order_execution_limits(
        self,
        asset: Asset,
        pair: Pair,
        price: Decimal,
        amount: Decimal,
        order_type: OrderType,
    ) -> None:
        """
        Check an order against loaded execution limits.

        Raises:
            OrderValidationError: If a limit is broken

        """
        self.execution_limits.check_limit(asset, pair, price, amount, order_type)

    async def update_order_execution_limits(self, asset: Asset) -> None:
        raise NotYetImplementedError()

    # =========================================================================
    # WEBSOCKET PASSTHROUGHS
    # =========================================================================

    def get_websocket(self) -> Websocket:
        """
        Raises:
            FunctionNotSupportedError: If the adapter has no websocket
        """
        if self.websocket is None:
            raise FunctionNotSupportedError()
        return self.websocket

    async def flush_websocket_channels(self) -> None:
        """Resync subscriptions; a no-op without a websocket."""
        if self.websocket is None:
            return
        await self.websocket.flush_channels()

    async def subscribe_to_websocket_channels(
        self, channels: list[ChannelSubscription]
    ) -> None:
        await self.get_websocket().subscribe_to_channels(channels)

    async def unsubscribe_to_websocket_channels(
        self, channels: list[ChannelSubscription]
    ) -> None:
        await self.get_websocket().unsubscribe_channels(channels)

    def get_subscriptions(self) -> list[ChannelSubscription]:
        return self.get_websocket().get_subscriptions()

    async def authenticate_websocket(self) -> None:
        raise FunctionNotSupportedError()

    def is_asset_websocket_supported(self, asset: Asset) -> bool:
        return asset not in self._websocket_unsupported_assets

    def disable_asset_websocket_support(self, asset: Asset) -> None:
        """
        Mark an asset as not served over the websocket.

        Raises:
            AssetError: If the exchange does not support the asset at all

        """
        if not self.supports_asset(asset):
            raise AssetError(f"{asset.value} asset not supported")
        self._websocket_unsupported_assets.add(asset)

    # =========================================================================
    # CONTRACT DEFAULTS
    # =========================================================================

    @abc.abstractmethod
    def set_defaults(self) -> None:
        """Set name, features, pair formats, endpoints and requester."""

    @abc.abstractmethod
    async def update_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Fetch a ticker from the venue and cache it."""

    @abc.abstractmethod
    async def update_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        """Fetch an order book from the venue and cache it."""

    @abc.abstractmethod
    async def fetch_tradable_pairs(self, asset: Asset) -> list[str]:
        """List the venue's tradable symbols for an asset."""

    async def fetch_ticker(self, pair: Pair, asset: Asset) -> ticker.Price:
        """Cached ticker, fetched from the venue on a miss."""
        try:
            return ticker.get_ticker(self.name, pair, asset)
        except NotFoundError:
            return await self.update_ticker(pair, asset)

    async def fetch_orderbook(self, pair: Pair, asset: Asset) -> orderbook.Book:
        """Cached order book, fetched from the venue on a miss."""
        try:
            return orderbook.get_orderbook(self.name, pair, asset)
        except NotFoundError:
            return await self.update_orderbook(pair, asset)

    async def update_tradable_pairs(self, force: bool = False) -> None:
        """Refresh available pairs for every asset."""
        for asset in self.get_asset_types(False):
            symbols = await self.fetch_tradable_pairs(asset)
            self.update_pairs(Pairs.from_strings(symbols), asset, False, force)

    async def update_account_info(self, asset: Asset) -> account.Holdings:
        raise FunctionNotSupportedError()

    async def fetch_account_info(self, asset: Asset) -> account.Holdings:
        """Cached holdings, fetched from the venue on a miss."""
        try:
            return account.get_holdings(self.name, asset)
        except NotFoundError:
            return await self.update_account_info(asset)

    async def validate_credentials(self, asset: Asset) -> None:
        """
        Prove the credentials work by fetching account info.

        Transient network errors are logged, not raised.
        """
        try:
            await self.update_account_info(asset)
        except IrixError as e:
            if self.check_transient_error(e) is not None:
                raise

    async def get_fee(self, builder: FeeBuilder) -> Decimal:
        raise FunctionNotSupportedError()

    async def get_fee_by_type(self, builder: FeeBuilder) -> Decimal:
        """
        Calculate a fee, falling back to offline trade fees without valid
        credentials.
        """
        if builder.fee_type == FeeType.CRYPTOCURRENCY_TRADE_FEE and not self.allow_authenticated_request():
            builder.fee_type = FeeType.OFFLINE_TRADE_FEE
        return await self.get_fee(builder)

    async def get_recent_trades(self, pair: Pair, asset: Asset) -> list[trade.Data]:
        raise FunctionNotSupportedError()

    async def get_historic_trades(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime
    ) -> list[trade.Data]:
        raise FunctionNotSupportedError()

    async def get_funding_history(self) -> list[FundHistory]:
        raise FunctionNotSupportedError()

    async def get_withdrawals_history(self, code: Code) -> list[WithdrawalHistory]:
        raise FunctionNotSupportedError()

    async def submit_order(self, submit: order.Submit) -> order.SubmitResponse:
        raise FunctionNotSupportedError()

    async def modify_order(self, modify: order.Modify) -> str:
        raise FunctionNotSupportedError()

    async def cancel_order(self, cancel: order.Cancel) -> None:
        raise FunctionNotSupportedError()

    async def cancel_batch_orders(self, cancels: list[order.Cancel]) -> order.CancelBatchResponse:
        raise FunctionNotSupportedError()

    async def cancel_all_orders(self, cancel: order.Cancel) -> order.CancelAllResponse:
        raise FunctionNotSupportedError()

    async def get_order_info(self, order_id: str, pair: Pair, asset: Asset) -> order.Detail:
        raise FunctionNotSupportedError()

    async def get_deposit_address(self, code: Code, account_id: str = "") -> str:
        raise FunctionNotSupportedError()

    async def get_order_history(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        raise FunctionNotSupportedError()

    async def get_active_orders(self, request: order.GetOrdersRequest) -> list[order.Detail]:
        raise FunctionNotSupportedError()

    async def withdraw_cryptocurrency_funds(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        raise FunctionNotSupportedError()

    async def withdraw_fiat_funds(self, request: withdraw.Request) -> withdraw.ExchangeResponse:
        raise FunctionNotSupportedError()

    async def withdraw_fiat_funds_to_international_bank(
        self, request: withdraw.Request
    ) -> withdraw.ExchangeResponse:
        raise FunctionNotSupportedError()

    async def get_historic_candles(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        raise FunctionNotSupportedError()

    async def get_historic_candles_extended(
        self, pair: Pair, asset: Asset, start: datetime, end: datetime, interval: kline.Interval
    ) -> kline.Item:
        raise FunctionNotSupportedError()
