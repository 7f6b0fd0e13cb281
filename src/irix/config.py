"""
Configuration for exchange adapters.

Process level settings (logging, HTTP defaults, config file path) come from
the environment through pydantic-settings. Per exchange settings live in a
JSON file of ExchangeConfig entries that mirrors what each adapter's
`get_default_config` produces.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from irix.currency import Code, Pairs, PairsManager
from irix.errors import AssetError, ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_KEY = "Key"
DEFAULT_API_SECRET = "Secret"
DEFAULT_API_CLIENT_ID = "ClientID"

API_URL_NON_DEFAULT_MESSAGE = "NON_DEFAULT_HTTP_LINK_TO_EXCHANGE_API"
WEBSOCKET_URL_NON_DEFAULT_MESSAGE = "NON_DEFAULT_HTTP_LINK_TO_WEBSOCKET_EXCHANGE_API"

DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_WEBSOCKET_RESPONSE_CHECK_TIMEOUT = 0.03
DEFAULT_WEBSOCKET_RESPONSE_MAX_LIMIT = 7.0
DEFAULT_WEBSOCKET_TRAFFIC_TIMEOUT = 30.0
DEFAULT_WEBSOCKET_ORDERBOOK_BUFFER_LIMIT = 5
PAIRS_LAST_UPDATED_WARNING_DAYS = 30


class _CamelModel(BaseModel):
    """Exchange config files use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# EXCHANGE CONFIG
# =============================================================================


class APICredentialsConfig(_CamelModel):
    """Secrets used to sign authenticated requests."""

    key: str = ""
    secret: str = ""
    client_id: str = ""
    pem_key: str = ""
    otp_secret: str = ""


class CredentialsValidatorConfig(_CamelModel):
    """Which credentials an exchange needs before it may authenticate."""

    requires_pem: bool = False
    requires_key: bool = False
    requires_secret: bool = False
    requires_client_id: bool = False
    requires_base64_decode_secret: bool = False


class APIConfig(_CamelModel):
    """Authentication support flags, credentials and endpoint overrides."""

    authenticated_support: bool = False
    authenticated_websocket_api_support: bool = False
    pem_key_support: bool = False
    credentials: APICredentialsConfig = Field(default_factory=APICredentialsConfig)
    credentials_validator: CredentialsValidatorConfig | None = None
    url_endpoints: dict[str, str] = Field(default_factory=dict)


class ProtocolFeaturesConfig(_CamelModel):
    """Capabilities of one transport (REST or websocket)."""

    ticker_batching: bool = False
    auto_pair_updates: bool = False


class FeaturesSupportedConfig(_CamelModel):
    """What the exchange can do."""

    rest: bool = False
    rest_capabilities: ProtocolFeaturesConfig = Field(
        default_factory=ProtocolFeaturesConfig
    )
    websocket: bool = False
    websocket_capabilities: ProtocolFeaturesConfig = Field(
        default_factory=ProtocolFeaturesConfig
    )


class FeaturesEnabledConfig(_CamelModel):
    """What the operator has switched on."""

    auto_pair_updates: bool = False
    websocket_api: bool = False
    save_trade_data: bool = False


class FeaturesConfig(_CamelModel):
    """Supported and enabled feature flags."""

    supports: FeaturesSupportedConfig = Field(default_factory=FeaturesSupportedConfig)
    enabled: FeaturesEnabledConfig = Field(default_factory=FeaturesEnabledConfig)


class OrderbookConfig(_CamelModel):
    """Order book verification and websocket buffering."""

    verification_bypass: bool = False
    websocket_buffer_limit: int = 0
    websocket_buffer_enabled: bool = False


class ExchangeConfig(_CamelModel):
    """
    Configuration for one exchange.

    Timeouts are in seconds. A zero timeout means "use the default".
    """

    name: str = ""
    enabled: bool = False
    verbose: bool = False
    use_sandbox: bool = False
    http_timeout: float = 0.0
    http_user_agent: str = ""
    http_debugging: bool = False
    websocket_response_check_timeout: float = 0.0
    websocket_response_max_limit: float = 0.0
    websocket_traffic_timeout: float = 0.0
    proxy_address: str = ""
    base_currencies: list[Code] = Field(default_factory=list)
    currency_pairs: PairsManager | None = None
    api: APIConfig = Field(default_factory=APIConfig)
    features: FeaturesConfig | None = None
    orderbook: OrderbookConfig = Field(default_factory=OrderbookConfig)

    @field_validator("base_currencies", mode="before")
    @classmethod
    def _split_currencies(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item for item in value.split(",") if item]
        return value

    def has_default_credentials(self) -> bool:
        """Whether a required credential is empty or a placeholder value."""
        validator = self.api.credentials_validator
        if validator is None:
            return False
        creds = self.api.credentials
        if validator.requires_key and creds.key in ("", DEFAULT_API_KEY):
            return True
        if validator.requires_secret and creds.secret in ("", DEFAULT_API_SECRET):
            return True
        if validator.requires_client_id and creds.client_id in (
            "",
            DEFAULT_API_CLIENT_ID,
        ):
            return True
        return False

    def check_values(self) -> None:
        """
        Fill defaults and disable what cannot work.

        Disables authenticated support when required credentials are
        placeholders, applies default timeouts and buffer limits, and makes
        sure at least one asset is enabled.
        """
        if self.features is None:
            self.features = FeaturesConfig()
        if self.currency_pairs is None:
            self.currency_pairs = PairsManager()

        assets = self.currency_pairs.get_asset_types()
        if not assets:
            logger.warning(f"{self.name} no assets found, disabling...")
            self.enabled = False
            return
        for asset in assets:
            store = self.currency_pairs.pairs[asset]
            if store.asset_enabled is None:
                logger.warning(
                    f"Exchange {self.name}: upgrading config for asset type "
                    f"{asset.value} and setting enabled."
                )
                store.asset_enabled = True
        if not self.currency_pairs.get_asset_types(enabled=True):
            logger.warning(
                f"{self.name} assets disabled, turning on asset {assets[0].value}"
            )
            self.currency_pairs.set_asset_enabled(assets[0], True)

        if not self.enabled:
            return
        if not self.name:
            self.enabled = False
            raise ConfigError("exchange name is empty")

        if (
            self.api.authenticated_support or self.api.authenticated_websocket_api_support
        ) and self.has_default_credentials():
            self.api.authenticated_support = False
            self.api.authenticated_websocket_api_support = False
            logger.warning(
                f"exchange {self.name} authenticated API support disabled due to "
                "default/empty APIKey/Secret/ClientID values"
            )

        supports = self.features.supports
        if not (
            supports.rest_capabilities.auto_pair_updates
            or supports.websocket_capabilities.auto_pair_updates
        ):
            threshold = PAIRS_LAST_UPDATED_WARNING_DAYS * 24 * 60 * 60
            if self.currency_pairs.last_updated + threshold <= time.time():
                logger.warning(
                    f"exchange {self.name} last manual update of available currency "
                    f"pairs has exceeded {PAIRS_LAST_UPDATED_WARNING_DAYS} days. "
                    "Manual update required!"
                )

        if self.http_timeout <= 0:
            logger.warning(
                f"Exchange {self.name} HTTP Timeout value not set, "
                f"defaulting to {DEFAULT_HTTP_TIMEOUT}s."
            )
            self.http_timeout = DEFAULT_HTTP_TIMEOUT
        if self.websocket_response_check_timeout <= 0:
            self.websocket_response_check_timeout = DEFAULT_WEBSOCKET_RESPONSE_CHECK_TIMEOUT
        if self.websocket_response_max_limit <= 0:
            self.websocket_response_max_limit = DEFAULT_WEBSOCKET_RESPONSE_MAX_LIMIT
        if self.websocket_traffic_timeout <= 0:
            self.websocket_traffic_timeout = DEFAULT_WEBSOCKET_TRAFFIC_TIMEOUT
        if self.orderbook.websocket_buffer_limit <= 0:
            self.orderbook.websocket_buffer_limit = DEFAULT_WEBSOCKET_ORDERBOOK_BUFFER_LIMIT

        self.check_pair_consistency()

    def check_pair_consistency(self) -> None:
        """
        Drop enabled pairs missing from the available list.

        When an enabled asset ends up with no enabled pairs, one available
        pair is picked at random so the exchange has something to trade.

        Raises:
            AssetError: If no asset has available pairs to choose from

        """
        if self.currency_pairs is None:
            raise AssetError(f"exchange {self.name} has no currency pairs")
        manager = self.currency_pairs
        at_least_one = False
        assets = manager.get_asset_types()
        for asset in assets:
            store = manager.pairs[asset]
            kept = Pairs(p for p in store.enabled if store.available.contains(p, True))
            removed = Pairs(p for p in store.enabled if not store.available.contains(p, True))
            if removed:
                logger.warning(
                    f"Exchange {self.name}: [{asset.value}] Removing enabled pair(s) "
                    f"{removed.strings()} from enabled pairs list, as it isn't "
                    "located in the available pairs list."
                )
                store.enabled = kept
            if store.enabled:
                at_least_one = True
                continue
            if store.asset_enabled and store.available:
                store.enabled = Pairs([store.available.get_random()])
                at_least_one = True

        if not at_least_one and assets:
            available = manager.pairs[assets[0]].available
            if not available:
                raise AssetError(
                    f"exchange {self.name} has no available pairs for {assets[0].value}"
                )
            pair = available.get_random()
            manager.pairs[assets[0]].enabled = Pairs([pair])
            logger.warning(
                f"Exchange {self.name}: [{assets[0].value}] No enabled pairs found in "
                f"available pairs list, randomly added {pair} pair."
            )


# =============================================================================
# PROCESS SETTINGS
# =============================================================================


class HTTPConfig(BaseSettings):
    """Defaults shared by every exchange's HTTP requester."""

    model_config = SettingsConfigDict(env_prefix="IRIX_HTTP_")

    timeout: float = Field(
        default=DEFAULT_HTTP_TIMEOUT, gt=0, description="Request timeout in seconds"
    )
    user_agent: str = Field(default="", description="Default User-Agent header")
    max_retries: int = Field(
        default=3, ge=0, le=10, description="Retries for transient network errors"
    )
    retry_backoff: float = Field(
        default=0.5, ge=0.0, description="Base delay between retries in seconds"
    )


class IrixConfig(BaseSettings):
    """
    Root configuration.

    Environment variables use the IRIX_ prefix, e.g. IRIX_LOG_LEVEL=DEBUG or
    IRIX_CONFIG_PATH=/etc/irix/exchanges.json.
    """

    model_config = SettingsConfigDict(env_prefix="IRIX_", extra="ignore")

    log_level: str = Field(
        default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$"
    )
    config_path: Path | None = Field(
        default=None, description="JSON file holding exchange configs"
    )
    http: HTTPConfig = Field(default_factory=HTTPConfig)
    exchanges: list[ExchangeConfig] = Field(default_factory=list)

    @classmethod
    def from_env(cls) -> IrixConfig:
        """Load configuration from environment variables."""
        return cls()

    def load_exchanges(self, path: Path | str | None = None) -> list[ExchangeConfig]:
        """
        Read exchange configs from a JSON file.

        The file holds either a list of exchange configs or an object with
        an "exchanges" list.

        Raises:
            ConfigError: If no path is known or the file cannot be parsed

        """
        source = Path(path) if path is not None else self.config_path
        if source is None:
            raise ConfigError("no exchange config path provided")
        try:
            raw = json.loads(source.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"cannot read exchange config {source}: {e}") from e
        entries = raw.get("exchanges", []) if isinstance(raw, dict) else raw
        self.exchanges = [ExchangeConfig.model_validate(entry) for entry in entries]
        return self.exchanges

    def save_exchanges(self, path: Path | str) -> None:
        """Write exchange configs back to a JSON file."""
        payload = {
            "exchanges": [
                cfg.model_dump(by_alias=True, exclude_none=True) for cfg in self.exchanges
            ]
        }
        Path(path).write_text(json.dumps(payload, indent=2))

    def get_exchange_config(self, name: str) -> ExchangeConfig:
        """
        Find an exchange config by name, ignoring case.

        Raises:
            ConfigError: If no config has that name

        """
        for cfg in self.exchanges:
            if cfg.name.lower() == name.lower():
                return cfg
        raise ConfigError(f"exchange {name}: not found")

    def check_exchange_config_values(self) -> None:
        """
        Validate every exchange config.

        Raises:
            ConfigError: If no exchange configs exist or none stay enabled

        """
        if not self.exchanges:
            raise ConfigError("no exchange configs found")
        enabled = 0
        for cfg in self.exchanges:
            try:
                cfg.check_values()
            except (AssetError, ConfigError) as e:
                logger.error(f"Exchange {cfg.name}: config check error: {e}")
                cfg.enabled = False
                continue
            if cfg.enabled:
                enabled += 1
        if enabled == 0:
            raise ConfigError("no exchanges enabled")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging at the configured level."""
    logging.basicConfig(
        level=level or config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


config = IrixConfig.from_env()
