"""
Exception hierarchy for exchange adapters.

Every error raised by this package derives from IrixError so callers can
catch adapter failures without catching unrelated bugs. Venue reported
failures are ExchangeAPIError; transport failures are RequestError.
"""

from __future__ import annotations


class IrixError(Exception):
    """Base class for all adapter errors."""


class FunctionNotSupportedError(IrixError):
    """The venue does not offer this operation."""

    def __init__(self, message: str = "unsupported feature") -> None:
        super().__init__(message)


class NotYetImplementedError(IrixError):
    """The venue offers this operation but the adapter does not wire it yet."""

    def __init__(self, message: str = "not yet implemented") -> None:
        super().__init__(message)


class ConfigError(IrixError):
    """Invalid or missing exchange configuration."""


class EndpointError(IrixError):
    """Unknown endpoint key or unusable endpoint URL."""


class AssetError(IrixError):
    """Asset type missing, invalid or disabled."""


class PairError(IrixError):
    """Currency pair missing, unsupported or badly formatted."""


class CredentialsError(IrixError):
    """API credentials missing, placeholder values or undecodable."""


class ValidationError(IrixError):
    """A request parameter failed venue specific validation."""


class OrderValidationError(ValidationError):
    """An order submission, modification or cancellation is invalid."""


class WithdrawValidationError(ValidationError):
    """A withdrawal request is invalid."""


class KlineError(ValidationError):
    """A candle request asks for a pair, asset or interval not enabled."""


class WebsocketError(IrixError):
    """Websocket connection or subscription failure."""


class RequestError(IrixError):
    """
    HTTP transport failure.

    Attributes:
        transient: True when the failure is a network level error that
            can be retried (timeouts, refused connections).

    """

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class ExchangeAPIError(IrixError):
    """
    Error reported by the venue in its response.

    Attributes:
        exchange: Name of the venue that reported the error
        code: Venue error code when one is given
        status_code: HTTP status code of the response, if any

    """

    def __init__(
        self,
        exchange: str,
        message: str,
        *,
        code: int | str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{exchange} {message}")
        self.exchange = exchange
        self.code = code
        self.status_code = status_code


class NotFoundError(IrixError):
    """Nothing stored for the requested exchange, pair or asset."""
