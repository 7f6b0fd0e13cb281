"""Shared exchange plumbing used by every adapter."""

from irix.exchange.base import Base
from irix.exchange.endpoints import Endpoints
from irix.exchange.types import (
    API,
    Credentials,
    CredentialsValidator,
    FeaturesEnabled,
    FeaturesSupported,
    FeeBuilder,
    Features,
    FundHistory,
    ProtocolFeatures,
    WithdrawalHistory,
)

__all__ = [
    "API",
    "Base",
    "Credentials",
    "CredentialsValidator",
    "Endpoints",
    "Features",
    "FeaturesEnabled",
    "FeaturesSupported",
    "FeeBuilder",
    "FundHistory",
    "ProtocolFeatures",
    "WithdrawalHistory",
]
