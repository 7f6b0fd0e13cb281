"""Account holdings and the per-process holdings cache."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Code
from irix.enums import Asset
from irix.errors import NotFoundError, ValidationError


class Balance(BaseModel):
    """Balance of one currency."""

    currency: Code
    total_value: Decimal = Decimal("0")
    hold: Decimal = Decimal("0")

    @property
    def available(self) -> Decimal:
        """Total minus the amount on hold."""
        return self.total_value - self.hold


class SubAccount(BaseModel):
    """Balances grouped under one venue account or wallet."""

    id: str = ""
    asset: Asset = Asset.SPOT
    currencies: list[Balance] = Field(default_factory=list)


class Holdings(BaseModel):
    """All sub-accounts held on one exchange."""

    exchange: str = ""
    accounts: list[SubAccount] = Field(default_factory=list)

    def balance(self, code: Code | str) -> Decimal:
        """Sum of one currency's total across sub-accounts."""
        return sum(
            (
                balance.total_value
                for account in self.accounts
                for balance in account.currencies
                if balance.currency == code
            ),
            Decimal("0"),
        )


_holdings: dict[tuple[str, Asset], Holdings] = {}


def process_holdings(holdings: Holdings, asset: Asset) -> None:
    """
    Store holdings for an exchange and asset.

    Raises:
        ValidationError: If the exchange name is unset

    """
    if not holdings.exchange:
        raise ValidationError("cannot process holdings, exchange name unset")
    _holdings[(holdings.exchange.lower(), asset)] = holdings


def get_holdings(exchange: str, asset: Asset) -> Holdings:
    """
    Fetch stored holdings.

    Raises:
        NotFoundError: If nothing was stored for that exchange and asset

    """
    try:
        return _holdings[(exchange.lower(), asset)]
    except KeyError:
        raise NotFoundError(
            f"exchange {exchange} account holdings not found for {asset.value}"
        ) from None
