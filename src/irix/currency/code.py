"""Currency codes compared case-insensitively."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_serializer, model_validator

FIAT_CURRENCIES = frozenset(
    {
        "USD", "EUR", "AUD", "GBP", "JPY", "CNY", "KRW", "CAD", "NZD", "SGD",
        "HKD", "CHF", "RUB", "TRY", "ZAR", "BRL", "INR", "IDR", "MXN", "PLN",
        "SEK", "NOK", "DKK", "CZK", "HUF", "ILS", "MYR", "PHP", "THB", "TWD",
        "UAH", "VND", "NGN", "ARS", "CLP", "AED",
    }
)  # fmt: skip

STABLE_CURRENCIES = frozenset({"USDT", "USDC", "BUSD", "DAI", "TUSD", "PAX", "GUSD"})


class Code(BaseModel):
    """
    A currency symbol such as BTC or usd.

    The symbol keeps the case it was created with for display, while
    equality and hashing ignore case.
    """

    symbol: str = ""

    model_config = ConfigDict(frozen=True)

    def __init__(self, symbol: str = "", **data: Any) -> None:
        super().__init__(symbol=symbol, **data)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"symbol": value}
        return value

    @model_serializer
    def _serialize(self) -> str:
        return self.symbol

    def __str__(self) -> str:
        return self.symbol

    def __repr__(self) -> str:
        return f"Code({self.symbol!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Code):
            return self.symbol.upper() == other.symbol.upper()
        if isinstance(other, str):
            return self.symbol.upper() == other.upper()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.symbol.upper())

    def upper(self) -> Code:
        """Return an upper-cased copy."""
        return Code(self.symbol.upper())

    def lower(self) -> Code:
        """Return a lower-cased copy."""
        return Code(self.symbol.lower())

    def is_empty(self) -> bool:
        """Whether no symbol is set."""
        return self.symbol == ""

    def is_fiat(self) -> bool:
        """Whether this is a fiat currency."""
        return self.symbol.upper() in FIAT_CURRENCIES

    def is_stable(self) -> bool:
        """Whether this is a fiat-pegged stable coin."""
        return self.symbol.upper() in STABLE_CURRENCIES

    def is_crypto(self) -> bool:
        """Whether this is a non-fiat currency."""
        return not self.is_empty() and not self.is_fiat()
