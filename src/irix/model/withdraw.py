"""Withdrawal requests and responses."""

from __future__ import annotations

import enum
from decimal import Decimal

from pydantic import BaseModel, Field

from irix.currency import Code
from irix.errors import WithdrawValidationError


class RequestType(str, enum.Enum):
    """Crypto or fiat withdrawal."""

    CRYPTO = "crypto"
    FIAT = "fiat"


class CryptoRequest(BaseModel):
    """Destination of a crypto withdrawal."""

    address: str = ""
    address_tag: str = ""
    fee_amount: Decimal = Decimal("0")


class Bank(BaseModel):
    """Bank account details used for fiat withdrawals."""

    account_name: str = ""
    account_number: str = ""
    bank_name: str = ""
    bank_address: str = ""
    bank_postal_city: str = ""
    bank_postal_code: str = ""
    bank_country: str = ""
    iban: str = ""
    swift_code: str = ""
    bsb: str = ""
    bank_code: int = 0


class FiatRequest(BaseModel):
    """Destination of a fiat withdrawal."""

    bank: Bank = Field(default_factory=Bank)
    is_express_wire: bool = False
    requires_intermediary_bank: bool = False
    intermediary_bank_account_number: str = ""
    intermediary_bank_name: str = ""
    intermediary_bank_address: str = ""
    intermediary_bank_city: str = ""
    intermediary_bank_country: str = ""
    intermediary_swift_code: str = ""
    wire_currency: str = ""


class Request(BaseModel):
    """A withdrawal of funds to an external destination."""

    exchange: str = ""
    currency: Code = Field(default_factory=Code)
    description: str = ""
    one_time_password: int = 0
    account_id: str = ""
    pin: int = 0
    trade_password: str = ""
    amount: Decimal = Decimal("0")
    type: RequestType = RequestType.CRYPTO
    crypto: CryptoRequest = Field(default_factory=CryptoRequest)
    fiat: FiatRequest = Field(default_factory=FiatRequest)

    def validate_request(self) -> None:
        """
        Validate amount, currency kind and destination.

        All problems are reported together.

        Raises:
            WithdrawValidationError: If anything is wrong

        """
        errors: list[str] = []
        if self.amount <= 0:
            errors.append("invalid withdraw amount, must be greater than 0")
        match self.type:
            case RequestType.FIAT:
                if not self.currency.is_fiat():
                    errors.append("requested currency is not fiat")
                bank = self.fiat.bank
                if not bank.account_number and not bank.iban:
                    errors.append("bank account number or IBAN cannot be empty")
            case RequestType.CRYPTO:
                if self.currency.is_empty() or self.currency.is_fiat():
                    errors.append("requested currency is not a cryptocurrency")
                if not self.crypto.address:
                    errors.append("address cannot be empty")
                if self.crypto.fee_amount < 0:
                    errors.append("fee amount cannot be negative")
        if errors:
            raise WithdrawValidationError(", ".join(errors))


class ExchangeResponse(BaseModel):
    """What the venue returned for an accepted withdrawal."""

    name: str = ""
    id: str = ""
    status: str = ""
