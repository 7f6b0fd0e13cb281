"""
Currency pairs and pair formatting.

A Pair is the exchange-neutral identity of a market. PairFormat describes
how one exchange spells pairs (case, delimiter) both in requests and in
stored configuration, and Pairs is the list type used everywhere pairs are
enabled, available or updated.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    GetCoreSchemaHandler,
    model_serializer,
    model_validator,
)
from pydantic_core import core_schema

from irix.currency.code import Code
from irix.errors import PairError

KNOWN_DELIMITERS = ("_", "-", "/", ":")


class Pair(BaseModel):
    """
    A base/quote currency pair.

    Equality ignores case and delimiter, so BTC-USD equals btc_usd.
    """

    base: Code = Field(default_factory=Code)
    quote: Code = Field(default_factory=Code)
    delimiter: str = ""

    model_config = ConfigDict(frozen=True)

    def __init__(
        self,
        base: Code | str = "",
        quote: Code | str = "",
        delimiter: str = "",
        **data: Any,
    ) -> None:
        super().__init__(base=base, quote=quote, delimiter=delimiter, **data)

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            pair = cls.from_string(value)
            return {"base": pair.base, "quote": pair.quote, "delimiter": pair.delimiter}
        return value

    @model_serializer
    def _serialize(self) -> str:
        return str(self)

    # Construction helpers
    @classmethod
    def from_strings(cls, base: str, quote: str) -> Pair:
        """Build a pair from two currency strings without a delimiter."""
        return cls(base.strip(), quote.strip())

    @classmethod
    def with_delimiter(cls, base: str, quote: str, delimiter: str) -> Pair:
        """Build a pair from two currency strings with a delimiter."""
        return cls(base, quote, delimiter)

    @classmethod
    def from_delimited(cls, value: str, delimiter: str) -> Pair:
        """
        Split a delimited pair string.

        Raises:
            PairError: If the string does not split into exactly two codes

        """
        parts = value.split(delimiter)
        if len(parts) != 2:
            raise PairError(
                f"supplied pair {value} not correctly delimited with {delimiter}"
            )
        return cls(parts[0], parts[1], delimiter)

    @classmethod
    def from_string(cls, value: str) -> Pair:
        """
        Parse a pair string.

        Known delimiters are detected; without one the first three characters
        are taken as the base currency.

        Raises:
            PairError: If the string cannot be split into a pair

        """
        for delimiter in KNOWN_DELIMITERS:
            if delimiter in value:
                return cls.from_delimited(value, delimiter)
        if len(value) < 3:
            raise PairError(
                f"{value} cannot be converted to currency pair, "
                "must be at least 3 characters"
            )
        return cls.from_strings(value[:3], value[3:])

    @classmethod
    def from_index(cls, value: str, index: str) -> Pair:
        """
        Split an undelimited pair string around a known currency code.

        Raises:
            PairError: If the index code is not found in the string

        """
        position = value.find(index)
        if position == -1:
            raise PairError(f"index {index} not found in currency pair string")
        if position == 0:
            return cls.from_strings(value[: len(index)], value[len(index) :])
        return cls.from_strings(value[:position], value[position:])

    @classmethod
    def match_symbol(
        cls, symbol: str, available: Iterable[Pair], fmt: PairFormat
    ) -> Pair:
        """
        Find the pair whose formatted spelling matches an exchange symbol.

        Raises:
            PairError: If no available pair formats to the symbol

        """
        for pair in available:
            if fmt.format(pair) == symbol:
                return pair
        raise PairError(f"pair not found: {symbol}")

    # Rendering
    def __str__(self) -> str:
        return f"{self.base}{self.delimiter}{self.quote}"

    def __repr__(self) -> str:
        return f"Pair({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Pair):
            return self.base == other.base and self.quote == other.quote
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.base, self.quote))

    def format(self, delimiter: str, uppercase: bool) -> Pair:
        """Return a copy with the given delimiter and case."""
        pair = Pair(self.base, self.quote, delimiter)
        return pair.upper() if uppercase else pair.lower()

    def upper(self) -> Pair:
        """Return an upper-cased copy."""
        return Pair(self.base.upper(), self.quote.upper(), self.delimiter)

    def lower(self) -> Pair:
        """Return a lower-cased copy."""
        return Pair(self.base.lower(), self.quote.lower(), self.delimiter)

    def swap(self) -> Pair:
        """Return the reciprocal pair."""
        return Pair(self.quote, self.base, self.delimiter)

    # Predicates
    def is_empty(self) -> bool:
        """Whether both codes are unset."""
        return self.base.is_empty() and self.quote.is_empty()

    def is_invalid(self) -> bool:
        """Whether base and quote are the same currency."""
        return self.base == self.quote

    def equal(self, other: Pair) -> bool:
        """Case-insensitive match on base and quote."""
        return self == other

    def equal_including_reciprocal(self, other: Pair) -> bool:
        """Match either this pair or its reciprocal."""
        return self == other or self.swap() == other

    def contains_currency(self, code: Code | str) -> bool:
        """Whether either side is the given currency."""
        return self.base == code or self.quote == code

    def is_crypto_fiat_pair(self) -> bool:
        """One side crypto, the other fiat."""
        return (self.base.is_crypto() and self.quote.is_fiat()) or (
            self.base.is_fiat() and self.quote.is_crypto()
        )

    def is_crypto_pair(self) -> bool:
        """Both sides crypto."""
        return self.base.is_crypto() and self.quote.is_crypto()

    def is_fiat_pair(self) -> bool:
        """Both sides fiat."""
        return self.base.is_fiat() and self.quote.is_fiat()


class PairFormat(BaseModel):
    """How an exchange spells pairs."""

    uppercase: bool = False
    delimiter: str = ""
    separator: str = ""
    index: str = ""

    def format(self, pair: Pair) -> str:
        """Render a pair in this format."""
        return str(pair.format(self.delimiter, self.uppercase))


class Pairs(list[Pair]):
    """
    List of currency pairs.

    Validates from a list of pair strings or a comma separated string and
    serializes back to a comma separated string.
    """

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_before_validator_function(
            cls._split,
            core_schema.no_info_after_validator_function(
                cls, handler.generate_schema(list[Pair])
            ),
            serialization=core_schema.plain_serializer_function_ser_schema(
                lambda value: value.join()
            ),
        )

    @staticmethod
    def _split(value: Any) -> Any:
        if isinstance(value, str):
            return [item for item in value.split(",") if item]
        return value

    @classmethod
    def from_strings(cls, values: Iterable[str]) -> Pairs:
        """Parse each string into a pair."""
        return cls(Pair.from_string(value) for value in values)

    def strings(self) -> list[str]:
        """Render every pair as a string."""
        return [str(pair) for pair in self]

    def join(self, separator: str = ",") -> str:
        """Render all pairs joined by a separator."""
        return separator.join(self.strings())

    def upper(self) -> Pairs:
        """Return an upper-cased copy."""
        return Pairs(pair.upper() for pair in self)

    def lower(self) -> Pairs:
        """Return a lower-cased copy."""
        return Pairs(pair.lower() for pair in self)

    def format(self, delimiter: str, index: str, uppercase: bool) -> Pairs:
        """
        Reformat every pair.

        When index is set, each pair is first re-split around that code.
        """
        formatted = Pairs()
        for pair in self:
            if index:
                try:
                    pair = Pair.from_index(str(pair), index)
                except PairError:
                    continue
            formatted.append(pair.format(delimiter, uppercase))
        return formatted

    def contains(self, pair: Pair, exact: bool = True) -> bool:
        """Whether the pair (or its reciprocal when not exact) is present."""
        if exact:
            return any(item.equal(pair) for item in self)
        return any(item.equal_including_reciprocal(pair) for item in self)

    def contains_currency(self, code: Code | str) -> bool:
        """Whether any pair includes the currency."""
        return any(pair.contains_currency(code) for pair in self)

    def remove_pair(self, pair: Pair) -> Pairs:
        """Return a copy without the given pair."""
        return Pairs(item for item in self if not item.equal(pair))

    def add_pair(self, pair: Pair) -> Pairs:
        """Return a copy with the pair appended unless already present."""
        if self.contains(pair):
            return Pairs(self)
        return Pairs([*self, pair])

    def find_differences(self, other: Pairs) -> tuple[Pairs, Pairs]:
        """
        Compare this list (old) against another (new).

        Returns:
            Tuple of (pairs only in other, pairs only in self)

        """
        new_pairs = Pairs(pair for pair in other if not self.contains(pair))
        removed_pairs = Pairs(pair for pair in self if not other.contains(pair))
        return new_pairs, removed_pairs

    def get_random(self) -> Pair:
        """
        Pick a random pair.

        Raises:
            PairError: If the list is empty

        """
        if not self:
            raise PairError("no pairs to choose from")
        return random.choice(self)
