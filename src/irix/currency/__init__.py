"""Currency codes, pairs and pair bookkeeping."""

from irix.currency.code import Code
from irix.currency.manager import PairsManager, PairStore
from irix.currency.pair import Pair, PairFormat, Pairs

__all__ = ["Code", "Pair", "PairFormat", "Pairs", "PairStore", "PairsManager"]
