"""Per-asset storage of enabled and available pairs."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from irix.currency.pair import PairFormat, Pairs
from irix.enums import Asset
from irix.errors import AssetError


class PairStore(BaseModel):
    """Pairs and formats for one asset class."""

    asset_enabled: bool | None = None
    enabled: Pairs = Field(default_factory=Pairs)
    available: Pairs = Field(default_factory=Pairs)
    request_format: PairFormat | None = None
    config_format: PairFormat | None = None


class PairsManager(BaseModel):
    """
    Pair bookkeeping for one exchange.

    When use_global_format is set the manager level request and config
    formats apply to every asset; otherwise each PairStore carries its own.
    """

    request_format: PairFormat | None = None
    config_format: PairFormat | None = None
    use_global_format: bool = False
    last_updated: int = 0
    pairs: dict[Asset, PairStore] = Field(default_factory=dict)

    def get(self, asset: Asset) -> PairStore:
        """
        Return a copy of the store for an asset.

        Raises:
            AssetError: If the asset has no store

        """
        store = self.pairs.get(asset)
        if store is None:
            raise AssetError(f"cannot get pair store, asset type {asset.value} not found")
        return store.model_copy(deep=True)

    def store(self, asset: Asset, store: PairStore) -> None:
        """Replace the store for an asset."""
        self.pairs[asset] = store.model_copy(deep=True)

    def delete(self, asset: Asset) -> None:
        """Drop an asset's store."""
        self.pairs.pop(asset, None)

    def get_asset_types(self, enabled: bool = False) -> list[Asset]:
        """List assets, optionally only those enabled."""
        return [
            asset
            for asset, store in self.pairs.items()
            if not enabled or store.asset_enabled
        ]

    def is_asset_enabled(self, asset: Asset) -> bool:
        """
        Whether pairs for an asset are in use.

        Raises:
            AssetError: If the asset has no store

        """
        store = self.pairs.get(asset)
        if store is None:
            raise AssetError(f"{asset.value} asset type not found")
        return bool(store.asset_enabled)

    def set_asset_enabled(self, asset: Asset, enabled: bool) -> None:
        """
        Toggle an asset.

        Raises:
            AssetError: If the asset has no store or is already in that state

        """
        store = self.pairs.get(asset)
        if store is None:
            raise AssetError(f"{asset.value} asset type not found")
        if store.asset_enabled is not None and store.asset_enabled == enabled:
            state = "enabled" if enabled else "disabled"
            raise AssetError(f"{asset.value} asset already {state}")
        store.asset_enabled = enabled

    def get_pairs(self, asset: Asset, enabled: bool) -> Pairs:
        """Return enabled or available pairs; empty when the asset is unknown."""
        store = self.pairs.get(asset)
        if store is None:
            return Pairs()
        return Pairs(store.enabled if enabled else store.available)

    def store_pairs(self, asset: Asset, pairs: Pairs, enabled: bool) -> None:
        """Store enabled or available pairs, creating the asset store on demand."""
        store = self.pairs.setdefault(asset, PairStore())
        if enabled:
            store.enabled = Pairs(pairs)
        else:
            store.available = Pairs(pairs)
        self.last_updated = int(time.time())
