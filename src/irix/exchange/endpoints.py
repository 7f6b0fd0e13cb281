"""Running URL endpoints for an exchange."""

from __future__ import annotations

import logging
import threading
from urllib.parse import urlparse

from irix.enums import URL
from irix.errors import EndpointError

logger = logging.getLogger(__name__)


def _valid_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and (bool(parsed.netloc) or value.startswith("/"))


class Endpoints:
    """
    Base URLs keyed by URL endpoint key.

    Defaults are set by the adapter and may be overridden from config.
    """

    def __init__(self, exchange: str) -> None:
        self.exchange = exchange
        self._defaults: dict[str, str] = {}
        self._lock = threading.RLock()

    def set_defaults(self, mapping: dict[URL, str]) -> None:
        """
        Load default endpoints.

        Raises:
            EndpointError: If a key is not a known endpoint key

        """
        for key, value in mapping.items():
            self.set_running(key, value)

    def set_running(self, key: URL | str, value: str) -> None:
        """
        Set a running URL.

        An unparsable URL is logged and the previous value kept.

        Raises:
            EndpointError: If the key is not a known endpoint key

        """
        try:
            url_key = key if isinstance(key, URL) else URL.from_key(key)
        except ValueError as e:
            raise EndpointError(f"keyVal invalid: {key}") from e
        if not _valid_uri(value):
            logger.warning(
                f"Could not set custom URL for {url_key.value} to {value} for "
                f"exchange {self.exchange}. invalid URI for request."
            )
            return
        with self._lock:
            self._defaults[url_key.value] = value

    def get_url(self, key: URL) -> str:
        """
        Look up a running URL.

        Raises:
            EndpointError: If nothing is stored for the key

        """
        with self._lock:
            value = self._defaults.get(key.value)
        if value is None:
            raise EndpointError(f"no endpoint path found for the given key: {key.value}")
        return value

    def get_url_map(self) -> dict[str, str]:
        """Copy of every running URL keyed by config name."""
        with self._lock:
            return dict(self._defaults)
