"""Strictly increasing nonces for signed requests."""

import threading
import time


class Nonce:
    """
    Millisecond (or other unit) nonce that never repeats within a process.

    Venues reject a nonce that is not greater than the previous one, so two
    requests within the same millisecond get consecutive values.
    """

    def __init__(self, scale: int = 1000) -> None:
        self.scale = scale
        self._last = 0
        self._lock = threading.Lock()

    def get(self) -> int:
        """Return the next nonce."""
        with self._lock:
            value = max(int(time.time() * self.scale), self._last + 1)
            self._last = value
            return value

    def set(self, value: int) -> None:
        """Seed the nonce, e.g. from a venue supplied value."""
        with self._lock:
            self._last = value
