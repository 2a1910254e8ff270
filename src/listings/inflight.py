"""Disable-while-in-flight guard for mutating actions."""

from __future__ import annotations

from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class InFlightGuard:
    """Tracks keys of actions currently awaiting the backend.

    All bot handlers run on one event loop, so a plain set is enough.
    """

    def __init__(self) -> None:
        self._keys: set[Hashable] = set()

    def is_busy(self, key: Hashable) -> bool:
        return key in self._keys

    @contextmanager
    def claim(self, key: Hashable) -> Iterator[bool]:
        """Yield True if the key was free (and hold it), False if already taken."""
        if key in self._keys:
            yield False
            return
        self._keys.add(key)
        try:
            yield True
        finally:
            self._keys.discard(key)
