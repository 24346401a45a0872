"""Optimistic list updates with revert on failure."""

import copy
from typing import Any

from shared.utils.logging import get_logger

logger = get_logger(__name__)


class OptimisticTracker:
    """Working copy of a list with locally applied, unconfirmed changes.

    Items are matched by `key_field`. Confirming a key only clears its
    pending mark; the base list changes only through `set_base`. Reverting
    restores the base list and drops every pending mark.
    """

    def __init__(self, base: list[dict[str, Any]] | None = None, key_field: str = "id"):
        self.key_field = key_field
        self._base: list[dict[str, Any]] = copy.deepcopy(base or [])
        self._working: list[dict[str, Any]] = copy.deepcopy(self._base)
        self._pending: set[Any] = set()

    @property
    def data(self) -> list[dict[str, Any]]:
        """The working list, including unconfirmed changes."""
        return self._working

    @property
    def pending(self) -> frozenset:
        return frozenset(self._pending)

    def is_pending(self, key: Any) -> bool:
        return key in self._pending

    def _index(self, items: list[dict[str, Any]], key: Any) -> int | None:
        for index, item in enumerate(items):
            if item.get(self.key_field) == key:
                return index
        return None

    def set_base(self, base: list[dict[str, Any]]) -> None:
        """Adopt a new server list; it replaces the working copy."""
        self._base = copy.deepcopy(base)
        self._working = copy.deepcopy(self._base)
        self._pending.clear()

    def add_optimistic(self, item: dict[str, Any]) -> None:
        """Append an item before the server confirms it."""
        key = item.get(self.key_field)
        self._working.append(dict(item))
        self._pending.add(key)
        logger.debug("optimistic_add", key=key)

    def update_optimistic(self, key: Any, changes: dict[str, Any]) -> None:
        """Merge changes into an item before the server confirms them."""
        index = self._index(self._working, key)
        if index is None:
            return
        self._working[index] = {**self._working[index], **changes}
        self._pending.add(key)
        logger.debug("optimistic_update", key=key)

    def remove_optimistic(self, key: Any) -> None:
        """Hide an item before the server confirms its removal."""
        self._working = [item for item in self._working if item.get(self.key_field) != key]
        self._pending.add(key)
        logger.debug("optimistic_remove", key=key)

    def confirm_operation(self, key: Any) -> None:
        """Clear the pending mark for a key. The working data is left as is."""
        self._pending.discard(key)

    def revert_optimistic(self) -> None:
        """Discard all unconfirmed changes and restore the base list."""
        self._working = copy.deepcopy(self._base)
        reverted = len(self._pending)
        self._pending.clear()
        logger.debug("optimistic_revert", reverted=reverted)
