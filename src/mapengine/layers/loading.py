"""Loading-state aggregation across map layers.

Every layer id enters the set when its first query is submitted and leaves
it on terminal resolution (success, error or cancellation). Only the
"set became empty" transition is observable, through the all-clear
callback that drives the map spinner.
"""

from __future__ import annotations

from typing import Callable, Hashable

from loguru import logger


class LoadingTracker:
    """Set of loading layer ids with owner-checked removal."""

    def __init__(self, on_all_clear: Callable[[], None] | None = None) -> None:
        self._owners: dict[str, Hashable] = {}
        self._on_all_clear = on_all_clear

    def __contains__(self, layer_id: str) -> bool:
        return layer_id in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._owners)

    @property
    def is_loading(self) -> bool:
        return bool(self._owners)

    def owner(self, layer_id: str) -> Hashable | None:
        return self._owners.get(layer_id)

    def begin(self, layer_id: str, owner: Hashable) -> None:
        """Mark ``layer_id`` as loading on behalf of ``owner``.

        A later ``begin`` for the same id transfers ownership; the previous
        owner can no longer clear the entry.
        """
        self._owners[layer_id] = owner

    def finish(self, layer_id: str, owner: Hashable) -> bool:
        """Clear ``layer_id`` if ``owner`` still owns it.

        Returns True when the entry was removed.
        """
        if self._owners.get(layer_id) != owner:
            return False
        del self._owners[layer_id]
        self._check_all_clear()
        return True

    def reset(self) -> None:
        """Empty the set, firing all-clear once if it was non-empty."""
        if not self._owners:
            return
        self._owners.clear()
        self._check_all_clear()

    def _check_all_clear(self) -> None:
        if self._owners:
            return
        logger.debug("All map layers loaded")
        if self._on_all_clear is not None:
            self._on_all_clear()
