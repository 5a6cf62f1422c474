"""Holds the current allocation list and the snapshots used for undo."""
from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, Optional

from .models import Allocation, AllocationList
from .rules import DEFAULT_HISTORY_LIMIT


class AllocationStore:
    """Current allocation tuple plus a capped stack of earlier tuples.

    Once ``history_limit`` snapshots are stored the oldest one is discarded
    for every new commit. A limit of zero disables undo.
    """

    def __init__(
        self,
        allocations: Iterable[Allocation] = (),
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._current: AllocationList = tuple(allocations)
        self._history: Deque[AllocationList] = deque(maxlen=history_limit)

    @property
    def current(self) -> AllocationList:
        return self._current

    @property
    def history(self) -> tuple[AllocationList, ...]:
        """Stored snapshots, oldest first."""
        return tuple(self._history)

    @property
    def history_limit(self) -> int:
        return self._history.maxlen or 0

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    def commit(self, allocations: Iterable[Allocation], *, record: bool = True) -> AllocationList:
        """Make ``allocations`` current, pushing the previous list when ``record`` is set."""
        if record:
            self._history.append(self._current)
        self._current = tuple(allocations)
        return self._current

    def undo(self) -> Optional[AllocationList]:
        """Restore the most recent snapshot; ``None`` when there is nothing to undo."""
        if not self._history:
            return None
        self._current = self._history.pop()
        return self._current

    def clear_history(self) -> None:
        self._history.clear()

    def load(self, allocations: Iterable[Allocation], history: Iterable[Iterable[Allocation]] = ()) -> None:
        """Replace the whole state, e.g. with a snapshot read from the database."""
        self._current = tuple(allocations)
        self._history.clear()
        for snapshot in history:
            self._history.append(tuple(snapshot))


__all__ = ["AllocationStore"]
