"""SQLite persistence for allocation snapshots and engine settings."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .models import ALLOCATION_KINDS, PERCENTAGE, Allocation, AllocationList
from .rules import AllocationRules

logger = logging.getLogger(__name__)

DB_FILENAME = "legacyalloc.db"


class Database:
    """Simple wrapper around SQLite operations.

    The allocation list is stored verbatim, one row per record in list order,
    so reading it back yields the same tuple that was saved.
    """

    def __init__(self, path: str | Path = DB_FILENAME) -> None:
        self.db_path = Path(path)
        self._ensure_initialised()

    def _ensure_initialised(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS allocations (
                    position INTEGER PRIMARY KEY,
                    asset_id TEXT NOT NULL,
                    beneficiary_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    percentage REAL,
                    amount TEXT,
                    UNIQUE (asset_id, beneficiary_id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS allocation_history (
                    snapshot INTEGER NOT NULL,
                    position INTEGER NOT NULL,
                    asset_id TEXT NOT NULL,
                    beneficiary_id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    percentage REAL,
                    amount TEXT,
                    PRIMARY KEY (snapshot, position)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS history_snapshots (
                    snapshot INTEGER PRIMARY KEY
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            conn.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
        finally:
            conn.commit()
            conn.close()

    @staticmethod
    def _row_values(allocation: Allocation) -> tuple:
        return (
            allocation.asset_id,
            allocation.beneficiary_id,
            allocation.kind,
            allocation.percentage if allocation.kind == PERCENTAGE else None,
            None if allocation.kind == PERCENTAGE else str(allocation.amount),
        )

    @staticmethod
    def _row_to_allocation(row: Sequence) -> Allocation:
        asset_id, beneficiary_id, kind, percentage, amount = row
        if kind not in ALLOCATION_KINDS:
            raise ValueError(f"Stored allocation {asset_id}/{beneficiary_id} has unknown type {kind!r}")
        if kind == PERCENTAGE:
            if percentage is None:
                raise ValueError(f"Stored allocation {asset_id}/{beneficiary_id} has no percentage")
            return Allocation.of_percentage(asset_id, beneficiary_id, float(percentage))
        try:
            return Allocation.of_amount(asset_id, beneficiary_id, Decimal(amount))
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Stored allocation {asset_id}/{beneficiary_id} has invalid amount {amount!r}") from exc

    # Allocation operations -------------------------------------------------
    def save_allocations(self, allocations: Iterable[Allocation]) -> None:
        """Replace the stored allocation list."""
        rows = [(position, *self._row_values(allocation)) for position, allocation in enumerate(allocations)]
        with self._connection() as conn:
            conn.execute("DELETE FROM allocations")
            conn.executemany(
                """
                INSERT INTO allocations (position, asset_id, beneficiary_id, kind, percentage, amount)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        logger.debug("Saved %d allocation(s) to %s", len(rows), self.db_path)

    def get_allocations(self) -> AllocationList:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT asset_id, beneficiary_id, kind, percentage, amount FROM allocations ORDER BY position"
            )
            rows = cursor.fetchall()
        return tuple(self._row_to_allocation(row) for row in rows)

    def clear_allocations(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM allocations")

    # Undo history ----------------------------------------------------------
    def save_history(self, history: Iterable[Iterable[Allocation]]) -> None:
        """Replace the stored undo snapshots (oldest first)."""
        snapshot_rows = []
        allocation_rows = []
        for snapshot, allocations in enumerate(history):
            snapshot_rows.append((snapshot,))
            for position, allocation in enumerate(allocations):
                allocation_rows.append((snapshot, position, *self._row_values(allocation)))
        with self._connection() as conn:
            conn.execute("DELETE FROM allocation_history")
            conn.execute("DELETE FROM history_snapshots")
            conn.executemany("INSERT INTO history_snapshots (snapshot) VALUES (?)", snapshot_rows)
            conn.executemany(
                """
                INSERT INTO allocation_history (snapshot, position, asset_id, beneficiary_id, kind, percentage, amount)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                allocation_rows,
            )

    def get_history(self) -> List[AllocationList]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT snapshot FROM history_snapshots ORDER BY snapshot")
            snapshots = [row[0] for row in cursor.fetchall()]
            cursor.execute(
                """
                SELECT snapshot, asset_id, beneficiary_id, kind, percentage, amount
                FROM allocation_history
                ORDER BY snapshot, position
                """
            )
            rows = cursor.fetchall()
        by_snapshot: Dict[int, List[Allocation]] = {snapshot: [] for snapshot in snapshots}
        for row in rows:
            by_snapshot.setdefault(row[0], []).append(self._row_to_allocation(row[1:]))
        return [tuple(by_snapshot[snapshot]) for snapshot in sorted(by_snapshot)]

    def clear_history(self) -> None:
        with self._connection() as conn:
            conn.execute("DELETE FROM allocation_history")
            conn.execute("DELETE FROM history_snapshots")

    # Settings --------------------------------------------------------------
    def set_setting(self, key: str, value: str) -> None:
        with self._connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )

    def get_setting(self, key: str) -> Optional[str]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT value FROM settings WHERE key = ?", (key,))
            row = cursor.fetchone()
        return row[0] if row else None

    def get_settings(self) -> Dict[str, str]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT key, value FROM settings")
            rows = cursor.fetchall()
        return {row[0]: row[1] for row in rows}

    def save_rules(self, rules: AllocationRules) -> None:
        with self._connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                list(rules.to_mapping().items()),
            )

    def load_rules(self) -> AllocationRules:
        return AllocationRules.from_mapping(self.get_settings())


__all__ = ["DB_FILENAME", "Database"]
