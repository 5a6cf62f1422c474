"""Stateful front end of the allocation engine.

:class:`AllocationEngine` owns the allocation list and its undo history. The
host application feeds it assets and beneficiaries, calls the editing
operations in response to user actions and subscribes to receive the new list
after every change.
"""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from . import allocation as ops
from .database import Database
from .history import AllocationStore
from .models import PERCENTAGE, Allocation, AllocationList, Asset, Beneficiary
from .redistribution import RedistributionReactor, reconcile_assets, removed_beneficiary_ids
from .rules import DEFAULT_RULES, AllocationRules, default_percentage
from .summary import AssetSummary, BeneficiarySummary, summarize_assets, summarize_beneficiaries, unallocated_assets
from .templates import apply_template
from .validation import RejectionCategory

logger = logging.getLogger(__name__)

Listener = Callable[[AllocationList], None]


class AllocationEngine:
    def __init__(
        self,
        assets: Iterable[Asset] = (),
        beneficiaries: Iterable[Beneficiary] = (),
        allocations: Iterable[Allocation] = (),
        rules: AllocationRules = DEFAULT_RULES,
    ) -> None:
        self.rules = rules
        self._assets: tuple[Asset, ...] = tuple(assets)
        self._beneficiaries: tuple[Beneficiary, ...] = tuple(beneficiaries)
        self.store = AllocationStore(allocations, rules.history_limit)
        self.reactor = RedistributionReactor(rules)
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------
    @property
    def assets(self) -> tuple[Asset, ...]:
        return self._assets

    @property
    def beneficiaries(self) -> tuple[Beneficiary, ...]:
        return self._beneficiaries

    @property
    def allocations(self) -> AllocationList:
        return self.store.current

    @property
    def can_undo(self) -> bool:
        return self.store.can_undo

    def default_percentage(self) -> float:
        return default_percentage(len(self._beneficiaries), self.rules)

    def summary(self) -> List[AssetSummary]:
        return summarize_assets(self._assets, self.allocations, self.rules)

    def beneficiary_summary(self) -> List[BeneficiarySummary]:
        return summarize_beneficiaries(self._beneficiaries, self.allocations)

    def unallocated_assets(self) -> List[Asset]:
        return unallocated_assets(self._assets, self.allocations)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new list after every change; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self) -> None:
        current = self.store.current
        for listener in list(self._listeners):
            listener(current)

    def _apply(self, outcome: ops.Outcome, action: str) -> ops.Outcome:
        if not outcome.ok:
            logger.debug("%s rejected (%s): %s", action, outcome.rejection.category.value, outcome.message)
            return outcome
        self.store.commit(outcome.allocations)
        logger.debug("%s committed; %d allocation(s)", action, len(outcome.allocations))
        self._emit()
        return outcome

    def _ensure_idle(self) -> None:
        # Listeners notified from inside a reaction must not edit the list it is committing.
        if self.reactor.busy:
            raise RuntimeError("Allocations cannot be edited while redistribution is running.")

    # ------------------------------------------------------------------
    # Editing operations
    # ------------------------------------------------------------------
    def add_allocation(
        self,
        asset_ids: Sequence[str] | str,
        beneficiary_id: str,
        kind: str = PERCENTAGE,
        value: object = None,
    ) -> ops.Outcome:
        self._ensure_idle()
        if isinstance(asset_ids, str):
            asset_ids = [asset_ids]
        outcome = ops.add_allocation(
            self.allocations,
            self._assets,
            self._beneficiaries,
            asset_ids,
            beneficiary_id,
            kind,
            value,
            self.rules,
        )
        return self._apply(outcome, "add")

    def remove_allocation(self, asset_id: str, beneficiary_id: str) -> ops.Outcome:
        self._ensure_idle()
        outcome = ops.remove_allocation(self.allocations, self._assets, asset_id, beneficiary_id, self.rules)
        return self._apply(outcome, "remove")

    def reassign(self, asset_id: str, old_beneficiary_id: str, new_beneficiary_id: str) -> ops.Outcome:
        self._ensure_idle()
        outcome = ops.reassign(
            self.allocations,
            self._assets,
            self._beneficiaries,
            asset_id,
            old_beneficiary_id,
            new_beneficiary_id,
            self.rules,
        )
        return self._apply(outcome, "reassign")

    def quick_allocate(self) -> ops.Outcome:
        self._ensure_idle()
        outcome = ops.quick_allocate(self.allocations, self._assets, self._beneficiaries, self.rules)
        return self._apply(outcome, "quick allocate")

    def apply_template(self, asset_ids: Sequence[str], template_id: str) -> ops.Outcome:
        self._ensure_idle()
        outcome = apply_template(
            self.allocations, self._assets, self._beneficiaries, asset_ids, template_id, self.rules
        )
        return self._apply(outcome, f"template {template_id}")

    def undo_last(self) -> ops.Outcome:
        """Restore the list as it was before the last recorded change.

        If beneficiaries or assets were removed since that snapshot was taken,
        the restored list is reconciled against the current ones.
        """
        self._ensure_idle()
        restored = self.store.undo()
        if restored is None:
            return ops.Outcome.failure(self.allocations, RejectionCategory.NO_OP, "Nothing to undo.")
        reconciled = self._reconcile(restored)
        if reconciled != restored:
            self.store.commit(reconciled, record=False)
        logger.info("Undo restored %d allocation(s); %d snapshot(s) left", len(reconciled), len(self.store.history))
        self._emit()
        return ops.Outcome.success(reconciled, "Last change undone.")

    # ------------------------------------------------------------------
    # Collaborator input
    # ------------------------------------------------------------------
    def set_beneficiaries(self, beneficiaries: Iterable[Beneficiary]) -> AllocationList:
        """Replace the beneficiary list, redistributing shares of removed beneficiaries."""
        self._beneficiaries = tuple(beneficiaries)
        if not removed_beneficiary_ids(self.allocations, self._beneficiaries):
            return self.allocations
        return self.reactor.react(
            self.allocations, self._assets, self._beneficiaries, on_commit=self._commit_reaction
        )

    def _commit_reaction(self, allocations: AllocationList) -> None:
        self.store.commit(allocations, record=False)
        self._emit()

    def set_assets(self, assets: Iterable[Asset]) -> AllocationList:
        """Replace the asset list, dropping allocations of assets that went away."""
        self._assets = tuple(assets)
        if not self.rules.reconcile_on_asset_change:
            return self.allocations
        updated = reconcile_assets(self.allocations, self._assets)
        if updated != self.allocations:
            self.store.commit(updated, record=False)
            self._emit()
        return self.allocations

    def _reconcile(self, allocations: AllocationList) -> AllocationList:
        if self.rules.reconcile_on_asset_change:
            allocations = reconcile_assets(allocations, self._assets)
        if removed_beneficiary_ids(allocations, self._beneficiaries):
            allocations = self.reactor.react(allocations, self._assets, self._beneficiaries)
        return allocations

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def snapshot(self) -> tuple[AllocationList, tuple[AllocationList, ...]]:
        """Return the current list and the undo snapshots, both verbatim."""
        return self.store.current, self.store.history

    def restore(
        self,
        allocations: Iterable[Allocation],
        history: Iterable[Iterable[Allocation]] = (),
    ) -> AllocationList:
        self.store.load(allocations, history)
        self._emit()
        return self.allocations

    def save(self, db: Database, include_history: bool = True) -> None:
        db.save_allocations(self.store.current)
        if include_history:
            db.save_history(self.store.history)
        else:
            db.clear_history()

    @classmethod
    def from_database(
        cls,
        db: Database,
        assets: Iterable[Asset] = (),
        beneficiaries: Iterable[Beneficiary] = (),
        rules: Optional[AllocationRules] = None,
    ) -> "AllocationEngine":
        engine = cls(assets, beneficiaries, rules=rules or db.load_rules())
        engine.store.load(db.get_allocations(), db.get_history())
        return engine


__all__ = ["AllocationEngine", "Listener"]
