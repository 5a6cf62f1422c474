"""Automatic clean-up when beneficiaries or assets disappear."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from .allocation import even_split, index_assets, redistribute_share
from .classifier import is_indivisible
from .models import PERCENTAGE, Allocation, AllocationList, Asset, Beneficiary
from .rules import DEFAULT_RULES, AllocationRules

logger = logging.getLogger(__name__)


class ReactorState(str, Enum):
    IDLE = "idle"
    REACTING = "reacting"


def removed_beneficiary_ids(
    allocations: Sequence[Allocation], beneficiaries: Sequence[Beneficiary]
) -> set[str]:
    current = {beneficiary.id for beneficiary in beneficiaries}
    return {allocation.beneficiary_id for allocation in allocations if allocation.beneficiary_id not in current}


def reconcile_beneficiaries(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    rules: AllocationRules = DEFAULT_RULES,
) -> AllocationList:
    """Drop allocations held by missing beneficiaries and re-home their shares.

    For a divisible asset the freed percentage is spread evenly over the
    asset's remaining allocations. An asset left with no allocation at all
    is split evenly across the current beneficiaries, or handed wholly to the
    first one if it is indivisible. Allocations of assets that are no longer
    loaded are only dropped.
    """

    missing = removed_beneficiary_ids(allocations, beneficiaries)
    if not missing:
        return tuple(allocations)

    freed: Dict[str, float] = {}
    kept = []
    for allocation in allocations:
        if allocation.beneficiary_id in missing:
            freed.setdefault(allocation.asset_id, 0.0)
            if allocation.kind == PERCENTAGE:
                freed[allocation.asset_id] += allocation.percentage or 0.0
        else:
            kept.append(allocation)

    result: AllocationList = tuple(kept)
    by_asset = index_assets(assets)
    for asset_id, share in freed.items():
        asset = by_asset.get(asset_id)
        if asset is None:
            continue
        if any(allocation.asset_id == asset_id for allocation in result):
            if not is_indivisible(asset, rules):
                result = redistribute_share(result, asset, share, rules)
        elif beneficiaries:
            result = result + tuple(even_split(asset, beneficiaries, rules))

    logger.info(
        "Removed %d allocation(s) held by %d deleted beneficiar%s; %d asset(s) affected",
        len(allocations) - len(kept),
        len(missing),
        "y" if len(missing) == 1 else "ies",
        len(freed),
    )
    return result


def reconcile_assets(allocations: Sequence[Allocation], assets: Sequence[Asset]) -> AllocationList:
    """Drop allocations whose asset is no longer loaded."""

    loaded = {asset.id for asset in assets}
    kept = tuple(allocation for allocation in allocations if allocation.asset_id in loaded)
    if len(kept) != len(allocations):
        logger.info("Dropped %d allocation(s) for assets that are no longer loaded", len(allocations) - len(kept))
    return kept


class RedistributionReactor:
    """Runs :func:`reconcile_beneficiaries` and tracks whether it is busy.

    The reactor stays in the reacting state until ``on_commit`` has handled
    the new list. Change listeners called from ``on_commit`` therefore see it
    busy: the engine refuses their allocation edits, and a nested reaction
    raises.
    """

    def __init__(self, rules: AllocationRules = DEFAULT_RULES) -> None:
        self.rules = rules
        self.state = ReactorState.IDLE

    @property
    def busy(self) -> bool:
        return self.state is ReactorState.REACTING

    def react(
        self,
        allocations: Sequence[Allocation],
        assets: Sequence[Asset],
        beneficiaries: Sequence[Beneficiary],
        on_commit: Optional[Callable[[AllocationList], None]] = None,
    ) -> AllocationList:
        if self.busy:
            raise RuntimeError("Redistribution is already in progress.")
        self.state = ReactorState.REACTING
        try:
            updated = reconcile_beneficiaries(allocations, assets, beneficiaries, self.rules)
            if on_commit is not None:
                on_commit(updated)
            return updated
        finally:
            self.state = ReactorState.IDLE


__all__ = [
    "ReactorState",
    "RedistributionReactor",
    "reconcile_assets",
    "reconcile_beneficiaries",
    "removed_beneficiary_ids",
]
