"""Core allocation operations.

Every function takes the current allocation tuple plus the asset and
beneficiary context and returns an :class:`Outcome` holding a brand-new tuple.
Inputs are never modified, so any earlier tuple stays valid as an undo
snapshot.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from .classifier import is_indivisible
from .models import (
    ALLOCATION_KINDS,
    FULL_SHARE,
    PERCENTAGE,
    Allocation,
    AllocationList,
    Asset,
    Beneficiary,
)
from .rules import DEFAULT_RULES, AllocationRules, default_percentage
from .validation import (
    Rejection,
    RejectionCategory,
    allocated_percentage,
    format_percent,
    parse_quantity,
    percentage_to_amount,
    validate,
)

_FLOAT_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of an allocation operation.

    ``allocations`` is the new list on success and the untouched input list on
    rejection.
    """

    allocations: AllocationList
    rejection: Optional[Rejection] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.rejection is None

    @classmethod
    def success(cls, allocations: Iterable[Allocation], message: str = "") -> "Outcome":
        return cls(tuple(allocations), message=message)

    @classmethod
    def failure(
        cls,
        allocations: Iterable[Allocation],
        category: RejectionCategory,
        reason: str,
        remaining=None,
    ) -> "Outcome":
        return cls(tuple(allocations), rejection=Rejection(category, reason, remaining), message=reason)


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"


def index_assets(assets: Iterable[Asset]) -> Dict[str, Asset]:
    return {asset.id: asset for asset in assets}


def find_allocation(
    allocations: Iterable[Allocation], asset_id: str, beneficiary_id: str
) -> Optional[Allocation]:
    for allocation in allocations:
        if allocation.asset_id == asset_id and allocation.beneficiary_id == beneficiary_id:
            return allocation
    return None


def upsert(allocations: Sequence[Allocation], allocation: Allocation) -> AllocationList:
    """Replace the record with the same asset/beneficiary pair, or append."""

    updated = list(allocations)
    for index, existing in enumerate(updated):
        if existing.key == allocation.key:
            updated[index] = allocation
            return tuple(updated)
    updated.append(allocation)
    return tuple(updated)


def _grow(
    allocations: Sequence[Allocation],
    targets: Sequence[int],
    increment: float,
    balance: Decimal,
    rules: AllocationRules,
    rounding: str,
) -> AllocationList:
    updated = list(allocations)
    for index in targets:
        current = updated[index]
        if current.kind == PERCENTAGE:
            share = current.percentage or 0.0
            # A holder's share never shrinks because of rounding.
            updated[index] = current.with_percentage(max(share, rules.round_share(share + increment, rounding)))
        else:
            amount = current.amount if current.amount is not None else Decimal(0)
            updated[index] = current.with_amount(amount + percentage_to_amount(increment, balance))
    return tuple(updated)


def redistribute_share(
    allocations: Sequence[Allocation],
    asset: Asset,
    freed: float,
    rules: AllocationRules = DEFAULT_RULES,
) -> AllocationList:
    """Hand ``freed`` percent of ``asset`` evenly to every remaining allocation.

    Each of the N holders gains ``freed / N``. Percentage holders get their new
    share rounded to ``rules.percentage_places``; amount holders get the same
    slice converted to a quantity of the asset. If rounding would push the
    asset past 100%, every percentage is rounded down instead.
    """

    targets = [index for index, allocation in enumerate(allocations) if allocation.asset_id == asset.id]
    if not targets or freed <= 0:
        return tuple(allocations)

    increment = freed / len(targets)
    balance = asset.human_balance(rules.default_decimals)
    updated = _grow(allocations, targets, increment, balance, rules, rules.rounding)
    if allocated_percentage(updated, asset, rules) > FULL_SHARE + _FLOAT_TOLERANCE:
        updated = _grow(allocations, targets, increment, balance, rules, "down")
    return updated


def even_split(asset: Asset, beneficiaries: Sequence[Beneficiary], rules: AllocationRules) -> List[Allocation]:
    """Full allocation of one asset: 100/K each, or 100% to the first beneficiary."""

    if not beneficiaries:
        return []
    if is_indivisible(asset, rules):
        return [Allocation.of_percentage(asset.id, beneficiaries[0].id, FULL_SHARE)]
    share = FULL_SHARE / len(beneficiaries)
    return [Allocation.of_percentage(asset.id, beneficiary.id, share) for beneficiary in beneficiaries]


# ----------------------------------------------------------------------
# Mutations
# ----------------------------------------------------------------------
def add_allocation(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    asset_ids: Sequence[str],
    beneficiary_id: str,
    kind: str = PERCENTAGE,
    value: object = None,
    rules: AllocationRules = DEFAULT_RULES,
) -> Outcome:
    """Allocate each selected asset to one beneficiary.

    The batch is all-or-nothing: the first asset that fails validation aborts
    the call and its rejection is returned. A missing percentage falls back to
    the even default share (100 / number of beneficiaries). A missing amount
    is accepted only for indivisible assets, which always take the full share.
    """

    selected = list(dict.fromkeys(asset_ids))
    if not selected or not beneficiary_id:
        return Outcome.failure(
            allocations, RejectionCategory.NO_OP, "Please select at least one asset and a beneficiary."
        )
    if kind not in ALLOCATION_KINDS:
        return Outcome.failure(
            allocations,
            RejectionCategory.INVALID_QUANTITY,
            f"Unknown allocation type {kind!r}; expected percentage or amount.",
        )

    missing = value is None or (isinstance(value, str) and not value.strip())
    if kind == PERCENTAGE and missing:
        value = default_percentage(len(beneficiaries), rules)
        missing = False
    quantity: Optional[Decimal] = None
    if not missing:
        try:
            quantity = parse_quantity(value)
        except ValueError as exc:
            return Outcome.failure(allocations, RejectionCategory.INVALID_QUANTITY, str(exc))

    by_id = index_assets(assets)
    working: AllocationList = tuple(allocations)
    for asset_id in selected:
        asset = by_id.get(asset_id)
        if asset is None:
            return Outcome.failure(
                allocations, RejectionCategory.UNKNOWN_REFERENCE, f"Asset {asset_id!r} is not loaded."
            )
        if quantity is None:
            if not is_indivisible(asset, rules):
                return Outcome.failure(
                    allocations, RejectionCategory.INVALID_QUANTITY, "A numeric value is required."
                )
            candidate = Allocation.of_percentage(asset_id, beneficiary_id, FULL_SHARE)
        elif kind == PERCENTAGE:
            candidate = Allocation.of_percentage(asset_id, beneficiary_id, float(quantity))
        else:
            candidate = Allocation.of_amount(asset_id, beneficiary_id, quantity)
        decision = validate(working, asset, candidate, beneficiaries, rules)
        if not decision.accepted:
            rejection = decision.rejection
            return Outcome(tuple(allocations), rejection=rejection, message=rejection.reason)
        working = upsert(working, decision.allocation)

    names = {beneficiary.id: beneficiary.label for beneficiary in beneficiaries}
    return Outcome.success(
        working,
        f"Allocated {_plural(len(selected), 'asset', 'assets')} to {names.get(beneficiary_id, beneficiary_id)}.",
    )


def remove_allocation(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    asset_id: str,
    beneficiary_id: str,
    rules: AllocationRules = DEFAULT_RULES,
) -> Outcome:
    """Delete one allocation and hand a freed percentage to the asset's other holders.

    A removed amount allocation is not redistributed; its capacity simply
    becomes available again.
    """

    removed = find_allocation(allocations, asset_id, beneficiary_id)
    if removed is None:
        return Outcome.failure(
            allocations,
            RejectionCategory.UNKNOWN_REFERENCE,
            f"No allocation of {asset_id!r} to {beneficiary_id!r} exists.",
        )

    remaining = tuple(allocation for allocation in allocations if allocation.key != removed.key)
    asset = index_assets(assets).get(asset_id)
    if asset is not None and not is_indivisible(asset, rules) and removed.kind == PERCENTAGE:
        remaining = redistribute_share(remaining, asset, removed.percentage or 0.0, rules)
    return Outcome.success(remaining, "Allocation removed.")


def reassign(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    asset_id: str,
    old_beneficiary_id: str,
    new_beneficiary_id: str,
    rules: AllocationRules = DEFAULT_RULES,
) -> Outcome:
    """Move an allocation to another beneficiary, keeping its share."""

    if old_beneficiary_id == new_beneficiary_id:
        return Outcome.failure(
            allocations, RejectionCategory.NO_OP, "The allocation already belongs to that beneficiary."
        )
    names = {beneficiary.id: beneficiary.label for beneficiary in beneficiaries}
    if new_beneficiary_id not in names:
        return Outcome.failure(
            allocations,
            RejectionCategory.UNKNOWN_REFERENCE,
            f"Beneficiary {new_beneficiary_id!r} does not exist.",
        )
    current = find_allocation(allocations, asset_id, old_beneficiary_id)
    if current is None:
        return Outcome.failure(
            allocations,
            RejectionCategory.UNKNOWN_REFERENCE,
            f"No allocation of {asset_id!r} to {old_beneficiary_id!r} exists.",
        )

    if find_allocation(allocations, asset_id, new_beneficiary_id) is not None:
        asset = index_assets(assets).get(asset_id)
        label = asset.label if asset else asset_id
        if asset is not None and is_indivisible(asset, rules):
            return Outcome.failure(
                allocations,
                RejectionCategory.INDIVISIBLE_CONFLICT,
                f"{names[new_beneficiary_id]} already holds {label}.",
            )
        return Outcome.failure(
            allocations,
            RejectionCategory.DUPLICATE_ALLOCATION,
            f"{names[new_beneficiary_id]} already has an allocation of {label}; edit it instead.",
        )

    updated = tuple(
        allocation.with_beneficiary(new_beneficiary_id) if allocation.key == current.key else allocation
        for allocation in allocations
    )
    return Outcome.success(updated, f"Allocation moved to {names[new_beneficiary_id]}.")


def quick_allocate(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    rules: AllocationRules = DEFAULT_RULES,
) -> Outcome:
    """Allocate every untouched asset evenly; unsplittable ones go to the first beneficiary."""

    if not beneficiaries:
        return Outcome.failure(
            allocations, RejectionCategory.NO_OP, "Please add at least one beneficiary first."
        )
    if not assets:
        return Outcome.failure(allocations, RejectionCategory.NO_OP, "No assets to allocate.")

    allocated_ids = {allocation.asset_id for allocation in allocations}
    created: List[Allocation] = []
    touched = 0
    for asset in assets:
        if asset.id in allocated_ids:
            continue
        allocated_ids.add(asset.id)
        created.extend(even_split(asset, beneficiaries, rules))
        touched += 1

    if not created:
        return Outcome.failure(allocations, RejectionCategory.NO_OP, "All assets are already allocated.")

    share = default_percentage(len(beneficiaries), rules)
    return Outcome.success(
        tuple(allocations) + tuple(created),
        f"Allocated {_plural(touched, 'asset', 'assets')} evenly across "
        f"{_plural(len(beneficiaries), 'beneficiary', 'beneficiaries')} ({format_percent(share)} each).",
    )


__all__ = [
    "Outcome",
    "add_allocation",
    "even_split",
    "find_allocation",
    "index_assets",
    "quick_allocate",
    "reassign",
    "redistribute_share",
    "remove_allocation",
    "upsert",
]
