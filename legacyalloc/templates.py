"""Predefined ways of splitting assets between beneficiaries."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Sequence

from .allocation import Outcome, index_assets
from .classifier import is_indivisible
from .models import FULL_SHARE, Allocation, Asset, Beneficiary
from .rules import DEFAULT_RULES, AllocationRules
from .validation import RejectionCategory

# Positional weights of the weighted template; beneficiaries past the tenth get nothing.
WEIGHTED_SHARES = (50.0, 30.0, 20.0, 10.0, 5.0, 5.0, 5.0, 5.0, 5.0, 5.0)


@dataclass(frozen=True, slots=True)
class AllocationTemplate:
    id: str
    name: str
    description: str
    build: Callable[[Sequence[Beneficiary]], Dict[str, float]]

    def shares(self, beneficiaries: Sequence[Beneficiary]) -> Dict[str, float]:
        """Return beneficiary id -> percentage, in beneficiary order."""
        if not beneficiaries:
            return {}
        return self.build(beneficiaries)


def _equal(beneficiaries: Sequence[Beneficiary]) -> Dict[str, float]:
    share = FULL_SHARE / len(beneficiaries)
    return {beneficiary.id: share for beneficiary in beneficiaries}


def _first_gets_all(beneficiaries: Sequence[Beneficiary]) -> Dict[str, float]:
    return {beneficiaries[0].id: FULL_SHARE}


def _weighted(beneficiaries: Sequence[Beneficiary]) -> Dict[str, float]:
    weights = {
        beneficiary.id: WEIGHTED_SHARES[index]
        for index, beneficiary in enumerate(beneficiaries)
        if index < len(WEIGHTED_SHARES)
    }
    total = sum(weights.values())
    if total > FULL_SHARE:
        weights = {key: value * FULL_SHARE / total for key, value in weights.items()}
    return weights


TEMPLATES: Dict[str, AllocationTemplate] = {
    template.id: template
    for template in (
        AllocationTemplate(
            "equal", "Equal Split", "Split all assets equally among all beneficiaries", _equal
        ),
        AllocationTemplate(
            "first-gets-all",
            "First Beneficiary Gets All",
            "Give 100% to the first beneficiary",
            _first_gets_all,
        ),
        AllocationTemplate(
            "weighted",
            "Weighted Split",
            "Split 50% to first, 30% to second, 20% to third, etc.",
            _weighted,
        ),
    )
}


def apply_template(
    allocations: Sequence[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    asset_ids: Sequence[str],
    template_id: str,
    rules: AllocationRules = DEFAULT_RULES,
) -> Outcome:
    """Replace the allocations of the selected assets with a template split.

    Indivisible assets go wholly to the beneficiary with the largest template
    share, the earliest one on ties.
    """

    template = TEMPLATES.get(template_id)
    if template is None:
        return Outcome.failure(
            allocations, RejectionCategory.UNKNOWN_REFERENCE, f"Unknown allocation template {template_id!r}."
        )
    if not beneficiaries:
        return Outcome.failure(
            allocations, RejectionCategory.NO_OP, "Add beneficiaries first to use allocation templates."
        )
    selected = list(dict.fromkeys(asset_ids))
    if not selected:
        return Outcome.failure(allocations, RejectionCategory.NO_OP, "Please select at least one asset.")

    by_id = index_assets(assets)
    unknown = [asset_id for asset_id in selected if asset_id not in by_id]
    if unknown:
        return Outcome.failure(
            allocations,
            RejectionCategory.UNKNOWN_REFERENCE,
            f"Asset {unknown[0]!r} is not loaded.",
        )

    shares = template.shares(beneficiaries)
    owner = max(shares, key=shares.__getitem__)
    chosen = set(selected)
    created: List[Allocation] = []
    for asset_id in selected:
        if is_indivisible(by_id[asset_id], rules):
            created.append(Allocation.of_percentage(asset_id, owner, FULL_SHARE))
            continue
        created.extend(
            Allocation.of_percentage(asset_id, beneficiary_id, share)
            for beneficiary_id, share in shares.items()
            if share > 0
        )

    kept = tuple(allocation for allocation in allocations if allocation.asset_id not in chosen)
    count = len(selected)
    return Outcome.success(
        kept + tuple(created),
        f"Applied '{template.name}' to {count} asset{'s' if count != 1 else ''}.",
    )


__all__ = ["AllocationTemplate", "TEMPLATES", "WEIGHTED_SHARES", "apply_template"]
