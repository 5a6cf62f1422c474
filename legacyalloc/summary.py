"""Read-only views over an allocation list."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from .classifier import is_indivisible
from .models import AMOUNT, FULL_SHARE, PERCENTAGE, Allocation, AllocationList, Asset, Beneficiary
from .rules import DEFAULT_RULES, AllocationRules
from .validation import allocated_percentage, format_percent, remaining_amount, remaining_percentage

_FLOAT_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class AssetSummary:
    """Allocation totals for a single asset."""

    asset: Asset
    allocations: AllocationList
    balance: Decimal
    total_percentage: float
    total_amount: Decimal
    allocated_share: float
    remaining_percentage: float
    remaining_amount: Decimal

    @property
    def is_unallocated(self) -> bool:
        return not self.allocations

    @property
    def is_over_allocated(self) -> bool:
        return (
            self.total_percentage > FULL_SHARE + _FLOAT_TOLERANCE
            or self.total_amount > self.balance
            or self.allocated_share > FULL_SHARE + _FLOAT_TOLERANCE
        )

    @property
    def has_percentage_allocations(self) -> bool:
        return any(allocation.kind == PERCENTAGE for allocation in self.allocations)

    @property
    def has_amount_allocations(self) -> bool:
        return any(allocation.kind == AMOUNT for allocation in self.allocations)


@dataclass(frozen=True, slots=True)
class BeneficiarySummary:
    beneficiary: Beneficiary
    allocations: AllocationList

    @property
    def asset_count(self) -> int:
        return len(self.allocations)


def summarize_assets(
    assets: Sequence[Asset],
    allocations: Sequence[Allocation],
    rules: AllocationRules = DEFAULT_RULES,
) -> List[AssetSummary]:
    summaries: List[AssetSummary] = []
    for asset in assets:
        own = tuple(allocation for allocation in allocations if allocation.asset_id == asset.id)
        summaries.append(
            AssetSummary(
                asset=asset,
                allocations=own,
                balance=asset.human_balance(rules.default_decimals),
                total_percentage=sum(a.percentage or 0.0 for a in own if a.kind == PERCENTAGE),
                total_amount=sum((a.amount or Decimal(0) for a in own if a.kind == AMOUNT), Decimal(0)),
                allocated_share=allocated_percentage(own, asset, rules),
                remaining_percentage=remaining_percentage(own, asset, rules),
                remaining_amount=remaining_amount(own, asset, rules),
            )
        )
    return summaries


def summarize_beneficiaries(
    beneficiaries: Sequence[Beneficiary], allocations: Sequence[Allocation]
) -> List[BeneficiarySummary]:
    return [
        BeneficiarySummary(
            beneficiary,
            tuple(allocation for allocation in allocations if allocation.beneficiary_id == beneficiary.id),
        )
        for beneficiary in beneficiaries
    ]


def unallocated_assets(assets: Sequence[Asset], allocations: Sequence[Allocation]) -> List[Asset]:
    allocated = {allocation.asset_id for allocation in allocations}
    return [asset for asset in assets if asset.id not in allocated]


def find_violations(
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
    allocations: Sequence[Allocation],
    rules: AllocationRules = DEFAULT_RULES,
) -> List[str]:
    """Describe every broken allocation invariant; an empty list means consistent."""

    problems: List[str] = []
    beneficiary_ids = {beneficiary.id for beneficiary in beneficiaries}

    pair_counts = Counter(allocation.key for allocation in allocations)
    for (asset_id, beneficiary_id), count in sorted(pair_counts.items()):
        if count > 1:
            problems.append(f"{asset_id} is allocated {count} times to {beneficiary_id}")

    for allocation in allocations:
        if allocation.beneficiary_id not in beneficiary_ids:
            problems.append(f"{allocation.asset_id} is allocated to unknown beneficiary {allocation.beneficiary_id}")

    for summary in summarize_assets(assets, allocations, rules):
        label = summary.asset.label
        if is_indivisible(summary.asset, rules):
            if len(summary.allocations) > 1:
                problems.append(f"{label} is split between {len(summary.allocations)} beneficiaries")
            for allocation in summary.allocations:
                if allocation.kind != PERCENTAGE or abs((allocation.percentage or 0.0) - FULL_SHARE) > _FLOAT_TOLERANCE:
                    problems.append(f"{label} must be allocated as a full 100% share")
        elif summary.is_over_allocated:
            problems.append(f"{label} is over-allocated ({format_percent(summary.allocated_share)})")
    return problems


__all__ = [
    "AssetSummary",
    "BeneficiarySummary",
    "find_violations",
    "summarize_assets",
    "summarize_beneficiaries",
    "unallocated_assets",
]
