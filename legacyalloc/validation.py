"""Accept/reject decisions and capacity bookkeeping for allocations.

Percentage and amount allocations of one divisible asset draw on the same
capacity pool: an amount is worth ``amount / balance * 100`` percent and a
percentage is worth ``percentage / 100 * balance`` units. Nothing in this
module mutates its inputs.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence

from .classifier import is_indivisible
from .models import AMOUNT, FULL_SHARE, PERCENTAGE, Allocation, Asset, Beneficiary
from .rules import DEFAULT_RULES, AllocationRules

_FLOAT_TOLERANCE = 1e-9
_HUNDRED = Decimal(100)


class RejectionCategory(str, Enum):
    OVER_ALLOCATION = "over_allocation"
    INDIVISIBLE_CONFLICT = "indivisible_conflict"
    DUPLICATE_ALLOCATION = "duplicate_allocation"
    INVALID_QUANTITY = "invalid_quantity"
    UNKNOWN_REFERENCE = "unknown_reference"
    NO_OP = "no_op"


@dataclass(frozen=True, slots=True)
class Rejection:
    """Why an operation was refused and, where it applies, what is still free.

    ``remaining`` is a percentage (float) for percentage requests and a token
    quantity (:class:`~decimal.Decimal`) for amount requests.
    """

    category: RejectionCategory
    reason: str
    remaining: Optional[float | Decimal] = None


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of :func:`validate`.

    On acceptance ``allocation`` holds the record to store, which differs from
    the candidate for indivisible assets (forced to a full 100% share).
    """

    accepted: bool
    allocation: Optional[Allocation] = None
    rejection: Optional[Rejection] = None

    @classmethod
    def accept(cls, allocation: Allocation) -> "Decision":
        return cls(True, allocation=allocation)

    @classmethod
    def reject(
        cls,
        category: RejectionCategory,
        reason: str,
        remaining: Optional[float | Decimal] = None,
    ) -> "Decision":
        return cls(False, rejection=Rejection(category, reason, remaining))


def format_percent(value: float) -> str:
    """Return a percentage string with two decimals."""

    return f"{value:.2f}%"


def format_amount(value: Decimal) -> str:
    """Return a token quantity without exponent or trailing zeros."""

    text = f"{value.normalize():f}"
    return text if text != "-0" else "0"


def parse_quantity(value: object) -> Decimal:
    """Parse user input into a finite :class:`~decimal.Decimal`.

    Raises :class:`ValueError` for empty, non-numeric or non-finite input.
    """

    if isinstance(value, bool) or value is None:
        raise ValueError("A numeric value is required.")
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("A numeric value is required.")
        try:
            parsed = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"{value!r} is not a number.") from exc
    if not parsed.is_finite():
        raise ValueError(f"{value!r} is not a finite number.")
    return parsed


def percentage_to_amount(percentage: float, balance: Decimal) -> Decimal:
    return Decimal(repr(float(percentage))) * balance / _HUNDRED


def _amount_to_percentage(amount: Decimal, balance: Decimal) -> float:
    if balance <= 0:
        return 0.0
    return float(amount / balance * _HUNDRED)


def _for_asset(
    allocations: Iterable[Allocation], asset_id: str, exclude_beneficiary: Optional[str]
) -> list[Allocation]:
    return [
        allocation
        for allocation in allocations
        if allocation.asset_id == asset_id and allocation.beneficiary_id != exclude_beneficiary
    ]


def allocated_percentage(
    allocations: Iterable[Allocation],
    asset: Asset,
    rules: AllocationRules = DEFAULT_RULES,
    exclude_beneficiary: Optional[str] = None,
) -> float:
    """Return the share of ``asset`` already committed, in percent."""

    balance = asset.human_balance(rules.default_decimals)
    total = 0.0
    for allocation in _for_asset(allocations, asset.id, exclude_beneficiary):
        if allocation.kind == PERCENTAGE:
            total += allocation.percentage or 0.0
        else:
            total += _amount_to_percentage(allocation.amount or Decimal(0), balance)
    return total


def allocated_amount(
    allocations: Iterable[Allocation],
    asset: Asset,
    rules: AllocationRules = DEFAULT_RULES,
    exclude_beneficiary: Optional[str] = None,
) -> Decimal:
    """Return the quantity of ``asset`` already committed, in human units."""

    balance = asset.human_balance(rules.default_decimals)
    total = Decimal(0)
    for allocation in _for_asset(allocations, asset.id, exclude_beneficiary):
        if allocation.kind == AMOUNT:
            total += allocation.amount or Decimal(0)
        else:
            total += percentage_to_amount(allocation.percentage or 0.0, balance)
    return total


def remaining_percentage(
    allocations: Iterable[Allocation],
    asset: Asset,
    rules: AllocationRules = DEFAULT_RULES,
    exclude_beneficiary: Optional[str] = None,
) -> float:
    used = allocated_percentage(allocations, asset, rules, exclude_beneficiary)
    return max(0.0, FULL_SHARE - used)


def remaining_amount(
    allocations: Iterable[Allocation],
    asset: Asset,
    rules: AllocationRules = DEFAULT_RULES,
    exclude_beneficiary: Optional[str] = None,
) -> Decimal:
    balance = asset.human_balance(rules.default_decimals)
    used = allocated_amount(allocations, asset, rules, exclude_beneficiary)
    return max(Decimal(0), balance - used)


def _beneficiary_label(beneficiary_id: str, beneficiaries: Mapping[str, Beneficiary]) -> str:
    beneficiary = beneficiaries.get(beneficiary_id)
    return beneficiary.label if beneficiary else beneficiary_id


def _check_quantity(candidate: Allocation) -> Optional[Decision]:
    if candidate.kind == PERCENTAGE:
        value = candidate.percentage
        if value is None or math.isnan(value) or math.isinf(value):
            return Decision.reject(RejectionCategory.INVALID_QUANTITY, "Please enter a valid percentage.")
        if value <= 0:
            return Decision.reject(
                RejectionCategory.INVALID_QUANTITY, "Please enter a valid positive number."
            )
        return None
    if candidate.kind == AMOUNT:
        amount = candidate.amount
        if amount is None or not amount.is_finite():
            return Decision.reject(RejectionCategory.INVALID_QUANTITY, "Please enter a valid amount.")
        if amount <= 0:
            return Decision.reject(
                RejectionCategory.INVALID_QUANTITY, "Please enter a valid positive number."
            )
        return None
    return Decision.reject(
        RejectionCategory.INVALID_QUANTITY,
        f"Unknown allocation type {candidate.kind!r}; expected percentage or amount.",
    )


def validate(
    allocations: Sequence[Allocation],
    asset: Asset,
    candidate: Allocation,
    beneficiaries: Iterable[Beneficiary],
    rules: AllocationRules = DEFAULT_RULES,
) -> Decision:
    """Decide whether ``candidate`` may be stored alongside ``allocations``.

    An existing allocation for the same ``(asset, beneficiary)`` pair is
    ignored when computing capacity because the candidate replaces it.
    """

    by_id = {beneficiary.id: beneficiary for beneficiary in beneficiaries}
    if candidate.beneficiary_id not in by_id:
        return Decision.reject(
            RejectionCategory.UNKNOWN_REFERENCE,
            f"Beneficiary {candidate.beneficiary_id!r} does not exist.",
        )
    if candidate.asset_id != asset.id:
        return Decision.reject(
            RejectionCategory.UNKNOWN_REFERENCE,
            f"Allocation refers to asset {candidate.asset_id!r}, not {asset.id!r}.",
        )

    invalid = _check_quantity(candidate)
    if invalid is not None:
        return invalid

    if is_indivisible(asset, rules):
        for existing in allocations:
            if existing.asset_id == asset.id and existing.beneficiary_id != candidate.beneficiary_id:
                owner = _beneficiary_label(existing.beneficiary_id, by_id)
                return Decision.reject(
                    RejectionCategory.INDIVISIBLE_CONFLICT,
                    f"{asset.label} is already allocated to {owner}. "
                    "Non-fungible assets cannot be split between beneficiaries.",
                )
        return Decision.accept(Allocation.of_percentage(asset.id, candidate.beneficiary_id, FULL_SHARE))

    if candidate.kind == PERCENTAGE:
        requested = float(candidate.percentage or 0.0)
        existing = allocated_percentage(allocations, asset, rules, candidate.beneficiary_id)
        available = max(0.0, FULL_SHARE - existing)
        if requested > FULL_SHARE + _FLOAT_TOLERANCE:
            return Decision.reject(
                RejectionCategory.OVER_ALLOCATION, "Percentage cannot exceed 100%.", available
            )
        if existing + requested > FULL_SHARE + _FLOAT_TOLERANCE:
            return Decision.reject(
                RejectionCategory.OVER_ALLOCATION,
                f"Only {format_percent(available)} of {asset.label} is left to allocate.",
                available,
            )
        return Decision.accept(candidate)

    requested_amount = candidate.amount or Decimal(0)
    balance = asset.human_balance(rules.default_decimals)
    existing_amount = allocated_amount(allocations, asset, rules, candidate.beneficiary_id)
    available_amount = max(Decimal(0), balance - existing_amount)
    if requested_amount > balance:
        return Decision.reject(
            RejectionCategory.OVER_ALLOCATION,
            f"Amount cannot exceed available balance for {asset.label}: {format_amount(balance)}",
            available_amount,
        )
    if existing_amount + requested_amount > balance:
        return Decision.reject(
            RejectionCategory.OVER_ALLOCATION,
            f"Only {format_amount(available_amount)} {asset.label} is left to allocate.",
            available_amount,
        )
    return Decision.accept(candidate)


__all__ = [
    "Decision",
    "Rejection",
    "RejectionCategory",
    "allocated_amount",
    "allocated_percentage",
    "format_amount",
    "format_percent",
    "parse_quantity",
    "percentage_to_amount",
    "remaining_amount",
    "remaining_percentage",
    "validate",
]
