"""Maps asset type tags onto the two allocation regimes."""
from __future__ import annotations

from .models import DIVISIBLE, INDIVISIBLE, Asset
from .rules import DEFAULT_RULES, AllocationRules


def classify(asset: Asset, rules: AllocationRules = DEFAULT_RULES) -> str:
    """Return :data:`INDIVISIBLE` for NFT-like assets and :data:`DIVISIBLE` otherwise.

    Unknown type tags are divisible: anything not explicitly NFT-like can be
    split between beneficiaries.
    """

    tag = (asset.type or "").strip().lower()
    if tag in rules.unsplittable_types:
        return INDIVISIBLE
    return DIVISIBLE


def is_indivisible(asset: Asset, rules: AllocationRules = DEFAULT_RULES) -> bool:
    return classify(asset, rules) == INDIVISIBLE


__all__ = ["classify", "is_indivisible"]
