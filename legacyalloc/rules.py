"""Configuration for the allocation engine.

The simple and extended variants of the planner only ever differed in a few
rules: which asset types are treated as unsplittable, how shares are rounded
and how much undo history is kept. They are gathered here so both variants can
run the same engine.

``AllocationRules`` can be stored in the ``settings`` table of
:class:`legacyalloc.database.Database` through :meth:`AllocationRules.to_mapping`
and read back with :meth:`AllocationRules.from_mapping`.
"""
from __future__ import annotations

import decimal
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, FrozenSet, Mapping, Optional

from .models import FULL_SHARE

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_DECIMALS = 18
NFT_TYPES: FrozenSet[str] = frozenset({"erc721", "erc1155", "nft"})
INSCRIPTION_TYPES: FrozenSet[str] = frozenset({"ethscription", "ordinal"})

_ROUNDING_MODES = {
    "half_even": decimal.ROUND_HALF_EVEN,
    "half_up": decimal.ROUND_HALF_UP,
    "down": decimal.ROUND_DOWN,
}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class AllocationRules:
    """Tunable behaviour of the allocation engine."""

    history_limit: int = DEFAULT_HISTORY_LIMIT
    indivisible_types: FrozenSet[str] = NFT_TYPES
    inscriptions_indivisible: bool = True
    default_decimals: int = DEFAULT_DECIMALS
    percentage_places: int = 2
    rounding: str = "half_even"
    reconcile_on_asset_change: bool = True

    def __post_init__(self) -> None:
        if self.history_limit < 0:
            raise ValueError("History limit cannot be negative.")
        if self.default_decimals < 0:
            raise ValueError("Default decimals cannot be negative.")
        if self.percentage_places < 0:
            raise ValueError("Percentage places cannot be negative.")
        if self.rounding not in _ROUNDING_MODES:
            choices = ", ".join(sorted(_ROUNDING_MODES))
            raise ValueError(f"Unknown rounding mode {self.rounding!r}; expected one of {choices}.")

    @property
    def unsplittable_types(self) -> FrozenSet[str]:
        """Return every lower-case type tag that must go to a single owner."""
        types = {value.lower() for value in self.indivisible_types}
        if self.inscriptions_indivisible:
            types |= INSCRIPTION_TYPES
        return frozenset(types)

    def round_share(self, value: float, rounding: Optional[str] = None) -> float:
        """Round a percentage to the configured places.

        ``rounding`` overrides the configured mode for a single call.
        """
        mode = _ROUNDING_MODES[rounding or self.rounding]
        quantum = Decimal(1).scaleb(-self.percentage_places)
        rounded = Decimal(repr(float(value))).quantize(quantum, rounding=mode)
        return float(rounded)

    # ------------------------------------------------------------------
    # Settings round trip
    # ------------------------------------------------------------------
    def to_mapping(self) -> Dict[str, str]:
        return {
            "history_limit": str(self.history_limit),
            "indivisible_types": ",".join(sorted(self.indivisible_types)),
            "inscriptions_indivisible": "true" if self.inscriptions_indivisible else "false",
            "default_decimals": str(self.default_decimals),
            "percentage_places": str(self.percentage_places),
            "rounding": self.rounding,
            "reconcile_on_asset_change": "true" if self.reconcile_on_asset_change else "false",
        }

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Optional[str]]) -> "AllocationRules":
        """Build rules from stored string settings, keeping defaults for missing keys."""

        defaults = cls()
        values: Dict[str, object] = {}

        for key in ("history_limit", "default_decimals", "percentage_places"):
            raw = settings.get(key)
            if raw is None or not str(raw).strip():
                continue
            try:
                values[key] = int(str(raw).strip())
            except ValueError as exc:
                raise ValueError(f"Setting {key!r} must be an integer, got {raw!r}") from exc

        for key in ("inscriptions_indivisible", "reconcile_on_asset_change"):
            raw = settings.get(key)
            if raw is None or not str(raw).strip():
                continue
            values[key] = _parse_flag(key, str(raw))

        raw_types = settings.get("indivisible_types")
        if raw_types is not None and str(raw_types).strip():
            values["indivisible_types"] = frozenset(
                item.strip().lower() for item in str(raw_types).split(",") if item.strip()
            )

        raw_rounding = settings.get("rounding")
        if raw_rounding is not None and str(raw_rounding).strip():
            values["rounding"] = str(raw_rounding).strip().lower()

        return replace(defaults, **values)


def _parse_flag(key: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Setting {key!r} must be a boolean flag, got {raw!r}")


DEFAULT_RULES = AllocationRules()

# The simple planner variant let ethscriptions and ordinals be split like tokens.
SIMPLE_RULES = AllocationRules(inscriptions_indivisible=False)


def default_percentage(beneficiary_count: int, rules: AllocationRules = DEFAULT_RULES) -> float:
    """Return the suggested per-beneficiary share: 1 -> 100, 2 -> 50, 3 -> 33.33."""

    if beneficiary_count <= 0:
        return 0.0
    return rules.round_share(FULL_SHARE / beneficiary_count)


__all__ = [
    "AllocationRules",
    "DEFAULT_DECIMALS",
    "DEFAULT_HISTORY_LIMIT",
    "DEFAULT_RULES",
    "INSCRIPTION_TYPES",
    "NFT_TYPES",
    "SIMPLE_RULES",
    "default_percentage",
]
