"""Data models for the inheritance allocation engine."""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

PERCENTAGE = "percentage"
AMOUNT = "amount"
ALLOCATION_KINDS = (PERCENTAGE, AMOUNT)

DIVISIBLE = "divisible"
INDIVISIBLE = "indivisible"

FULL_SHARE = 100.0


@dataclass(frozen=True, slots=True)
class Asset:
    """A holding loaded from a connected wallet.

    ``balance`` is the integer magnitude in the asset's smallest unit, kept as
    a decimal string exactly as the wallet loader reports it. ``decimals`` may
    be missing for loaders that do not report it; callers then fall back to the
    configured default (see :class:`legacyalloc.rules.AllocationRules`).
    """

    id: str
    type: str
    balance: str = "0"
    decimals: Optional[int] = None
    chain: str = ""
    symbol: str = ""
    name: str = ""

    def human_balance(self, default_decimals: int = 18) -> Decimal:
        """Return the balance converted to a human-readable quantity."""

        decimals = self.decimals if self.decimals is not None else default_decimals
        try:
            raw = Decimal(str(self.balance).strip() or "0")
        except InvalidOperation:
            return Decimal(0)
        if not raw.is_finite() or raw < 0:
            return Decimal(0)
        return raw.scaleb(-max(int(decimals), 0))

    @property
    def label(self) -> str:
        """Return the string used to refer to the asset in messages."""
        return (self.symbol or self.name or self.id).strip()


@dataclass(frozen=True, slots=True)
class Beneficiary:
    """A person who receives a share of the estate."""

    id: str
    name: str
    wallet_address: str = ""

    @property
    def label(self) -> str:
        return (self.name or self.id).strip()


@dataclass(frozen=True, slots=True)
class Allocation:
    """Binds one asset to one beneficiary with a percentage or an amount."""

    asset_id: str
    beneficiary_id: str
    kind: str
    percentage: Optional[float] = None
    amount: Optional[Decimal] = None

    @classmethod
    def of_percentage(cls, asset_id: str, beneficiary_id: str, percentage: float) -> "Allocation":
        return cls(asset_id, beneficiary_id, PERCENTAGE, percentage=float(percentage))

    @classmethod
    def of_amount(cls, asset_id: str, beneficiary_id: str, amount: Decimal) -> "Allocation":
        return cls(asset_id, beneficiary_id, AMOUNT, amount=Decimal(amount))

    @property
    def key(self) -> Tuple[str, str]:
        return (self.asset_id, self.beneficiary_id)

    @property
    def is_percentage(self) -> bool:
        return self.kind == PERCENTAGE

    @property
    def share_value(self) -> float | Decimal:
        """Return the percentage or the amount, whichever the record carries."""
        if self.is_percentage:
            return self.percentage or 0.0
        return self.amount if self.amount is not None else Decimal(0)

    def with_beneficiary(self, beneficiary_id: str) -> "Allocation":
        return replace(self, beneficiary_id=beneficiary_id)

    def with_percentage(self, percentage: float) -> "Allocation":
        return replace(self, kind=PERCENTAGE, percentage=float(percentage), amount=None)

    def with_amount(self, amount: Decimal) -> "Allocation":
        return replace(self, kind=AMOUNT, percentage=None, amount=Decimal(amount))


AllocationList = Tuple[Allocation, ...]


__all__ = [
    "ALLOCATION_KINDS",
    "AMOUNT",
    "Allocation",
    "AllocationList",
    "Asset",
    "Beneficiary",
    "DIVISIBLE",
    "FULL_SHARE",
    "INDIVISIBLE",
    "PERCENTAGE",
]
