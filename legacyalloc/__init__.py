"""Inheritance allocation engine: who receives which share of each asset."""
from .allocation import Outcome
from .classifier import classify, is_indivisible
from .database import Database
from .engine import AllocationEngine
from .models import AMOUNT, DIVISIBLE, INDIVISIBLE, PERCENTAGE, Allocation, Asset, Beneficiary
from .rules import DEFAULT_RULES, SIMPLE_RULES, AllocationRules, default_percentage
from .validation import Rejection, RejectionCategory, validate

__all__ = [
    "AMOUNT",
    "Allocation",
    "AllocationEngine",
    "AllocationRules",
    "Asset",
    "Beneficiary",
    "DEFAULT_RULES",
    "DIVISIBLE",
    "Database",
    "INDIVISIBLE",
    "Outcome",
    "PERCENTAGE",
    "Rejection",
    "RejectionCategory",
    "SIMPLE_RULES",
    "classify",
    "default_percentage",
    "is_indivisible",
    "validate",
]
