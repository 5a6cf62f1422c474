"""CSV and JSON export of allocation lists.

JSON documents carry the literal allocation records (field names as used by
the web front end) so that loading one reproduces exactly the list that was
saved. Amounts are written as strings to keep every digit.
"""
from __future__ import annotations

import csv
import io
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, TextIO, Tuple

from .models import ALLOCATION_KINDS, AMOUNT, PERCENTAGE, Allocation, AllocationList, Asset, Beneficiary
from .validation import parse_quantity

SNAPSHOT_VERSION = 1

CSV_COLUMNS = [
    "asset_id",
    "symbol",
    "chain",
    "beneficiary_id",
    "beneficiary",
    "type",
    "percentage",
    "amount",
]


def allocation_to_dict(allocation: Allocation) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "assetId": allocation.asset_id,
        "beneficiaryId": allocation.beneficiary_id,
        "type": allocation.kind,
    }
    if allocation.kind == PERCENTAGE:
        data["percentage"] = allocation.percentage
    else:
        data["amount"] = str(allocation.amount)
    return data


def allocation_from_dict(data: Mapping[str, Any]) -> Allocation:
    """Build an :class:`Allocation` from a stored record; raises ``ValueError`` if malformed."""

    try:
        asset_id = str(data["assetId"])
        beneficiary_id = str(data["beneficiaryId"])
        kind = data["type"]
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Allocation record is missing a field: {exc}") from exc
    if kind not in ALLOCATION_KINDS:
        raise ValueError(f"Unknown allocation type {kind!r}")
    if kind == PERCENTAGE:
        return Allocation.of_percentage(asset_id, beneficiary_id, float(parse_quantity(data.get("percentage"))))
    return Allocation.of_amount(asset_id, beneficiary_id, parse_quantity(data.get("amount")))


def dumps_snapshot(
    allocations: Iterable[Allocation],
    history: Optional[Iterable[Iterable[Allocation]]] = None,
) -> str:
    document: Dict[str, Any] = {
        "version": SNAPSHOT_VERSION,
        "allocations": [allocation_to_dict(allocation) for allocation in allocations],
    }
    if history is not None:
        document["history"] = [[allocation_to_dict(item) for item in snapshot] for snapshot in history]
    return json.dumps(document, indent=2)


def loads_snapshot(text: str) -> Tuple[AllocationList, List[AllocationList]]:
    """Parse a document written by :func:`dumps_snapshot` into (allocations, history)."""

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Snapshot is not valid JSON: {exc}") from exc
    if not isinstance(document, dict) or "allocations" not in document:
        raise ValueError("Snapshot does not contain an allocation list")
    version = document.get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"Unsupported snapshot version {version!r}")
    allocations = tuple(allocation_from_dict(item) for item in document["allocations"])
    history = [
        tuple(allocation_from_dict(item) for item in snapshot) for snapshot in document.get("history", [])
    ]
    return allocations, history


def write_csv(
    fh: TextIO,
    allocations: Iterable[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
) -> int:
    """Write one row per allocation and return the number of rows written."""

    by_asset = {asset.id: asset for asset in assets}
    names = {beneficiary.id: beneficiary.label for beneficiary in beneficiaries}
    writer = csv.writer(fh)
    writer.writerow(CSV_COLUMNS)
    count = 0
    for allocation in allocations:
        asset = by_asset.get(allocation.asset_id)
        writer.writerow(
            [
                allocation.asset_id,
                asset.symbol if asset else "",
                asset.chain if asset else "",
                allocation.beneficiary_id,
                names.get(allocation.beneficiary_id, ""),
                allocation.kind,
                f"{allocation.percentage:.4f}" if allocation.kind == PERCENTAGE else "",
                str(allocation.amount) if allocation.kind == AMOUNT else "",
            ]
        )
        count += 1
    return count


def allocations_to_csv(
    allocations: Iterable[Allocation],
    assets: Sequence[Asset],
    beneficiaries: Sequence[Beneficiary],
) -> str:
    buffer = io.StringIO()
    write_csv(buffer, allocations, assets, beneficiaries)
    return buffer.getvalue()


def read_csv(fh: TextIO) -> AllocationList:
    """Read allocations back from a file produced by :func:`write_csv`."""

    reader = csv.DictReader(fh)
    required = {"asset_id", "beneficiary_id", "type", "percentage", "amount"}
    if not required.issubset(reader.fieldnames or []):
        missing = required.difference(reader.fieldnames or [])
        raise ValueError(f"Missing columns in CSV: {', '.join(sorted(missing))}")
    allocations: List[Allocation] = []
    for row in reader:
        allocations.append(
            allocation_from_dict(
                {
                    "assetId": row["asset_id"].strip(),
                    "beneficiaryId": row["beneficiary_id"].strip(),
                    "type": row["type"].strip(),
                    "percentage": row["percentage"],
                    "amount": row["amount"],
                }
            )
        )
    return tuple(allocations)


__all__ = [
    "CSV_COLUMNS",
    "SNAPSHOT_VERSION",
    "allocation_from_dict",
    "allocation_to_dict",
    "allocations_to_csv",
    "dumps_snapshot",
    "loads_snapshot",
    "read_csv",
    "write_csv",
]
