# Overview: Pure stock-flow rules; the transition table as plain functions, no database access.

"""
Stock-flow transition table (authoritative)

Every adjustment type maps to fixed bucket deltas:

    type          storage  distribution  returned  rejected
    production      +q         0            0         0
    distribution    -q        +q            0         0
    return           0        -q           +q         0
    reject           0        -q            0        +q
    disposal         0         0            0        -q
    sale             0        -q            0         0

Conservation:
- transfer types (distribution, return, reject) sum to zero
- production sums to +q (new stock entering the system)
- disposal and sale sum to -q (stock leaving the system)

Disposal draws from rejected_stock. Returned units stay sellable-in-waiting;
rejected units are the ones awaiting destruction. A sale draws the units a
cashier holds and hands them to the customer.

A reversal applies the exact negation of the original's deltas.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import InsufficientStockError, ValidationError


# Adjustment types
PRODUCTION = "production"
DISTRIBUTION = "distribution"
RETURN = "return"
REJECT = "reject"
DISPOSAL = "disposal"
SALE = "sale"

ADJUSTMENT_TYPES = (PRODUCTION, DISTRIBUTION, RETURN, REJECT, DISPOSAL, SALE)

# Locations
LOC_PRODUCTION = "production"
LOC_STORAGE = "storage"
LOC_CASHIER = "cashier"
LOC_DISPOSAL = "disposal"
LOC_CUSTOMER = "customer"

# Locations a forward (non-reversal) adjustment may name
SOURCE_LOCATIONS = (LOC_PRODUCTION, LOC_STORAGE, LOC_CASHIER)
TARGET_LOCATIONS = (LOC_STORAGE, LOC_CASHIER, LOC_DISPOSAL, LOC_CUSTOMER)

# Conditions
GOOD = "good"
DAMAGED = "damaged"
EXPIRED = "expired"
REJECTED = "rejected"

CONDITIONS = (GOOD, DAMAGED, EXPIRED, REJECTED)

# Buckets, in Product column order
STORAGE = "storage_stock"
DISTRIBUTED = "distribution_stock"
RETURNED = "returned_stock"
REJECTED_BUCKET = "rejected_stock"

BUCKETS = (STORAGE, DISTRIBUTED, RETURNED, REJECTED_BUCKET)


@dataclass(frozen=True)
class StockLevels:
    """Four bucket values. Used both for counters and for deltas."""
    storage_stock: int = 0
    distribution_stock: int = 0
    returned_stock: int = 0
    rejected_stock: int = 0

    def get(self, bucket: str) -> int:
        return getattr(self, bucket)

    def items(self):
        return [(b, getattr(self, b)) for b in BUCKETS]

    def total(self) -> int:
        return sum(v for _, v in self.items())

    def __add__(self, other: "StockLevels") -> "StockLevels":
        return StockLevels(*(a + b for (_, a), (_, b) in zip(self.items(), other.items())))

    def __neg__(self) -> "StockLevels":
        return StockLevels(*(-v for _, v in self.items()))

    def negative_buckets(self) -> list[str]:
        return [b for b, v in self.items() if v < 0]

    def to_dict(self) -> dict:
        return {
            "storage": self.storage_stock,
            "distribution": self.distribution_stock,
            "returned": self.returned_stock,
            "rejected": self.rejected_stock,
        }

    @classmethod
    def of(cls, product) -> "StockLevels":
        """Snapshot the counters of anything exposing the four bucket attributes."""
        return cls(*(int(getattr(product, b) or 0) for b in BUCKETS))


# Deltas are expressed for a unit quantity and scaled.
_UNIT_DELTAS = {
    PRODUCTION: StockLevels(storage_stock=1),
    DISTRIBUTION: StockLevels(storage_stock=-1, distribution_stock=1),
    RETURN: StockLevels(distribution_stock=-1, returned_stock=1),
    REJECT: StockLevels(distribution_stock=-1, rejected_stock=1),
    DISPOSAL: StockLevels(rejected_stock=-1),
    SALE: StockLevels(distribution_stock=-1),
}

# The single legal (source, target) route per type.
ROUTES = {
    PRODUCTION: (LOC_PRODUCTION, LOC_STORAGE),
    DISTRIBUTION: (LOC_STORAGE, LOC_CASHIER),
    RETURN: (LOC_CASHIER, LOC_STORAGE),
    REJECT: (LOC_CASHIER, LOC_STORAGE),
    DISPOSAL: (LOC_STORAGE, LOC_DISPOSAL),
    SALE: (LOC_CASHIER, LOC_CUSTOMER),
}

ALLOWED_CONDITIONS = {
    PRODUCTION: frozenset({GOOD}),
    DISTRIBUTION: frozenset({GOOD}),
    RETURN: frozenset({GOOD, DAMAGED, EXPIRED}),
    REJECT: frozenset({REJECTED}),
    DISPOSAL: frozenset({DAMAGED, EXPIRED, REJECTED}),
    SALE: frozenset({GOOD}),
}

DEFAULT_CONDITIONS = {
    PRODUCTION: GOOD,
    DISTRIBUTION: GOOD,
    RETURN: GOOD,
    REJECT: REJECTED,
    DISPOSAL: REJECTED,
    SALE: GOOD,
}

# Reason codes cashiers pick when sending units back; other types take none.
ALLOWED_REASONS = {
    RETURN: ("damaged", "expired", "quality_issue", "wrong_item", "other"),
    REJECT: ("quality_issue", "contaminated", "safety_concern", "other"),
}


def _require_type(adjustment_type: str) -> None:
    if adjustment_type not in _UNIT_DELTAS:
        raise ValidationError(
            f"adjustment_type must be one of: {', '.join(ADJUSTMENT_TYPES)}"
        )


def compute_deltas(adjustment_type: str, quantity: int) -> StockLevels:
    """
    Bucket deltas for one adjustment.

    quantity must already be a positive integer; the validator owns input
    coercion and range messages.
    """
    _require_type(adjustment_type)
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    unit = _UNIT_DELTAS[adjustment_type]
    return StockLevels(*(v * quantity for _, v in unit.items()))


def reverse_deltas(delta: StockLevels) -> StockLevels:
    return -delta


def deltas_for(adjustment) -> StockLevels:
    """Deltas of a stored adjustment row, honoring reversals."""
    delta = compute_deltas(adjustment.adjustment_type, adjustment.quantity)
    if getattr(adjustment, "reversal_of_id", None) is not None:
        return reverse_deltas(delta)
    return delta


def source_bucket(adjustment_type: str) -> str | None:
    """Bucket an adjustment draws from; None when it only adds stock."""
    _require_type(adjustment_type)
    for bucket, v in _UNIT_DELTAS[adjustment_type].items():
        if v < 0:
            return bucket
    return None


def route_for(adjustment_type: str, *, reversal: bool = False) -> tuple[str, str]:
    _require_type(adjustment_type)
    source, target = ROUTES[adjustment_type]
    if reversal:
        return target, source
    return source, target


def expected_net_change(adjustment_type: str, quantity: int) -> int:
    """Sum of deltas across buckets: 0 for transfers, +q production, -q disposal and sale."""
    if adjustment_type == PRODUCTION:
        return quantity
    if adjustment_type in (DISPOSAL, SALE):
        return -quantity
    return 0


def apply_deltas(levels: StockLevels, delta: StockLevels) -> StockLevels:
    """
    Add delta to levels, refusing any result below zero.

    Raises InsufficientStockError naming the first bucket that would go negative.
    """
    result = levels + delta
    negative = result.negative_buckets()
    if negative:
        bucket = negative[0]
        raise InsufficientStockError(bucket, levels.get(bucket), -delta.get(bucket))
    return result


def replay(adjustments: Iterable) -> StockLevels:
    """
    Fold adjustments (oldest first) from zero.

    Every prefix must stay non-negative; a violation means the ledger and the
    transition table disagree and raises InsufficientStockError.
    """
    levels = StockLevels()
    for adj in adjustments:
        levels = apply_deltas(levels, deltas_for(adj))
    return levels
