# Overview: Pre-checks for stock adjustment requests before they reach the ledger.

"""
Adjustment validation rules

Shape (no database access):
- quantity is a positive integer
- adjustment_type, source_location, target_location and condition are known values
- (source_location, target_location) is the route the type allows; a reversal
  travels its original route backwards
- condition is compatible with the type (reject implies condition=rejected)
- reason, when given, is one of the codes the type allows (returns and
  rejects only)
- notes fit in MAX_NOTES_LENGTH characters

Against the live product:
- the product accepts production only while active
- draws never exceed the bucket they draw from

The bucket check reads counters at validation time. A concurrent adjustment can
still race it; the ledger's guarded UPDATE is the final word.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..errors import InvalidTransitionError, ValidationError
from ..validation import coerce_int
from . import stock_rules
from .stock_rules import StockLevels


MAX_NOTES_LENGTH = 1000


@dataclass(frozen=True)
class AdjustmentRequest:
    """A shape-checked adjustment, ready to be applied to a product."""
    adjustment_type: str
    quantity: int
    source_location: str
    target_location: str
    condition: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    reversal_of_id: Optional[int] = None

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def deltas(self) -> StockLevels:
        delta = stock_rules.compute_deltas(self.adjustment_type, self.quantity)
        if self.is_reversal:
            return stock_rules.reverse_deltas(delta)
        return delta


def validate_quantity(value: Any) -> int:
    if value is None:
        raise ValidationError("quantity is required")
    qty = coerce_int("quantity", value)
    if qty <= 0:
        raise ValidationError("quantity must be a positive integer")
    return qty


def _require_choice(field: str, value: Any, choices: tuple[str, ...]) -> str:
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value.strip().lower()


def validate_route(adjustment_type: str, source_location: str, target_location: str, *, reversal: bool = False) -> None:
    expected = stock_rules.route_for(adjustment_type, reversal=reversal)
    if (source_location, target_location) != expected:
        raise InvalidTransitionError(
            f"Illegal route {source_location} -> {target_location} for {adjustment_type}"
            f"{' reversal' if reversal else ''}; expected {expected[0]} -> {expected[1]}"
        )


def validate_condition(adjustment_type: str, condition: str) -> None:
    allowed = stock_rules.ALLOWED_CONDITIONS[adjustment_type]
    if condition not in allowed:
        raise ValidationError(
            f"condition '{condition}' is not allowed for {adjustment_type}; "
            f"allowed: {', '.join(sorted(allowed))}"
        )


def validate_reason(adjustment_type: str, reason: Any) -> Optional[str]:
    if reason is None or (isinstance(reason, str) and not reason.strip()):
        return None
    allowed = stock_rules.ALLOWED_REASONS.get(adjustment_type)
    if not allowed:
        raise ValidationError(f"reason is not accepted for {adjustment_type} adjustments")
    return _require_choice("reason", reason, allowed)


def validate_request(
    *,
    adjustment_type: Any,
    quantity: Any,
    source_location: Any = None,
    target_location: Any = None,
    condition: Any = None,
    reason: Any = None,
    notes: Any = None,
    reversal_of_id: Optional[int] = None,
) -> AdjustmentRequest:
    """
    Shape-check an adjustment request.

    source_location, target_location and condition default to the type's
    canonical route and condition when omitted.
    """
    adj_type = _require_choice("adjustment_type", adjustment_type, stock_rules.ADJUSTMENT_TYPES)
    qty = validate_quantity(quantity)
    reversal = reversal_of_id is not None

    default_source, default_target = stock_rules.route_for(adj_type, reversal=reversal)
    source = default_source if source_location is None else _require_choice(
        "source_location", source_location, stock_rules.SOURCE_LOCATIONS
    )
    target = default_target if target_location is None else _require_choice(
        "target_location", target_location, stock_rules.TARGET_LOCATIONS
    )
    validate_route(adj_type, source, target, reversal=reversal)

    cond = stock_rules.DEFAULT_CONDITIONS[adj_type] if condition is None else _require_choice(
        "condition", condition, stock_rules.CONDITIONS
    )
    validate_condition(adj_type, cond)
    reason = validate_reason(adj_type, reason)

    if notes is not None:
        notes = str(notes).strip() or None
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes exceeds max length {MAX_NOTES_LENGTH}")

    return AdjustmentRequest(
        adjustment_type=adj_type,
        quantity=qty,
        source_location=source,
        target_location=target,
        condition=cond,
        reason=reason,
        notes=notes,
        reversal_of_id=reversal_of_id,
    )


def check_against_product(product, request: AdjustmentRequest) -> StockLevels:
    """
    Check a request against the product's live counters.

    Returns the counters the product would hold afterwards.
    Raises InsufficientStockError if any bucket would go negative.
    """
    if request.adjustment_type == stock_rules.PRODUCTION and not request.is_reversal and not product.is_active:
        raise ValidationError(f"Product {product.id} is inactive")
    return stock_rules.apply_deltas(StockLevels.of(product), request.deltas())
