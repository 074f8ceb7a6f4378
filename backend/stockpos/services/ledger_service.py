# Overview: Service-layer operations for the stock ledger; applies adjustments to product buckets.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..errors import ConcurrencyConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Product, StockAdjustment, User
from . import stock_rules
from .adjustment_validator import AdjustmentRequest, check_against_product, validate_request
from .concurrency import lock_for_update, run_with_retry
from .stock_rules import StockLevels
"""
Stock Ledger Invariants (authoritative)

- stock_adjustments is append-only; rows are never updated or deleted.
- Each adjustment changes exactly one product's buckets, in the same DB
  transaction as the adjustment insert. Callers commit; on any error the
  session is rolled back and neither the row nor the counters persist.
- Counters are written as `bucket = bucket + delta` in one conditional UPDATE,
  guarded on the version_id read at validation time and on every resulting
  bucket being >= 0. A client-computed "new value" is never written.
- A guard miss raises ConcurrencyConflictError; public entry points retry
  once with fresh counters.
- Product buckets are a cache: replaying a product's adjustments in id order
  from zero reproduces them exactly.
"""


# Types a cashier may record directly; everything else is admin-only.
CASHIER_ADJUSTMENT_TYPES = frozenset({stock_rules.RETURN, stock_rules.REJECT})

# Types only appended by their own workflows (sales_service), never directly.
WORKFLOW_ADJUSTMENT_TYPES = frozenset({stock_rules.SALE})


def get_product_or_404(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def require_actor_may_adjust(actor: User, adjustment_type: str) -> None:
    if not actor.is_active:
        raise PermissionDeniedError(f"User {actor.id} is inactive")
    if actor.is_admin:
        return
    if adjustment_type not in CASHIER_ADJUSTMENT_TYPES:
        raise PermissionDeniedError(f"Only admins may record {adjustment_type} adjustments")


def _apply_counter_deltas(product: Product, expected_version: int, delta: StockLevels) -> None:
    """
    Atomically add delta to the product's buckets.

    The UPDATE only matches while version_id still equals expected_version and
    every drawn bucket stays non-negative; anything else is a lost race.
    """
    conditions = [Product.id == product.id, Product.version_id == expected_version]
    values = {"version_id": Product.version_id + 1}
    for bucket, amount in delta.items():
        if amount == 0:
            continue
        column = getattr(Product, bucket)
        values[bucket] = column + amount
        if amount < 0:
            conditions.append(column + amount >= 0)

    stmt = (
        update(Product)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"Stock for product {product.id} changed during the update; retry with fresh counters"
        )
    db.session.refresh(product)


def append_adjustment(
    *,
    product_id: int,
    request: AdjustmentRequest,
    created_by_user_id: Optional[int] = None,
    distribution_id: Optional[int] = None,
) -> StockAdjustment:
    """
    Apply one validated request and append its ledger row (no commit, no retry).

    Used inside larger units of work such as distribution creation, where the
    caller owns the transaction and the retry.
    """
    product = get_product_or_404(product_id, lock=True)
    check_against_product(product, request)

    _apply_counter_deltas(product, product.version_id, request.deltas())

    adjustment = StockAdjustment(
        product_id=product.id,
        adjustment_type=request.adjustment_type,
        quantity=request.quantity,
        source_location=request.source_location,
        target_location=request.target_location,
        condition=request.condition,
        reason=request.reason,
        notes=request.notes,
        reversal_of_id=request.reversal_of_id,
        distribution_id=distribution_id,
        created_by_user_id=created_by_user_id,
    )
    db.session.add(adjustment)
    db.session.flush()  # ensures adjustment.id is assigned without committing

    current_app.logger.info(
        "Applied %s%s adjustment %s: product=%s qty=%s stock=%s",
        request.adjustment_type,
        " reversal" if request.is_reversal else "",
        adjustment.id,
        product.id,
        request.quantity,
        product.stock_dict(),
    )
    return adjustment


def create_stock_adjustment(
    *,
    product_id: int,
    adjustment_type: str,
    quantity,
    source_location: Optional[str] = None,
    target_location: Optional[str] = None,
    condition: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    created_by_user_id: Optional[int] = None,
) -> StockAdjustment:
    """
    Validate and apply a stock adjustment.

    Args:
        product_id: Product whose buckets move
        adjustment_type: production, distribution, return, reject or disposal
            (sales go through sales_service.record_sale)
        quantity: Positive integer
        source_location / target_location: Must be the type's legal route
            (defaults to it when omitted)
        condition: Must be compatible with the type (defaults per type)
        reason: Reason code for returns and rejects (optional)
        notes: Free text
        created_by_user_id: Acting user; role-checked when given

    Returns:
        StockAdjustment: The appended ledger row (flushed, not committed)

    Raises:
        ValidationError, InvalidTransitionError, InsufficientStockError,
        NotFoundError, PermissionDeniedError, ConcurrencyConflictError
    """
    request = validate_request(
        adjustment_type=adjustment_type,
        quantity=quantity,
        source_location=source_location,
        target_location=target_location,
        condition=condition,
        reason=reason,
        notes=notes,
    )
    if request.adjustment_type in WORKFLOW_ADJUSTMENT_TYPES:
        raise ValidationError(f"{request.adjustment_type} adjustments are recorded through /api/sales")

    if created_by_user_id is not None:
        require_actor_may_adjust(get_user_or_404(created_by_user_id), request.adjustment_type)

    def _op():
        return append_adjustment(
            product_id=product_id,
            request=request,
            created_by_user_id=created_by_user_id,
        )

    return run_with_retry(_op)


def reverse_adjustment(
    *,
    adjustment: StockAdjustment,
    created_by_user_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> StockAdjustment:
    """
    Append a compensating entry that undoes adjustment's deltas (no commit, no retry).

    The reversal keeps the original type, quantity and condition, travels the
    route backwards, and is linked through reversal_of_id.
    """
    request = validate_request(
        adjustment_type=adjustment.adjustment_type,
        quantity=adjustment.quantity,
        condition=adjustment.condition,
        reason=adjustment.reason,
        notes=notes,
        reversal_of_id=adjustment.id,
    )
    return append_adjustment(
        product_id=adjustment.product_id,
        request=request,
        created_by_user_id=created_by_user_id,
        distribution_id=adjustment.distribution_id,
    )


def get_product_stock(product_id: int) -> dict:
    product = get_product_or_404(product_id)
    return product.stock_dict()


def get_adjustment(adjustment_id: int) -> StockAdjustment:
    adjustment = db.session.get(StockAdjustment, adjustment_id)
    if adjustment is None:
        raise NotFoundError(f"Stock adjustment {adjustment_id} not found")
    return adjustment


def list_stock_adjustments(
    *,
    product_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    created_by_user_id: Optional[int] = None,
    distribution_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[StockAdjustment]:
    """
    List adjustments newest first (created_at, then id, descending).

    date_from is inclusive, date_to is exclusive.
    """
    query = db.session.query(StockAdjustment)

    if product_id is not None:
        query = query.filter(StockAdjustment.product_id == product_id)
    if adjustment_type is not None:
        query = query.filter(StockAdjustment.adjustment_type == adjustment_type)
    if created_by_user_id is not None:
        query = query.filter(StockAdjustment.created_by_user_id == created_by_user_id)
    if distribution_id is not None:
        query = query.filter(StockAdjustment.distribution_id == distribution_id)
    if date_from is not None:
        query = query.filter(StockAdjustment.created_at >= date_from)
    if date_to is not None:
        query = query.filter(StockAdjustment.created_at < date_to)

    query = query.order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def replay_product_stock(product_id: int) -> StockLevels:
    """Recompute a product's buckets from its adjustments, oldest first."""
    get_product_or_404(product_id)
    adjustments = (
        db.session.query(StockAdjustment)
        .filter(StockAdjustment.product_id == product_id)
        .order_by(StockAdjustment.id.asc())
        .all()
    )
    return stock_rules.replay(adjustments)


def verify_product_stock(product_id: int) -> dict:
    product = get_product_or_404(product_id)
    replayed = replay_product_stock(product_id)
    stored = StockLevels.of(product)
    return {
        "product_id": product.id,
        "stored": stored.to_dict(),
        "replayed": replayed.to_dict(),
        "consistent": stored == replayed,
    }


def rebuild_product_stock(product_id: int) -> StockLevels:
    """
    Overwrite a product's cached buckets with the replayed ledger values.

    Maintenance only; normal operation never needs it. The caller commits.
    """
    def _op():
        product = get_product_or_404(product_id, lock=True)
        replayed = replay_product_stock(product_id)
        stored = StockLevels.of(product)
        if stored == replayed:
            return replayed
        _apply_counter_deltas(product, product.version_id, replayed + (-stored))
        current_app.logger.warning(
            "Rebuilt stock for product %s: %s -> %s",
            product_id,
            stored.to_dict(),
            replayed.to_dict(),
        )
        return replayed

    return run_with_retry(_op)
