# backend/stockpos/services/distribution_service.py
"""
Product distribution service.

WHY: Track batches of stock handed from storage to a specific cashier with
a forward-only status workflow, while the stock itself moves through the
ledger as a single `distribution` adjustment.

LIFECYCLE:
1. PENDING: Created by an admin; storage -> distribution applied immediately
2. DISTRIBUTED: Admin confirms the goods left storage
3. COMPLETED: Assigned cashier (or an admin) confirms receipt
4. CANCELLED: Admin cancelled while PENDING; a reversing adjustment restores
   storage and decrements distribution by the same quantity

No transition skips a state and nothing leaves COMPLETED or CANCELLED.
"""
from __future__ import annotations

from typing import Optional

from ..errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ..extensions import db
from ..models import ProductDistribution, User
from ..models.auth import ROLE_CASHIER
from stockpos.time_utils import utcnow
from . import stock_rules
from .adjustment_validator import validate_quantity, validate_request
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import (
    append_adjustment,
    get_product_or_404,
    get_user_or_404,
    reverse_adjustment,
)


# Distribution status constants
STATUS_PENDING = "pending"
STATUS_DISTRIBUTED = "distributed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

STATUSES = (STATUS_PENDING, STATUS_DISTRIBUTED, STATUS_COMPLETED, STATUS_CANCELLED)

# The only forward step from each state
NEXT_STATUS = {
    STATUS_PENDING: STATUS_DISTRIBUTED,
    STATUS_DISTRIBUTED: STATUS_COMPLETED,
}


def _require_admin(actor: User, action: str) -> None:
    if not actor.is_active or not actor.is_admin:
        raise PermissionDeniedError(f"Only admins may {action}")


def _get_distribution(distribution_id: int, *, lock: bool = False) -> ProductDistribution:
    query = db.session.query(ProductDistribution).filter_by(id=distribution_id)
    if lock:
        query = lock_for_update(query)
    distribution = query.first()
    if distribution is None:
        raise NotFoundError(f"Distribution {distribution_id} not found")
    return distribution


def create_distribution(
    *,
    product_id: int,
    quantity,
    cashier_id: int,
    distributed_by: int,
    notes: Optional[str] = None,
) -> ProductDistribution:
    """
    Hand stock from storage to a cashier (status: PENDING).

    Args:
        product_id: Product to distribute
        quantity: Positive integer, at most the product's storage_stock
        cashier_id: Receiving cashier (active user with role cashier)
        distributed_by: Admin creating the distribution
        notes: Optional free text

    Returns:
        ProductDistribution: The created distribution (flushed, not committed)

    Raises:
        ValidationError, NotFoundError, PermissionDeniedError,
        InsufficientStockError, ConcurrencyConflictError
    """
    qty = validate_quantity(quantity)

    admin = get_user_or_404(distributed_by)
    _require_admin(admin, "distribute stock")

    cashier = get_user_or_404(cashier_id)
    if cashier.role != ROLE_CASHIER:
        raise ValidationError(f"User {cashier_id} is not a cashier")
    if not cashier.is_active:
        raise ValidationError(f"Cashier {cashier_id} is inactive")

    def _op():
        product = get_product_or_404(product_id)

        distribution = ProductDistribution(
            product_id=product.id,
            quantity=qty,
            cashier_id=cashier.id,
            distributed_by_user_id=admin.id,
            status=STATUS_PENDING,
            notes=notes,
        )
        db.session.add(distribution)
        db.session.flush()  # Get ID

        request = validate_request(
            adjustment_type=stock_rules.DISTRIBUTION,
            quantity=qty,
            notes=f"Distribution #{distribution.id} to {cashier.username}",
        )
        # Short storage raises here; the caller's rollback discards the row above
        append_adjustment(
            product_id=product.id,
            request=request,
            created_by_user_id=admin.id,
            distribution_id=distribution.id,
        )
        db.session.expire(distribution, ["adjustments"])
        return distribution

    return run_with_retry(_op)


def advance_distribution(
    *,
    distribution_id: int,
    new_status: str,
    actor_id: int,
) -> ProductDistribution:
    """
    Move a distribution one step forward.

    pending -> distributed: admin only
    distributed -> completed: admin or the assigned cashier

    Raises:
        ValidationError: new_status is not a known status
        InvalidTransitionError: new_status is not the single next state
        PermissionDeniedError: actor may not perform this step
        NotFoundError: unknown distribution or actor
    """
    if new_status not in STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")

    actor = get_user_or_404(actor_id)

    def _op():
        distribution = _get_distribution(distribution_id, lock=True)

        expected = NEXT_STATUS.get(distribution.status)
        if new_status != expected:
            raise InvalidTransitionError(
                f"Cannot move distribution {distribution.id} from {distribution.status} to {new_status}"
            )

        if new_status == STATUS_DISTRIBUTED:
            _require_admin(actor, "mark a distribution as distributed")
            distribution.distributed_at = utcnow()
        else:
            is_assigned_cashier = actor.is_active and actor.id == distribution.cashier_id
            if not (is_assigned_cashier or (actor.is_active and actor.is_admin)):
                raise PermissionDeniedError(
                    "Only the assigned cashier or an admin may complete a distribution"
                )
            distribution.completed_at = utcnow()
            distribution.completed_by_user_id = actor.id

        distribution.status = new_status
        db.session.flush()
        return distribution

    return run_with_retry(_op)


def cancel_distribution(
    *,
    distribution_id: int,
    actor_id: int,
    reason: Optional[str] = None,
) -> ProductDistribution:
    """
    Cancel a PENDING distribution and reverse its stock movement.

    Appends a reversing adjustment (cashier -> storage) linked to the original
    distribution adjustment, so storage is restored and distribution_stock is
    decremented by the distributed quantity.

    Raises:
        InvalidStateError: distribution is not PENDING
        PermissionDeniedError: actor is not an admin
        InsufficientStockError: the distributed units were already returned or rejected
    """
    actor = get_user_or_404(actor_id)
    _require_admin(actor, "cancel a distribution")

    def _op():
        distribution = _get_distribution(distribution_id, lock=True)

        if distribution.status != STATUS_PENDING:
            raise InvalidStateError(
                f"Cannot cancel distribution {distribution.id} in {distribution.status} status. "
                f"Distributions can only be cancelled while pending."
            )

        original = distribution.adjustment
        if original is None:
            raise InvalidStateError(f"Distribution {distribution.id} has no stock adjustment to reverse")

        reverse_adjustment(
            adjustment=original,
            created_by_user_id=actor.id,
            notes=f"Cancel distribution #{distribution.id}" + (f": {reason}" if reason else ""),
        )

        distribution.status = STATUS_CANCELLED
        distribution.cancelled_at = utcnow()
        distribution.cancelled_by_user_id = actor.id
        distribution.cancellation_reason = reason
        db.session.flush()
        db.session.expire(distribution, ["adjustments"])
        return distribution

    return run_with_retry(_op)


def get_distribution(distribution_id: int) -> ProductDistribution:
    return _get_distribution(distribution_id)


def list_distributions(
    *,
    cashier_id: Optional[int] = None,
    status: Optional[str] = None,
    product_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[ProductDistribution]:
    """List distributions newest first with optional filters."""
    query = db.session.query(ProductDistribution)

    if cashier_id is not None:
        query = query.filter(ProductDistribution.cashier_id == cashier_id)
    if status is not None:
        if status not in STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(STATUSES)}")
        query = query.filter(ProductDistribution.status == status)
    if product_id is not None:
        query = query.filter(ProductDistribution.product_id == product_id)

    query = query.order_by(ProductDistribution.created_at.desc(), ProductDistribution.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()
