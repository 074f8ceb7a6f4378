# backend/stockpos/services/sales_service.py
"""
Sales service.

WHY: A checkout is a document (who sold what, at which price, paid how) and
a stock movement. The document lives in sales/sale_items; the movement goes
through the ledger as one `sale` adjustment per item, drawing the units
cashiers hold (distribution_stock) and handing them to the customer.

CONSERVATION: a sale removes its quantity from the system, like disposal.
Voiding appends a reversal per item, which puts the units back into
distribution_stock; the sale row stays with status VOIDED.

Prices are copied from the product at checkout so later price changes never
rewrite past revenue.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..errors import InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Sale, SaleItem, User
from ..models.sales import PAYMENT_METHODS, SALE_COMPLETED, SALE_STATUSES, SALE_VOIDED
from ..validation import coerce_int
from stockpos.time_utils import utcnow
from . import stock_rules
from .adjustment_validator import validate_quantity, validate_request
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_adjustment, get_product_or_404, get_user_or_404, reverse_adjustment


MAX_SALE_ITEMS = 100
MAX_TAX_BPS = 10_000


def _require_seller(actor: User) -> None:
    if not actor.is_active:
        raise PermissionDeniedError(f"User {actor.id} is inactive")


def _normalize_items(items) -> dict[int, int]:
    """
    Validate [{product_id, quantity}, ...] and merge repeated products.

    Returns {product_id: quantity} in ascending product id order so products
    are always locked in the same order.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    if len(items) > MAX_SALE_ITEMS:
        raise ValidationError(f"A sale may have at most {MAX_SALE_ITEMS} items")

    merged: dict[int, int] = {}
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if "product_id" not in item:
            raise ValidationError(f"items[{index}] is missing product_id")
        product_id = coerce_int("product_id", item["product_id"])
        quantity = validate_quantity(item.get("quantity"))
        merged[product_id] = merged.get(product_id, 0) + quantity
    return dict(sorted(merged.items()))


def compute_tax_cents(subtotal_cents: int, tax_bps: int) -> int:
    """Tax in cents for a rate in basis points, rounded half up."""
    return (subtotal_cents * tax_bps + 5_000) // 10_000


def record_sale(
    *,
    cashier_id: int,
    items,
    payment_method: str = "cash",
    tax_bps: int = 0,
    notes: Optional[str] = None,
) -> Sale:
    """
    Record a completed sale and draw its units from distribution_stock.

    Args:
        cashier_id: Selling user (active cashier or admin)
        items: [{"product_id": int, "quantity": int}, ...]
        payment_method: cash, card or transfer
        tax_bps: Tax rate in basis points applied to the subtotal
        notes: Optional free text

    Returns:
        Sale: The sale with its items (flushed, not committed)

    Raises:
        ValidationError, NotFoundError, PermissionDeniedError,
        InsufficientStockError, ConcurrencyConflictError
    """
    lines = _normalize_items(items)

    if not isinstance(payment_method, str) or payment_method.strip().lower() not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    payment_method = payment_method.strip().lower()

    tax_bps = coerce_int("tax_bps", tax_bps)
    if not 0 <= tax_bps <= MAX_TAX_BPS:
        raise ValidationError(f"tax_bps must be between 0 and {MAX_TAX_BPS}")

    if notes is not None:
        notes = str(notes).strip() or None

    seller = get_user_or_404(cashier_id)
    _require_seller(seller)

    def _op():
        sale = Sale(
            cashier_id=seller.id,
            status=SALE_COMPLETED,
            payment_method=payment_method,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()  # Get ID

        subtotal = 0
        for product_id, quantity in lines.items():
            product = get_product_or_404(product_id)
            if not product.is_active:
                raise ValidationError(f"Product {product_id} is inactive and cannot be sold")

            request = validate_request(
                adjustment_type=stock_rules.SALE,
                quantity=quantity,
                notes=f"Sale #{sale.id}",
            )
            # Short distribution_stock raises here; the caller's rollback discards the sale
            adjustment = append_adjustment(
                product_id=product.id,
                request=request,
                created_by_user_id=seller.id,
            )

            line_total = quantity * product.price_cents
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.price_cents,
                line_total_cents=line_total,
                adjustment_id=adjustment.id,
            ))
            subtotal += line_total

        sale.subtotal_cents = subtotal
        sale.tax_cents = compute_tax_cents(subtotal, tax_bps)
        sale.total_cents = subtotal + sale.tax_cents
        db.session.flush()
        db.session.expire(sale, ["items"])

        current_app.logger.info(
            "Recorded sale %s: cashier=%s items=%s total=%s",
            sale.id,
            seller.id,
            len(lines),
            sale.total_cents,
        )
        return sale

    return run_with_retry(_op)


def _get_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def void_sale(*, sale_id: int, actor_id: int, reason: Optional[str] = None) -> Sale:
    """
    Void a completed sale and return its units to distribution_stock.

    Appends one reversal per item, linked through reversal_of_id.

    Raises:
        InvalidStateError: sale is already voided
        PermissionDeniedError: actor is not an active admin
    """
    actor = get_user_or_404(actor_id)
    if not actor.is_active or not actor.is_admin:
        raise PermissionDeniedError("Only admins may void a sale")

    def _op():
        sale = _get_sale(sale_id, lock=True)
        if sale.status != SALE_COMPLETED:
            raise InvalidStateError(f"Sale {sale.id} is already {sale.status}")

        for item in sale.items:
            reverse_adjustment(
                adjustment=item.adjustment,
                created_by_user_id=actor.id,
                notes=f"Void sale #{sale.id}" + (f": {reason}" if reason else ""),
            )

        sale.status = SALE_VOIDED
        sale.voided_at = utcnow()
        sale.voided_by_user_id = actor.id
        sale.void_reason = reason
        db.session.flush()

        current_app.logger.info("Voided sale %s by user %s", sale.id, actor.id)
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    return _get_sale(sale_id)


def list_sales(
    *,
    cashier_id: Optional[int] = None,
    status: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> list[Sale]:
    """List sales newest first. date_from is inclusive, date_to is exclusive."""
    query = db.session.query(Sale)

    if cashier_id is not None:
        query = query.filter(Sale.cashier_id == cashier_id)
    if status is not None:
        if status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        query = query.filter(Sale.status == status)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at < date_to)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()
