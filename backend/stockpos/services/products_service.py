# backend/stockpos/services/products_service.py
"""
Products Service

Catalog registration, editing and listing. Stock buckets are never written
here: initial stock is recorded as a production adjustment through the ledger,
in the same transaction as the product insert.
"""
from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, ValidationError
from ..extensions import db
from ..models import Product
from . import stock_rules
from .adjustment_validator import validate_request
from .concurrency import run_with_retry
from .ledger_service import append_adjustment, get_product_or_404

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "category", "description", "price_cents", "is_active"}

# stock_filter values accepted by list_products
STOCK_FILTERS = ("all", "low", "out", "returned", "rejected", "distributed")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_sku_available(sku: str, *, exclude_id: Optional[int] = None) -> None:
    query = db.session.query(Product).filter(Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku} already exists.")


def create_product(
    *,
    patch: dict,
    created_by_user_id: Optional[int] = None,
    initial_stock: int = 0,
) -> Product:
    """
    Register a product from a validated patch dict.

    A positive initial_stock is recorded as a production adjustment
    (production -> storage, condition good).

    Raises:
        ConflictError: If the SKU already exists
        ValidationError: If initial_stock is negative
    """
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")
    if initial_stock < 0:
        raise ValidationError("initial_stock must be >= 0")

    def _op():
        _ensure_sku_available(sku)

        p = Product()
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()  # ensure p.id exists before the ledger append

        if initial_stock > 0:
            request = validate_request(
                adjustment_type=stock_rules.PRODUCTION,
                quantity=initial_stock,
                notes="Initial stock",
            )
            append_adjustment(
                product_id=p.id,
                request=request,
                created_by_user_id=created_by_user_id,
            )

        current_app.logger.info("Registered product %s sku=%s initial_stock=%s", p.id, p.sku, initial_stock)
        return p

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict) -> Product:
    """
    Update catalog fields of a product.

    Raises:
        NotFoundError: If the product does not exist
        ConflictError: If the new SKU already exists
    """
    p = get_product_or_404(product_id)

    if "sku" in patch and patch["sku"] != p.sku:
        _ensure_sku_available(patch["sku"], exclude_id=p.id)

    apply_product_patch(p, patch)
    db.session.flush()
    return p


def get_product(product_id: int) -> Product:
    return get_product_or_404(product_id)


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category != "")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [r[0] for r in rows]


def list_products(
    *,
    search: Optional[str] = None,
    category: Optional[str] = None,
    stock_filter: str = "all",
    include_inactive: bool = False,
    low_stock_threshold: int = 10,
    page: Optional[int] = None,
    per_page: Optional[int] = None,
    max_per_page: int = 100,
) -> dict:
    """
    Product listing with optional filters and pagination.

    stock_filter:
        all: no stock filter
        low: storage_stock below low_stock_threshold
        out: storage_stock == 0
        returned: returned_stock > 0
        rejected: rejected_stock > 0
        distributed: distribution_stock > 0 (what cashiers hold)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    if stock_filter not in STOCK_FILTERS:
        raise ValidationError(f"stock_filter must be one of: {', '.join(STOCK_FILTERS)}")

    base_query = db.session.query(Product)

    if not include_inactive:
        base_query = base_query.filter(Product.is_active.is_(True))

    if search:
        pattern = f"%{search.strip()}%"
        base_query = base_query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    if category:
        base_query = base_query.filter(Product.category == category)

    if stock_filter == "low":
        base_query = base_query.filter(Product.storage_stock < low_stock_threshold)
    elif stock_filter == "out":
        base_query = base_query.filter(Product.storage_stock == 0)
    elif stock_filter == "returned":
        base_query = base_query.filter(Product.returned_stock > 0)
    elif stock_filter == "rejected":
        base_query = base_query.filter(Product.rejected_stock > 0)
    elif stock_filter == "distributed":
        base_query = base_query.filter(Product.distribution_stock > 0)

    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    # If no pagination requested, return all items
    if page is None:
        products = base_query.all()
        return {
            "items": [p.to_dict() for p in products],
            "count": len(products),
        }

    per_page = min(per_page or 20, max_per_page)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
