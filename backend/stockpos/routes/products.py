# backend/stockpos/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require a caller identity.
- Read operations are open to every role
- Write operations and ledger verification require the admin role

Stock buckets are read-only here; they move only through /api/stock and
/api/distributions.
"""
from flask import Blueprint, request, g, current_app, jsonify

from ..decorators import require_user, require_role
from ..errors import StockError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.auth import ROLE_ADMIN
from ..services import ledger_service, products_service
from ..services.concurrency import commit_with_retry
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_initial_stock,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "category", "description", "price_cents", "is_active"},
    required_on_create={"sku", "name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_user
def list_products():
    """
    List products with optional filters and pagination.

    Query params:
    - search: matches name or SKU (case-insensitive substring)
    - category: exact category
    - stock_filter: all, low, out, returned, rejected, distributed
    - include_inactive: "true" to include deactivated products
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page
    """
    try:
        result = products_service.list_products(
            search=request.args.get("search") or None,
            category=request.args.get("category") or None,
            stock_filter=request.args.get("stock_filter", "all"),
            include_inactive=request.args.get("include_inactive", "").lower() == "true",
            low_stock_threshold=current_app.config["LOW_STOCK_THRESHOLD"],
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int) or current_app.config["DEFAULT_PAGE_SIZE"],
            max_per_page=current_app.config["MAX_PAGE_SIZE"],
        )
        return result, 200
    except StockError as e:
        return {"error": e.message}, e.status_code


@products_bp.get("/categories")
@require_user
def list_categories():
    return {"items": products_service.list_categories()}, 200


@products_bp.post("")
@require_user
@require_role(ROLE_ADMIN)
def create_product_route():
    """
    Register a new product.

    Request body: sku, name (required); category, description, price_cents,
    is_active (optional); initial_stock (optional, recorded as production).
    """
    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload"}, 400
    payload = dict(payload)

    try:
        initial_stock = parse_initial_stock(payload.pop("initial_stock", None))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.create_product(
            patch=patch,
            created_by_user_id=g.current_user.id,
            initial_stock=initial_stock,
        )
        commit_with_retry()
    except StockError as e:
        db.session.rollback()
        return {"error": e.message}, e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return {"error": f"Unexpected error: {e}"}, 500

    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_user
def get_product_route(product_id: int):
    try:
        return products_service.get_product(product_id).to_dict(), 200
    except StockError as e:
        return {"error": e.message}, e.status_code


@products_bp.put("/<int:product_id>")
@require_user
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    """Update catalog fields. Stock buckets cannot be written here."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        product = products_service.update_product(product_id=product_id, patch=patch)
        commit_with_retry()
    except StockError as e:
        db.session.rollback()
        return {"error": e.message}, e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return {"error": f"Unexpected error: {e}"}, 500

    return product.to_dict(), 200


@products_bp.get("/<int:product_id>/stock")
@require_user
def product_stock_route(product_id: int):
    """Current bucket counters: storage, distribution, returned, rejected."""
    try:
        return ledger_service.get_product_stock(product_id), 200
    except StockError as e:
        return {"error": e.message}, e.status_code


@products_bp.get("/<int:product_id>/stock/verify")
@require_user
@require_role(ROLE_ADMIN)
def verify_product_stock_route(product_id: int):
    """Compare stored counters with a replay of the product's adjustments."""
    try:
        return ledger_service.verify_product_stock(product_id), 200
    except StockError as e:
        return {"error": e.message}, e.status_code


@products_bp.get("/<int:product_id>/adjustments")
@require_user
def product_history_route(product_id: int):
    """Stock history for one product, newest first."""
    try:
        ledger_service.get_product_or_404(product_id)
        rows = ledger_service.list_stock_adjustments(product_id=product_id)
        return jsonify([r.to_dict() for r in rows]), 200
    except StockError as e:
        return {"error": e.message}, e.status_code
