# backend/stockpos/routes/sales.py
"""
Sales API routes.

SECURITY: All routes require a caller identity.
- Cashiers and admins may record sales; the seller is always the caller
- Cashiers list and read only their own sales
- Only admins void sales
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_role
from ..errors import StockError, ValidationError
from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..services import sales_service
from ..services.concurrency import commit_with_retry
from ..validation import parse_limit
from stockpos.time_utils import parse_date_window


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.route("", methods=["POST"])
@require_user
def create_sale():
    """
    Record a completed sale.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int}, ...],
        "payment_method": "cash" | "card" | "transfer" (optional, default cash),
        "notes": str (optional)
    }

    Tax is applied at the configured SALES_TAX_BPS rate.

    Returns:
        201: Sale recorded, units drawn from distribution stock
        400: Invalid request or inactive product
        404: Product not found
        409: Insufficient distribution stock, or lost concurrency race
    """
    data = request.get_json(silent=True) or {}

    try:
        if "items" not in data:
            raise ValidationError("Missing required field: items")

        sale = sales_service.record_sale(
            cashier_id=g.current_user.id,
            items=data["items"],
            payment_method=data.get("payment_method") or "cash",
            tax_bps=current_app.config["SALES_TAX_BPS"],
            notes=data.get("notes"),
        )

        commit_with_retry()

        return jsonify(sale.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@sales_bp.route("/<int:sale_id>/void", methods=["POST"])
@require_user
@require_role(ROLE_ADMIN)
def void_sale(sale_id: int):
    """
    Void a completed sale and put its units back into distribution stock.

    Request body:
    {
        "reason": str (optional)
    }

    Returns:
        200: Sale voided, reversing adjustments applied
        403: Forbidden
        404: Sale not found
        409: Sale already voided
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.void_sale(
            sale_id=sale_id,
            actor_id=g.current_user.id,
            reason=data.get("reason"),
        )

        commit_with_retry()

        return jsonify(sale.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@sales_bp.route("/<int:sale_id>", methods=["GET"])
@require_user
def get_sale(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        if not g.current_user.is_admin and sale.cashier_id != g.current_user.id:
            return jsonify({"error": f"Sale {sale_id} not found"}), 404
        return jsonify(sale.to_dict()), 200

    except StockError as e:
        return jsonify({"error": e.message}), e.status_code


@sales_bp.route("", methods=["GET"])
@require_user
def list_sales():
    """
    List sales newest first.

    Query parameters:
        status: completed, voided
        cashier_id: Filter by seller (admin only; cashiers always see their own)
        date_from: ISO-8601 (inclusive)
        date_to: ISO-8601 (exclusive)
        limit: Max results (default 100)
    """
    try:
        cashier_id = request.args.get("cashier_id", type=int)
        if not g.current_user.is_admin:
            cashier_id = g.current_user.id

        try:
            date_from, date_to = parse_date_window(
                request.args.get("date_from"), request.args.get("date_to")
            )
        except ValueError as e:
            raise ValidationError(str(e))

        sales = sales_service.list_sales(
            cashier_id=cashier_id,
            status=request.args.get("status") or None,
            date_from=date_from,
            date_to=date_to,
            limit=parse_limit(request.args.get("limit"), default=100, maximum=500),
        )

        return jsonify([s.to_dict() for s in sales]), 200

    except StockError as e:
        return jsonify({"error": e.message}), e.status_code
