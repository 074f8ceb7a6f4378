# backend/stockpos/routes/stock.py
"""
Stock adjustment routes.

SECURITY: All routes require a caller identity.
- Admins may record every adjustment type
- Cashiers may record return and reject adjustments only, and list only
  the adjustments they created

Time semantics:
- date_from / date_to accept ISO-8601 with Z/offsets; normalized to UTC-naive.
- date_from is inclusive, date_to is exclusive.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user
from ..errors import StockError, ValidationError
from ..extensions import db
from ..services import ledger_service
from ..services.concurrency import commit_with_retry
from ..validation import coerce_int, parse_limit
from stockpos.time_utils import parse_date_window


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _date_window():
    try:
        return parse_date_window(request.args.get("date_from"), request.args.get("date_to"))
    except ValueError as e:
        raise ValidationError(str(e))


@stock_bp.post("/adjustments")
@require_user
def create_adjustment():
    """
    Record a stock adjustment.

    Request body:
    {
        "product_id": int,
        "adjustment_type": "production" | "distribution" | "return" | "reject" | "disposal",
        "quantity": int,
        "source_location": str (optional, defaults to the type's route),
        "target_location": str (optional, defaults to the type's route),
        "condition": str (optional, defaults per type),
        "reason": str (optional; return: damaged | expired | quality_issue | wrong_item | other,
                   reject: quality_issue | contaminated | safety_concern | other),
        "notes": str (optional)
    }

    Returns:
        201: Adjustment applied, with the product's new stock
        400: Invalid request
        403: Role may not record this type
        404: Product not found
        409: Illegal route, insufficient stock, or lost concurrency race
    """
    data = request.get_json(silent=True) or {}

    try:
        if "product_id" not in data:
            raise ValidationError("Missing required field: product_id")
        if "adjustment_type" not in data:
            raise ValidationError("Missing required field: adjustment_type")

        adjustment = ledger_service.create_stock_adjustment(
            product_id=coerce_int("product_id", data["product_id"]),
            adjustment_type=data["adjustment_type"],
            quantity=data.get("quantity"),
            source_location=data.get("source_location"),
            target_location=data.get("target_location"),
            condition=data.get("condition"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            created_by_user_id=g.current_user.id,
        )

        commit_with_retry()

        return jsonify({
            "adjustment": adjustment.to_dict(),
            "stock": adjustment.product.stock_dict(),
        }), 201

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to create stock adjustment")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@stock_bp.get("/adjustments")
@require_user
def list_adjustments():
    """
    List adjustments newest first.

    Query parameters:
        product_id, adjustment_type, distribution_id, created_by (admin only),
        date_from, date_to, limit
    """
    try:
        created_by = request.args.get("created_by", type=int)
        if not g.current_user.is_admin:
            created_by = g.current_user.id

        date_from, date_to = _date_window()
        rows = ledger_service.list_stock_adjustments(
            product_id=request.args.get("product_id", type=int),
            adjustment_type=request.args.get("adjustment_type") or None,
            created_by_user_id=created_by,
            distribution_id=request.args.get("distribution_id", type=int),
            date_from=date_from,
            date_to=date_to,
            limit=parse_limit(
                request.args.get("limit"),
                default=current_app.config["ADJUSTMENT_LIST_LIMIT"],
                maximum=current_app.config["ADJUSTMENT_LIST_LIMIT"],
            ),
        )
        return jsonify([r.to_dict() for r in rows]), 200

    except StockError as e:
        return jsonify({"error": e.message}), e.status_code


@stock_bp.get("/adjustments/<int:adjustment_id>")
@require_user
def get_adjustment(adjustment_id: int):
    try:
        adjustment = ledger_service.get_adjustment(adjustment_id)
        if not g.current_user.is_admin and adjustment.created_by_user_id != g.current_user.id:
            return jsonify({"error": f"Stock adjustment {adjustment_id} not found"}), 404
        return jsonify(adjustment.to_dict()), 200
    except StockError as e:
        return jsonify({"error": e.message}), e.status_code
