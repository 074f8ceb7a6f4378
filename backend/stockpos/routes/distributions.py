# backend/stockpos/routes/distributions.py
"""
Product distribution API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_role
from ..errors import StockError, ValidationError
from ..extensions import db
from ..models.auth import ROLE_ADMIN
from ..services import distribution_service
from ..services.concurrency import commit_with_retry
from ..validation import coerce_int, parse_limit


distributions_bp = Blueprint("distributions", __name__, url_prefix="/api/distributions")


@distributions_bp.route("", methods=["POST"])
@require_user
@require_role(ROLE_ADMIN)
def create_distribution():
    """
    Distribute stock from storage to a cashier.

    Request body:
    {
        "product_id": int,
        "quantity": int,
        "cashier_id": int,
        "notes": str (optional)
    }

    Returns:
        201: Distribution created (status pending), storage moved to distribution
        400: Invalid request
        403: Forbidden
        404: Product or cashier not found
        409: Insufficient storage stock
    """
    data = request.get_json(silent=True) or {}

    try:
        for field in ("product_id", "quantity", "cashier_id"):
            if field not in data:
                raise ValidationError(f"Missing required field: {field}")

        distribution = distribution_service.create_distribution(
            product_id=coerce_int("product_id", data["product_id"]),
            quantity=data["quantity"],
            cashier_id=coerce_int("cashier_id", data["cashier_id"]),
            distributed_by=g.current_user.id,
            notes=data.get("notes"),
        )

        commit_with_retry()

        return jsonify(distribution.to_dict()), 201

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to create distribution")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@distributions_bp.route("/<int:distribution_id>/advance", methods=["POST"])
@require_user
def advance_distribution(distribution_id: int):
    """
    Move a distribution to its next status.

    Request body:
    {
        "status": "distributed" | "completed"
    }

    Returns:
        200: Distribution advanced
        400: Unknown status
        403: Actor may not perform this step
        404: Distribution not found
        409: Not the next status
    """
    data = request.get_json(silent=True) or {}

    try:
        new_status = data.get("status")
        if not new_status:
            raise ValidationError("Missing required field: status")

        distribution = distribution_service.advance_distribution(
            distribution_id=distribution_id,
            new_status=new_status,
            actor_id=g.current_user.id,
        )

        commit_with_retry()

        return jsonify(distribution.to_dict()), 200

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to advance distribution")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@distributions_bp.route("/<int:distribution_id>/cancel", methods=["POST"])
@require_user
@require_role(ROLE_ADMIN)
def cancel_distribution(distribution_id: int):
    """
    Cancel a pending distribution and restore storage.

    Request body:
    {
        "reason": str (optional)
    }

    Returns:
        200: Distribution cancelled, reversing adjustment applied
        403: Forbidden
        404: Distribution not found
        409: Distribution is not pending
    """
    data = request.get_json(silent=True) or {}

    try:
        distribution = distribution_service.cancel_distribution(
            distribution_id=distribution_id,
            actor_id=g.current_user.id,
            reason=data.get("reason"),
        )

        commit_with_retry()

        return jsonify({
            "distribution": distribution.to_dict(),
            "stock": distribution.product.stock_dict(),
        }), 200

    except StockError as e:
        db.session.rollback()
        return jsonify({"error": e.message}), e.status_code
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel distribution")
        return jsonify({"error": f"Unexpected error: {e}"}), 500


@distributions_bp.route("/<int:distribution_id>", methods=["GET"])
@require_user
def get_distribution(distribution_id: int):
    """
    Get one distribution. Cashiers only see their own.
    """
    try:
        distribution = distribution_service.get_distribution(distribution_id)
        if not g.current_user.is_admin and distribution.cashier_id != g.current_user.id:
            return jsonify({"error": f"Distribution {distribution_id} not found"}), 404
        return jsonify(distribution.to_dict()), 200

    except StockError as e:
        return jsonify({"error": e.message}), e.status_code


@distributions_bp.route("", methods=["GET"])
@require_user
def list_distributions():
    """
    List distributions newest first.

    Query parameters:
        status: pending, distributed, completed, cancelled
        product_id: Filter by product
        cashier_id: Filter by cashier (admin only; cashiers always see their own)
        limit: Max results (default 100)
    """
    try:
        cashier_id = request.args.get("cashier_id", type=int)
        if not g.current_user.is_admin:
            cashier_id = g.current_user.id

        distributions = distribution_service.list_distributions(
            cashier_id=cashier_id,
            status=request.args.get("status") or None,
            product_id=request.args.get("product_id", type=int),
            limit=parse_limit(request.args.get("limit"), default=100, maximum=500),
        )

        return jsonify([d.to_dict() for d in distributions]), 200

    except StockError as e:
        return jsonify({"error": e.message}), e.status_code
