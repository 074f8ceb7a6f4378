# backend/stockpos/routes/reports.py
"""
Stock and sales reporting routes. Admin only.
"""
from flask import Blueprint, request, current_app

from ..decorators import require_user, require_role
from ..errors import StockError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import reporting_service
from stockpos.time_utils import parse_date_window


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-summary")
@require_user
@require_role(ROLE_ADMIN)
def stock_summary():
    threshold = request.args.get("low_stock_threshold", type=int)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    return reporting_service.get_stock_summary(low_stock_threshold=threshold), 200


@reports_bp.get("/adjustments")
@require_user
@require_role(ROLE_ADMIN)
def adjustment_report():
    """
    Adjustment activity per type and per product.

    Query parameters:
        date_from: ISO-8601 (inclusive)
        date_to: ISO-8601 (exclusive)
    """
    try:
        try:
            date_from, date_to = parse_date_window(
                request.args.get("date_from"), request.args.get("date_to")
            )
        except ValueError as e:
            raise ValidationError(str(e))

        return reporting_service.get_adjustment_report(date_from=date_from, date_to=date_to), 200
    except StockError as e:
        return {"error": e.message}, e.status_code


@reports_bp.get("/sales")
@require_user
@require_role(ROLE_ADMIN)
def sales_report():
    """
    Revenue, transaction count and units sold per product.

    Query parameters:
        cashier_id: Limit to one seller (optional)
        date_from: ISO-8601 (inclusive)
        date_to: ISO-8601 (exclusive)
    """
    try:
        try:
            date_from, date_to = parse_date_window(
                request.args.get("date_from"), request.args.get("date_to")
            )
        except ValueError as e:
            raise ValidationError(str(e))

        return reporting_service.get_sales_report(
            cashier_id=request.args.get("cashier_id", type=int),
            date_from=date_from,
            date_to=date_to,
        ), 200
    except StockError as e:
        return {"error": e.message}, e.status_code
