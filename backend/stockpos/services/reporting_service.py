# Overview: Service-layer operations for stock reporting; read-only aggregates over products and the ledger.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, StockAdjustment, User
from ..models.sales import SALE_COMPLETED
from stockpos.time_utils import to_utc_z
from . import stock_rules


def get_stock_summary(*, low_stock_threshold: int = 10) -> dict:
    """Bucket totals across active products plus low/out-of-stock counts."""
    row = db.session.query(
        func.count(Product.id).label("products"),
        func.coalesce(func.sum(Product.storage_stock), 0).label("storage"),
        func.coalesce(func.sum(Product.distribution_stock), 0).label("distribution"),
        func.coalesce(func.sum(Product.returned_stock), 0).label("returned"),
        func.coalesce(func.sum(Product.rejected_stock), 0).label("rejected"),
    ).filter(Product.is_active.is_(True)).one()

    low_stock = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.storage_stock < low_stock_threshold)
        .scalar()
    )
    out_of_stock = (
        db.session.query(func.count(Product.id))
        .filter(Product.is_active.is_(True), Product.storage_stock == 0)
        .scalar()
    )

    totals = {
        "storage": int(row.storage),
        "distribution": int(row.distribution),
        "returned": int(row.returned),
        "rejected": int(row.rejected),
    }
    return {
        "product_count": int(row.products),
        "totals": totals,
        "total_units": sum(totals.values()),
        "low_stock_threshold": low_stock_threshold,
        "low_stock_count": int(low_stock or 0),
        "out_of_stock_count": int(out_of_stock or 0),
    }


def get_adjustment_report(
    *,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> dict:
    """
    Adjustment activity in [date_from, date_to).

    Reversals are counted separately so the per-type totals reflect the
    movements that were actually kept.
    """
    if date_from and date_to and date_from >= date_to:
        raise ValidationError("date_from must be before date_to")

    def _window(query):
        if date_from is not None:
            query = query.filter(StockAdjustment.created_at >= date_from)
        if date_to is not None:
            query = query.filter(StockAdjustment.created_at < date_to)
        return query

    by_type_rows = _window(
        db.session.query(
            StockAdjustment.adjustment_type,
            StockAdjustment.reversal_of_id.isnot(None).label("is_reversal"),
            func.count(StockAdjustment.id).label("count"),
            func.coalesce(func.sum(StockAdjustment.quantity), 0).label("quantity"),
        )
    ).group_by(
        StockAdjustment.adjustment_type,
        StockAdjustment.reversal_of_id.isnot(None),
    ).all()

    by_type = {t: {"count": 0, "quantity": 0} for t in stock_rules.ADJUSTMENT_TYPES}
    reversals = {"count": 0, "quantity": 0}
    for adj_type, is_reversal, count, quantity in by_type_rows:
        if is_reversal:
            reversals["count"] += int(count)
            reversals["quantity"] += int(quantity)
            by_type[adj_type]["quantity"] -= int(quantity)
        else:
            by_type[adj_type]["count"] += int(count)
            by_type[adj_type]["quantity"] += int(quantity)

    product_rows = _window(
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            StockAdjustment.adjustment_type,
            StockAdjustment.reversal_of_id.isnot(None).label("is_reversal"),
            func.coalesce(func.sum(StockAdjustment.quantity), 0).label("quantity"),
        ).join(StockAdjustment, StockAdjustment.product_id == Product.id)
    ).group_by(
        Product.id,
        Product.sku,
        Product.name,
        StockAdjustment.adjustment_type,
        StockAdjustment.reversal_of_id.isnot(None),
    ).order_by(Product.name.asc()).all()

    products: dict[int, dict] = {}
    for product_id, sku, name, adj_type, is_reversal, quantity in product_rows:
        entry = products.setdefault(product_id, {
            "product_id": product_id,
            "sku": sku,
            "name": name,
            **{t: 0 for t in stock_rules.ADJUSTMENT_TYPES},
        })
        entry[adj_type] += -int(quantity) if is_reversal else int(quantity)

    return {
        "date_from": to_utc_z(date_from),
        "date_to": to_utc_z(date_to),
        "by_type": by_type,
        "reversals": reversals,
        "products": list(products.values()),
    }


def get_sales_report(
    *,
    cashier_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> dict:
    """
    Revenue and units sold in [date_from, date_to), completed sales only.

    Voided sales are reported as a separate count and never reach revenue.
    """
    if date_from and date_to and date_from >= date_to:
        raise ValidationError("date_from must be before date_to")

    def _window(query):
        if cashier_id is not None:
            query = query.filter(Sale.cashier_id == cashier_id)
        if date_from is not None:
            query = query.filter(Sale.created_at >= date_from)
        if date_to is not None:
            query = query.filter(Sale.created_at < date_to)
        return query

    totals = _window(
        db.session.query(
            func.count(Sale.id).label("transactions"),
            func.coalesce(func.sum(Sale.subtotal_cents), 0).label("subtotal"),
            func.coalesce(func.sum(Sale.tax_cents), 0).label("tax"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        ).filter(Sale.status == SALE_COMPLETED)
    ).one()

    voided_count = _window(
        db.session.query(func.count(Sale.id)).filter(Sale.status != SALE_COMPLETED)
    ).scalar()

    product_rows = _window(
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            func.sum(SaleItem.quantity).label("units"),
            func.sum(SaleItem.line_total_cents).label("revenue"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(Sale.status == SALE_COMPLETED)
    ).group_by(Product.id, Product.sku, Product.name).all()

    products = sorted(
        (
            {
                "product_id": product_id,
                "sku": sku,
                "name": name,
                "units_sold": int(units),
                "revenue_cents": int(revenue),
            }
            for product_id, sku, name, units, revenue in product_rows
        ),
        key=lambda p: (-p["units_sold"], p["name"]),
    )

    cashier_rows = _window(
        db.session.query(
            User.id,
            User.username,
            func.count(Sale.id).label("transactions"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        )
        .join(Sale, Sale.cashier_id == User.id)
        .filter(Sale.status == SALE_COMPLETED)
    ).group_by(User.id, User.username).order_by(User.username.asc()).all()

    transactions = int(totals.transactions)
    revenue = int(totals.revenue)
    return {
        "date_from": to_utc_z(date_from),
        "date_to": to_utc_z(date_to),
        "cashier_id": cashier_id,
        "revenue_cents": revenue,
        "subtotal_cents": int(totals.subtotal),
        "tax_cents": int(totals.tax),
        "transaction_count": transactions,
        "voided_count": int(voided_count or 0),
        "average_order_cents": revenue // transactions if transactions else 0,
        "items_sold": sum(p["units_sold"] for p in products),
        "products": products,
        "best_selling": products[0] if products else None,
        "worst_selling": products[-1] if products else None,
        "by_cashier": [
            {
                "cashier_id": user_id,
                "username": username,
                "transaction_count": int(count),
                "revenue_cents": int(total),
            }
            for user_id, username, count, total in cashier_rows
        ],
    }
