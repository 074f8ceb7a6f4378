from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z, utcnow


PAYMENT_METHODS = ("cash", "card", "transfer")

SALE_COMPLETED = "completed"
SALE_VOIDED = "voided"
SALE_STATUSES = (SALE_COMPLETED, SALE_VOIDED)


class Sale(db.Model):
    """
    A completed checkout by one cashier.

    Each item draws its units from distribution_stock through a sale
    adjustment appended in the same transaction as the sale row. Voiding
    appends a reversal per item; the sale row itself is kept.

    All amounts are in cents. Unit prices are copied from the product at
    checkout time.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("status IN ('completed', 'voided')", name="ck_sales_status"),
        db.CheckConstraint(
            "payment_method IN ('cash', 'card', 'transfer')",
            name="ck_sales_payment_method",
        ),
        db.CheckConstraint("subtotal_cents >= 0", name="ck_sales_subtotal_nonneg"),
        db.CheckConstraint("tax_cents >= 0", name="ck_sales_tax_nonneg"),
        db.CheckConstraint("total_cents = subtotal_cents + tax_cents", name="ck_sales_total"),
        db.Index("ix_sales_cashier_created", "cashier_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    cashier = db.relationship("User", foreign_keys=[cashier_id])
    voided_by = db.relationship("User", foreign_keys=[voided_by_user_id])
    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.id",
        lazy="select",
    )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def __repr__(self) -> str:
        return f"<Sale id={self.id} cashier_id={self.cashier_id} total={self.total_cents} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cashier_id": self.cashier_id,
            "cashier": self.cashier.username if self.cashier else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "item_count": self.item_count,
            "notes": self.notes,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at),
            "voided_by_user_id": self.voided_by_user_id,
            "void_reason": self.void_reason,
        }


class SaleItem(db.Model):
    """One product line on a sale, linked to the adjustment that drew its units."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_qty_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_price_nonneg"),
        db.CheckConstraint(
            "line_total_cents = quantity * unit_price_cents",
            name="ck_sale_items_line_total",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    adjustment_id = db.Column(
        db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=False, unique=True
    )

    product = db.relationship("Product")
    adjustment = db.relationship("StockAdjustment", foreign_keys=[adjustment_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "adjustment_id": self.adjustment_id,
        }
