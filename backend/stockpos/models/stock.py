from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockpos.time_utils import to_utc_z, utcnow


class StockAdjustment(db.Model):
    """
    Immutable stock ledger entry.

    INVARIANTS:
    - Append-only: rows are never updated or deleted (enforced by mapper events).
    - Exactly one product's buckets change per row, in the same DB transaction
      as the insert.
    - quantity is always positive; direction comes from adjustment_type.
    - A row with reversal_of_id set applies the negation of the referenced
      row's deltas and travels the reverse route (target -> source).

    Replaying every row for a product, oldest first, reproduces its counters.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_adjustments_qty_positive"),
        db.CheckConstraint(
            "adjustment_type IN ('production', 'distribution', 'return', 'reject', 'disposal', 'sale')",
            name="ck_stock_adjustments_type",
        ),
        db.CheckConstraint(
            "source_location IN ('production', 'storage', 'cashier', 'customer', 'disposal')",
            name="ck_stock_adjustments_source",
        ),
        db.CheckConstraint(
            "target_location IN ('production', 'storage', 'cashier', 'customer', 'disposal')",
            name="ck_stock_adjustments_target",
        ),
        db.CheckConstraint(
            "condition IN ('good', 'damaged', 'expired', 'rejected')",
            name="ck_stock_adjustments_condition",
        ),
        db.Index("ix_stock_adjustments_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    source_location = db.Column(db.String(16), nullable=False)
    target_location = db.Column(db.String(16), nullable=False)
    condition = db.Column(db.String(16), nullable=False)

    reason = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    reversal_of_id = db.Column(
        db.Integer, db.ForeignKey("stock_adjustments.id"), nullable=True, unique=True
    )
    distribution_id = db.Column(
        db.Integer, db.ForeignKey("product_distributions.id"), nullable=True, index=True
    )

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", backref=db.backref("adjustments", lazy="dynamic"))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    reversal_of = db.relationship("StockAdjustment", remote_side=[id], uselist=False)

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of_id is not None

    def __repr__(self) -> str:
        return (
            f"<StockAdjustment id={self.id} product_id={self.product_id} "
            f"type={self.adjustment_type} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "adjustment_type": self.adjustment_type,
            "quantity": self.quantity,
            "source_location": self.source_location,
            "target_location": self.target_location,
            "condition": self.condition,
            "reason": self.reason,
            "notes": self.notes,
            "reversal_of_id": self.reversal_of_id,
            "distribution_id": self.distribution_id,
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.username if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockAdjustment, "before_update")
def _refuse_adjustment_update(mapper, connection, target):
    raise RuntimeError("StockAdjustment records are immutable")


@event.listens_for(StockAdjustment, "before_delete")
def _refuse_adjustment_delete(mapper, connection, target):
    raise RuntimeError("StockAdjustment records are immutable and cannot be deleted")


class ProductDistribution(db.Model):
    """
    A batch of stock handed from storage to one cashier.

    LIFECYCLE:
    1. PENDING: created by an admin; the distribution adjustment is applied
    2. DISTRIBUTED: admin confirms the goods left storage
    3. COMPLETED: cashier (or admin) confirms receipt (terminal)
    4. CANCELLED: admin cancelled while pending; a reversing adjustment
       restored storage (terminal)

    Rows are never deleted.
    """
    __tablename__ = "product_distributions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_product_distributions_qty_positive"),
        db.CheckConstraint(
            "status IN ('pending', 'distributed', 'completed', 'cancelled')",
            name="ck_product_distributions_status",
        ),
        db.CheckConstraint(
            "cashier_id <> distributed_by_user_id",
            name="ck_product_distributions_distinct_users",
        ),
        db.Index("ix_product_distributions_cashier_status", "cashier_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    distributed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )
    distributed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    product = db.relationship("Product", backref=db.backref("distributions", lazy="dynamic"))
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    distributed_by = db.relationship("User", foreign_keys=[distributed_by_user_id])
    completed_by = db.relationship("User", foreign_keys=[completed_by_user_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_user_id])
    adjustments = db.relationship(
        "StockAdjustment",
        backref="distribution",
        order_by="StockAdjustment.id",
        lazy="select",
    )

    @property
    def adjustment(self):
        """The distribution-type entry that moved the stock out of storage."""
        return next((a for a in self.adjustments if not a.is_reversal), None)

    @property
    def reversal_adjustment(self):
        return next((a for a in self.adjustments if a.is_reversal), None)

    def __repr__(self) -> str:
        return (
            f"<ProductDistribution id={self.id} product_id={self.product_id} "
            f"qty={self.quantity} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "cashier_id": self.cashier_id,
            "cashier": self.cashier.username if self.cashier else None,
            "distributed_by_user_id": self.distributed_by_user_id,
            "status": self.status,
            "notes": self.notes,
            "adjustment_id": self.adjustment.id if self.adjustment else None,
            "reversal_adjustment_id": (
                self.reversal_adjustment.id if self.reversal_adjustment else None
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "distributed_at": to_utc_z(self.distributed_at),
            "completed_at": to_utc_z(self.completed_at),
            "completed_by_user_id": self.completed_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancellation_reason": self.cancellation_reason,
        }
