from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data plus the four cached stock buckets.

    BUCKETS:
    - storage_stock: finished goods held in storage
    - distribution_stock: units handed to cashiers
    - returned_stock: units cashiers sent back to storage
    - rejected_stock: units cashiers rejected (awaiting disposal)

    The bucket columns are derived state. They are written only by the stock
    ledger, inside the same transaction that appends the StockAdjustment, and
    can always be recomputed by replaying the product's adjustments.

    version_id increments on every counter write; the ledger guards its
    conditional UPDATE on the value it validated against.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("storage_stock >= 0", name="ck_products_storage_nonneg"),
        db.CheckConstraint("distribution_stock >= 0", name="ck_products_distribution_nonneg"),
        db.CheckConstraint("returned_stock >= 0", name="ck_products_returned_nonneg"),
        db.CheckConstraint("rejected_stock >= 0", name="ck_products_rejected_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_products_price_nonneg"),
        db.Index("ix_products_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    storage_stock = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    distribution_stock = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    returned_stock = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    rejected_stock = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    version_id = db.Column(db.Integer, nullable=False, default=1, server_default="1")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=db.func.now(),
        onupdate=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def stock_dict(self) -> dict:
        return {
            "storage": self.storage_stock,
            "distribution": self.distribution_stock,
            "returned": self.returned_stock,
            "rejected": self.rejected_stock,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "storage_stock": self.storage_stock,
            "distribution_stock": self.distribution_stock,
            "returned_stock": self.returned_stock,
            "rejected_stock": self.rejected_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
