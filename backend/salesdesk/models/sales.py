from __future__ import annotations

from ..extensions import db
from ..money import cents_to_str
from ..time_utils import to_iso_date, to_utc_z

SALE_IMAGE_TYPES = ("sealed", "full_product", "serial_number")


class Sale(db.Model):
    """
    A single-product sale with its warranty window.

    IMMUTABLE: quantity, prices and warranty dates are fixed at creation.
    total_price_cents is computed once (quantity * unit_price_cents) and never
    recomputed. Only serial_number may change, and only from empty to set.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price_cents > 0", name="ck_sales_unit_price_positive"),
        db.CheckConstraint("total_price_cents > 0", name="ck_sales_total_price_positive"),
        db.CheckConstraint("warranty_period_months > 0", name="ck_sales_warranty_months_positive"),
        db.CheckConstraint("warranty_end > warranty_start", name="ck_sales_warranty_window"),
        db.Index("ix_sales_sale_date", "sale_date"),
        db.Index("ix_sales_warranty_end", "warranty_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)

    warranty_period_months = db.Column(db.Integer, nullable=False)
    warranty_start = db.Column(db.Date, nullable=False)
    warranty_end = db.Column(db.Date, nullable=False)

    serial_number = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("sales", lazy="dynamic"))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy="dynamic"))
    seller = db.relationship("User", backref=db.backref("sales", lazy="dynamic"))
    images = db.relationship(
        "SaleImage",
        back_populates="sale",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SaleImage.uploaded_at",
    )

    def to_dict(self, *, include_related: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": cents_to_str(self.unit_price_cents),
            "total_price_cents": self.total_price_cents,
            "total_price": cents_to_str(self.total_price_cents),
            "sale_date": to_utc_z(self.sale_date),
            "warranty_period_months": self.warranty_period_months,
            "warranty_start": to_iso_date(self.warranty_start),
            "warranty_end": to_iso_date(self.warranty_end),
            "serial_number": self.serial_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_related:
            data["product"] = self.product.to_summary() if self.product else None
            data["customer"] = self.customer.to_summary() if self.customer else None
            data["seller"] = self.seller.to_summary() if self.seller else None
            data["images"] = [image.to_dict() for image in self.images]
        return data


class SaleImage(db.Model):
    """Photo evidence attached to a sale; at most one per image type."""
    __tablename__ = "sale_images"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "image_type", name="uq_sale_images_sale_type"),
        db.CheckConstraint(
            "image_type IN ('sealed', 'full_product', 'serial_number')",
            name="ck_sale_images_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(
        db.Integer,
        db.ForeignKey("sales.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_type = db.Column(db.String(32), nullable=False)
    image_url = db.Column(db.String(500), nullable=False)
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="images")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "image_type": self.image_type,
            "image_url": self.image_url,
            "uploaded_at": to_utc_z(self.uploaded_at),
        }
