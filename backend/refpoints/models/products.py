from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from refpoints.time_utils import to_utc_z

POINTS_INHERIT = "inherit"
POINTS_FIXED = "fixed"
POINTS_PERCENTAGE = "percentage"
POINTS_TIER = "tier"
VALID_POINT_CALCULATION_TYPES = {POINTS_INHERIT, POINTS_FIXED, POINTS_PERCENTAGE, POINTS_TIER}


class Product(db.Model):
    """
    Catalog item with its own point rule.

    MULTI-TENANT: product_code is unique per organization.

    POINT RULE (point_calculation_type):
    - inherit: the sale's campaign rule, or the default rule without one
    - fixed: fixed_points per unit
    - percentage: floor(unit price * percentage_rate / 100) per unit
    - tier: the PointTier whose amount range holds the unit price

    Per-unit points are multiplied by the quantity and then by
    bonus_multiplier (floored). Lines below minimum_quantity earn nothing.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "product_code", name="uq_products_org_code"),
        db.Index("ix_products_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    product_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    point_calculation_type = db.Column(db.String(16), nullable=False, default=POINTS_INHERIT)
    fixed_points = db.Column(db.Integer, nullable=True)
    percentage_rate = db.Column(db.Numeric(5, 2), nullable=True)
    minimum_quantity = db.Column(db.Integer, nullable=False, default=1)
    bonus_multiplier = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("1.00"))

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))
    tiers = db.relationship(
        "PointTier",
        backref="product",
        lazy=True,
        order_by="PointTier.min_amount_cents",
    )

    def to_dict(self, include_tiers: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "product_code": self.product_code,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "point_calculation_type": self.point_calculation_type,
            "fixed_points": self.fixed_points,
            "percentage_rate": str(self.percentage_rate) if self.percentage_rate is not None else None,
            "minimum_quantity": self.minimum_quantity,
            "bonus_multiplier": str(self.bonus_multiplier) if self.bonus_multiplier is not None else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_tiers:
            data["tiers"] = [t.to_dict() for t in self.tiers]
        return data


class PointTier(db.Model):
    """
    Amount band for a tier-rated product.

    A tier matches when min_amount_cents <= amount <= max_amount_cents
    (no max means open-ended). It awards floor(points * multiplier).
    """
    __tablename__ = "point_tiers"
    __table_args__ = (
        db.CheckConstraint(
            "max_amount_cents IS NULL OR max_amount_cents >= min_amount_cents",
            name="ck_point_tiers_range",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    min_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    max_amount_cents = db.Column(db.Integer, nullable=True)
    points = db.Column(db.Integer, nullable=False)
    multiplier = db.Column(db.Numeric(6, 2), nullable=False, default=Decimal("1.00"))

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def matches(self, amount_cents: int) -> bool:
        if amount_cents < self.min_amount_cents:
            return False
        return self.max_amount_cents is None or amount_cents <= self.max_amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "min_amount_cents": self.min_amount_cents,
            "max_amount_cents": self.max_amount_cents,
            "points": self.points,
            "multiplier": str(self.multiplier) if self.multiplier is not None else None,
        }
