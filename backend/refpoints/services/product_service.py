# Overview: Service-layer operations for the product catalog and its point rules.

"""
Products Service with Multi-Tenant Support

MULTI-TENANT: every product and tier is scoped to an organization.
- product codes are normalized (upper case, trimmed) and unique per org
- tiers belong to one product of the same org
- sale lines only resolve products of the caller's org
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import InvalidConfiguration, InvalidInput, NotFound
from ..extensions import db
from ..models import PointTier, Product
from ..models.products import (
    POINTS_FIXED, POINTS_INHERIT, POINTS_PERCENTAGE, POINTS_TIER, VALID_POINT_CALCULATION_TYPES,
)
from .points_service import SaleLine, to_amount

PRODUCT_MUTABLE_FIELDS = {
    "name", "sku", "category", "description", "price_cents", "point_calculation_type",
    "fixed_points", "percentage_rate", "minimum_quantity", "bonus_multiplier", "is_active",
}


def normalize_product_code(code: str) -> str:
    return (code or "").strip().upper()


def _enforce_rules(product: Product) -> None:
    if not product.name:
        raise InvalidConfiguration("name is required")
    if not product.product_code:
        raise InvalidConfiguration("product_code is required")
    if product.point_calculation_type not in VALID_POINT_CALCULATION_TYPES:
        raise InvalidConfiguration(
            f"point_calculation_type must be one of {', '.join(sorted(VALID_POINT_CALCULATION_TYPES))}"
        )
    if product.point_calculation_type == POINTS_FIXED and product.fixed_points is None:
        raise InvalidConfiguration("fixed_points is required for fixed products")
    if product.fixed_points is not None and product.fixed_points < 0:
        raise InvalidConfiguration("fixed_points must be >= 0")
    if product.point_calculation_type == POINTS_PERCENTAGE and product.percentage_rate is None:
        raise InvalidConfiguration("percentage_rate is required for percentage products")
    if product.percentage_rate is not None and not (0 <= product.percentage_rate <= 100):
        raise InvalidConfiguration("percentage_rate must be between 0 and 100")
    if product.price_cents is None or product.price_cents < 0:
        raise InvalidConfiguration("price must be >= 0")
    if product.minimum_quantity is None or product.minimum_quantity < 1:
        raise InvalidConfiguration("minimum_quantity must be >= 1")
    if product.bonus_multiplier is None or product.bonus_multiplier < 0:
        raise InvalidConfiguration("bonus_multiplier must be >= 0")


def _commit_product(product: Product) -> Product:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise InvalidConfiguration("Product code already exists", details={"product_code": product.product_code})
    return product


def create_product(org_id: int, data: dict) -> Product:
    product = Product(
        org_id=org_id,
        product_code=normalize_product_code(data.get("product_code")),
        name=data.get("name"),
        price_cents=0,
        point_calculation_type=POINTS_INHERIT,
        minimum_quantity=1,
        is_active=True,
        bonus_multiplier=Decimal("1.00"),
    )
    apply_product_patch(product, {k: v for k, v in data.items() if k != "product_code"})
    _enforce_rules(product)

    db.session.add(product)
    return _commit_product(product)


def apply_product_patch(product: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(product, k, v)


def update_product(org_id: int, product_id: int, patch: dict) -> Product:
    product = get_product(org_id, product_id)
    apply_product_patch(product, patch)
    try:
        _enforce_rules(product)
    except InvalidConfiguration:
        db.session.rollback()
        raise
    return _commit_product(product)


def get_product(org_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, org_id=org_id).first()
    if not product:
        raise NotFound("Product not found")
    return product


def list_products(org_id: int, active_only: bool = False) -> list[dict]:
    q = db.session.query(Product).filter_by(org_id=org_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [p.to_dict() for p in q.order_by(Product.name.asc(), Product.id.asc()).all()]


def add_point_tier(
    org_id: int,
    product_id: int,
    *,
    min_amount_cents: int,
    points: int,
    max_amount_cents: int | None = None,
    multiplier: Decimal | None = None,
) -> PointTier:
    """Add an amount band to a tier-rated product. Bands may not overlap."""
    product = get_product(org_id, product_id)
    if product.point_calculation_type != POINTS_TIER:
        raise InvalidConfiguration("Tiers can only be added to tier-rated products")
    if min_amount_cents < 0 or points < 0:
        raise InvalidConfiguration("min_amount and points must be >= 0")
    if max_amount_cents is not None and max_amount_cents < min_amount_cents:
        raise InvalidConfiguration("max_amount must not be below min_amount")
    if multiplier is not None and multiplier < 0:
        raise InvalidConfiguration("multiplier must be >= 0")

    upper = max_amount_cents
    for existing in product.tiers:
        existing_upper = existing.max_amount_cents
        starts_before_other_ends = existing_upper is None or min_amount_cents <= existing_upper
        ends_after_other_starts = upper is None or upper >= existing.min_amount_cents
        if starts_before_other_ends and ends_after_other_starts:
            raise InvalidConfiguration("Tier overlaps an existing tier", details={"tier_id": existing.id})

    tier = PointTier(
        org_id=org_id,
        product_id=product.id,
        min_amount_cents=min_amount_cents,
        max_amount_cents=max_amount_cents,
        points=points,
        multiplier=multiplier if multiplier is not None else Decimal("1.00"),
    )
    db.session.add(tier)
    db.session.commit()
    return tier


def resolve_sale_lines(org_id: int, items) -> list[SaleLine]:
    """
    Turn parsed sale items into SaleLines.

    A line naming a product takes the product's price unless a unit price
    is given; a line without a product needs its own unit price.
    """
    lines = []
    for item in items or ():
        product = None
        if item.product_id is not None:
            product = get_product(org_id, item.product_id)
        if item.unit_price is not None:
            unit_price = to_amount(item.unit_price)
        elif product is not None:
            unit_price = Decimal(product.price_cents) / 100
        else:
            raise InvalidInput("unitPrice is required for items without a product")
        lines.append(SaleLine(
            quantity=item.quantity,
            unit_price=unit_price,
            product=product,
            product_name=item.product_name,
        ))
    return lines
