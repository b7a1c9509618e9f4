"""
Point Accrual Engine

WHY: Every point that lands on (or leaves) a customer balance goes through
apply_points, which changes the balance with a single conditional UPDATE and
writes the matching PointsTransaction row in the same DB transaction.

RULES (all integer, floor semantics, never rounds in the customer's favour):
- fixed: the rule parameter verbatim
- percentage: floor(amount * rate / 100)
- default_per_amount: floor(amount / 10), i.e. 1 point per 10 currency units

Sales with item lines are priced per line: the product's own rule when it has
one (fixed, percentage or tier), else the campaign rule, else the default.
The campaign maximum and minimum purchase then apply to the sale total.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_FLOOR

from sqlalchemy import select, update

from ..errors import InvalidAmount, InvalidConfiguration, InvalidInput, Inactive, InsufficientPoints, NotFound
from ..extensions import db
from ..models import Campaign, Customer, PointsTransaction, Product
from ..models.campaigns import REWARD_DEFAULT_PER_AMOUNT, REWARD_FIXED, REWARD_PERCENTAGE
from ..models.products import POINTS_FIXED, POINTS_INHERIT, POINTS_PERCENTAGE, POINTS_TIER
from refpoints.time_utils import utcnow
from .concurrency import run_with_retry

TXN_EARN = "EARN"
TXN_REDEEM = "REDEEM"
TXN_ADJUST = "ADJUST"
VALID_TRANSACTION_TYPES = {TXN_EARN, TXN_REDEEM, TXN_ADJUST}

DEFAULT_UNITS_PER_POINT = 10

# Amounts are stored as integer cents and points as integers; both must fit a
# 64-bit SQLite INTEGER with room to sum.
MAX_AMOUNT = Decimal("1000000000")
MAX_POINTS = 2**31 - 1


def to_amount(value) -> Decimal:
    """
    Coerce a currency amount to Decimal.

    Rejects bool, NaN/inf, negatives, exponent strings and anything above
    MAX_AMOUNT.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidAmount("Amount must be a number")
    if isinstance(value, str) and "e" in value.lower():
        raise InvalidAmount("Amount must be a plain decimal number")
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidAmount("Amount must be finite")
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError):
        raise InvalidAmount("Amount must be a number")
    if not amount.is_finite():
        raise InvalidAmount("Amount must be finite")
    if amount < 0:
        raise InvalidAmount("Amount must be >= 0")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Amount must be <= {MAX_AMOUNT}")
    return amount


def _floor_int(value: Decimal) -> int:
    return min(int(value.to_integral_value(rounding=ROUND_FLOOR)), MAX_POINTS)


def compute_points(rule_type: str, amount, rule_param=None) -> int:
    """Points owed for `amount` under one reward rule. Always an int >= 0."""
    amount = to_amount(amount)

    if rule_type == REWARD_FIXED:
        if rule_param is None or isinstance(rule_param, bool):
            raise InvalidConfiguration("Fixed rule requires a points value")
        points = int(rule_param)
        if points < 0:
            raise InvalidConfiguration("Fixed points must be >= 0")
        return min(points, MAX_POINTS)

    if rule_type == REWARD_PERCENTAGE:
        if rule_param is None or isinstance(rule_param, bool):
            raise InvalidConfiguration("Percentage rule requires a rate")
        rate = Decimal(str(rule_param))
        if not rate.is_finite() or rate < 0:
            raise InvalidConfiguration("Percentage rate must be >= 0")
        return _floor_int(amount * rate / 100)

    if rule_type == REWARD_DEFAULT_PER_AMOUNT:
        return _floor_int(amount / DEFAULT_UNITS_PER_POINT)

    raise InvalidConfiguration(f"Unknown reward rule: {rule_type}")


def campaign_rule(campaign: Campaign | None) -> tuple[str, object]:
    """(rule_type, rule_param) for a campaign; no campaign means the default rule."""
    if campaign is None:
        return REWARD_DEFAULT_PER_AMOUNT, None
    if campaign.reward_type == REWARD_FIXED:
        return REWARD_FIXED, campaign.reward_per_referral
    if campaign.reward_type == REWARD_PERCENTAGE:
        return REWARD_PERCENTAGE, campaign.percentage_rate if campaign.percentage_rate is not None else 0
    return REWARD_DEFAULT_PER_AMOUNT, None


@dataclass(frozen=True)
class SaleLine:
    """One line of a sale: `quantity` units at `unit_price` each."""
    quantity: int
    unit_price: Decimal
    product: Product | None = None
    product_name: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def label(self) -> str:
        if self.product is not None:
            return self.product.name
        return self.product_name or "Item"


@dataclass
class PointCalculation:
    total_points: int
    rule_type: str
    applied_rules: list[str] = field(default_factory=list)
    item_points: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total_points": self.total_points,
            "rule_type": self.rule_type,
            "applied_rules": list(self.applied_rules),
            "item_points": [dict(i) for i in self.item_points],
        }


def _describe_rule(rule_type: str, param, amount: Decimal, points: int) -> str:
    if rule_type == REWARD_FIXED:
        return f"{points} fixed points"
    if rule_type == REWARD_PERCENTAGE:
        return f"{param}% of {amount} = {points} points"
    return f"1 point per {DEFAULT_UNITS_PER_POINT} spent"


def _product_unit_points(product: Product, unit_price: Decimal) -> tuple[int, str]:
    kind = product.point_calculation_type
    if kind == POINTS_FIXED:
        points = compute_points(REWARD_FIXED, unit_price, product.fixed_points or 0)
        return points, _describe_rule(REWARD_FIXED, None, unit_price, points)
    if kind == POINTS_PERCENTAGE:
        rate = product.percentage_rate if product.percentage_rate is not None else 0
        points = compute_points(REWARD_PERCENTAGE, unit_price, rate)
        return points, _describe_rule(REWARD_PERCENTAGE, rate, unit_price, points)
    if kind == POINTS_TIER:
        cents = int((unit_price * 100).to_integral_value(rounding=ROUND_FLOOR))
        tier = next((t for t in product.tiers if t.matches(cents)), None)
        if tier is None:
            return 0, "No matching tier found"
        multiplier = Decimal(str(tier.multiplier)) if tier.multiplier is not None else Decimal(1)
        if multiplier == 1:
            return tier.points, f"Tier: {tier.points} points"
        points = _floor_int(Decimal(tier.points) * multiplier)
        return points, f"Tier: {tier.points} points x {multiplier} = {points} points"
    raise InvalidConfiguration(f"Unknown point calculation type: {kind}")


def _line_points(line: SaleLine, campaign: Campaign | None) -> tuple[int, str, str]:
    """(points, calculation, rule source) for one sale line."""
    product = line.product
    if product is not None and product.point_calculation_type != POINTS_INHERIT:
        unit_points, calculation = _product_unit_points(product, line.unit_price)
        source = f'Product "{product.name}"'
    else:
        rule_type, param = campaign_rule(campaign)
        unit_points = compute_points(rule_type, line.unit_price, param)
        calculation = _describe_rule(rule_type, param, line.unit_price, unit_points)
        source = f'Campaign "{campaign.name}"' if campaign is not None else "Default rule"

    if product is not None and line.quantity < (product.minimum_quantity or 1):
        return 0, f"Minimum quantity of {product.minimum_quantity} not met", source

    points = min(unit_points * line.quantity, MAX_POINTS)
    if line.quantity != 1:
        calculation += f" x {line.quantity}"

    if product is not None and product.bonus_multiplier is not None:
        bonus = Decimal(str(product.bonus_multiplier))
        if bonus != 1:
            points = _floor_int(Decimal(points) * bonus)
            calculation += f" x {bonus} (bonus)"
    return points, calculation, source


def calculate_sale_points(
    amount=None,
    campaign: Campaign | None = None,
    lines: list[SaleLine] | None = None,
) -> PointCalculation:
    """
    Points for a purchase, honouring the campaign's minimum purchase and
    maximum points. Used for POS sales, previews and bills.

    With `lines`, each line is priced on its own (product rule, else the
    campaign rule, else the default rule) and `amount` defaults to the sum
    of the line totals. Without lines the whole amount is one purchase.
    """
    rule_type, param = campaign_rule(campaign)
    item_points: list[dict] = []

    if lines:
        if amount is None:
            amount = sum((line.line_total for line in lines), Decimal(0))
        amount = to_amount(amount)
        points = 0
        rules = []
        for line in lines:
            line_points, calculation, source = _line_points(line, campaign)
            points = min(points + line_points, MAX_POINTS)
            rules.append(f"{source}: {line.label}: {calculation}")
            item_points.append({
                "product_id": line.product.id if line.product is not None else None,
                "product_name": line.label,
                "quantity": line.quantity,
                "points": line_points,
                "calculation": calculation,
            })
    else:
        amount = to_amount(amount)
        points = compute_points(rule_type, amount, param)
        described = _describe_rule(rule_type, param, amount, points)
        if campaign is None:
            rules = [f"Default rule: {described}"]
        else:
            rules = [f'Campaign "{campaign.name}": {described}']

    if campaign is not None and campaign.maximum_points is not None and points > campaign.maximum_points:
        points = campaign.maximum_points
        rules.append(f"Capped at {campaign.maximum_points} points (campaign maximum)")

    if campaign is not None and campaign.minimum_purchase_cents is not None:
        minimum = Decimal(campaign.minimum_purchase_cents) / 100
        if amount < minimum:
            points = 0
            rules.append(f"Minimum purchase of {minimum} not met - no points awarded")
            for item in item_points:
                item["points"] = 0

    return PointCalculation(total_points=points, rule_type=rule_type, applied_rules=rules, item_points=item_points)


def get_balance(customer_id: int) -> int:
    balance = db.session.execute(
        select(Customer.points).where(Customer.id == customer_id)
    ).scalar_one_or_none()
    if balance is None:
        raise NotFound("Customer not found")
    return balance


def apply_points(
    customer_id: int,
    delta: int,
    *,
    transaction_type: str | None = None,
    reason: str | None = None,
    referral_id: int | None = None,
    bill_submission_id: int | None = None,
    sale_reference: str | None = None,
    commit: bool = False,
) -> int:
    """
    Add `delta` to the customer's balance and write the ledger row.

    - delta > 0 also grows points_earned
    - REDEEM debits also grow points_redeemed
    - a debit larger than the balance raises InsufficientPoints and changes nothing

    The balance check and the write are one statement
    (UPDATE ... WHERE points + delta >= 0), so two concurrent debits cannot
    both pass against the same balance. Returns the new balance.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidInput("Points delta must be an integer")
    if abs(delta) > MAX_POINTS:
        raise InvalidInput(f"Points delta must be within {MAX_POINTS}")

    if transaction_type is None:
        transaction_type = TXN_EARN if delta >= 0 else TXN_REDEEM
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise InvalidInput(f"Unknown transaction type: {transaction_type}")

    values = {
        "points": Customer.points + delta,
        "version_id": Customer.version_id + 1,
        "updated_at": utcnow(),
    }
    if delta > 0:
        values["points_earned"] = Customer.points_earned + delta
    if delta < 0 and transaction_type == TXN_REDEEM:
        values["points_redeemed"] = Customer.points_redeemed + (-delta)

    stmt = update(Customer).where(Customer.id == customer_id)
    if delta < 0:
        stmt = stmt.where(Customer.points + delta >= 0)
    result = db.session.execute(
        stmt.values(**values).execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        available = get_balance(customer_id)  # raises NotFound for unknown ids
        raise InsufficientPoints(required=-delta, available=available)

    customer = db.session.get(Customer, customer_id, populate_existing=True)
    new_balance = customer.points

    db.session.add(PointsTransaction(
        org_id=customer.org_id,
        customer_id=customer_id,
        transaction_type=transaction_type,
        points=delta,
        balance_after=new_balance,
        referral_id=referral_id,
        bill_submission_id=bill_submission_id,
        sale_reference=sale_reference,
        reason=reason,
    ))
    db.session.flush()

    if commit:
        db.session.commit()
    return new_balance


def _require_customer(org_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
    if not customer:
        raise NotFound("Customer not found")
    return customer


def redeem_points(org_id: int, customer_id: int, points: int, description: str | None = None) -> dict:
    """Spend points on a reward."""
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise InvalidInput("Must redeem at least 1 point")

    def _op():
        _require_customer(org_id, customer_id)
        try:
            balance = apply_points(
                customer_id,
                -points,
                transaction_type=TXN_REDEEM,
                reason=description or "Points redeemed",
            )
        except InsufficientPoints:
            db.session.rollback()
            raise
        db.session.commit()
        return balance

    remaining = run_with_retry(_op)
    return {
        "success": True,
        "points_redeemed": points,
        "remaining_points": remaining,
        "reward_description": description or "Points redeemed successfully",
    }


def adjust_points(org_id: int, customer_id: int, delta: int, reason: str) -> int:
    """Manual correction by staff; positive or negative."""
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidInput("Adjustment must be a non-zero integer")
    if not reason or not reason.strip():
        raise InvalidInput("Adjustment reason is required")

    def _op():
        _require_customer(org_id, customer_id)
        try:
            balance = apply_points(customer_id, delta, transaction_type=TXN_ADJUST, reason=reason.strip())
        except InsufficientPoints:
            db.session.rollback()
            raise
        db.session.commit()
        return balance

    return run_with_retry(_op)


def process_sale(
    org_id: int,
    customer_id: int,
    amount=None,
    *,
    campaign_id: int | None = None,
    sale_reference: str | None = None,
    lines: list[SaleLine] | None = None,
) -> dict:
    """Award points for a completed POS sale, optionally itemised."""
    customer = _require_customer(org_id, customer_id)
    if not customer.is_active:
        raise Inactive("Customer is not active")
    campaign = None
    if campaign_id is not None:
        campaign = db.session.query(Campaign).filter_by(id=campaign_id, org_id=org_id).first()
        if not campaign:
            raise NotFound("Campaign not found")
        if not campaign.is_running(utcnow()):
            raise Inactive("Campaign is not active")

    calculation = calculate_sale_points(amount, campaign, lines)

    def _op():
        balance = apply_points(
            customer.id,
            calculation.total_points,
            transaction_type=TXN_EARN,
            reason="Sale" + (f" {sale_reference}" if sale_reference else ""),
            sale_reference=sale_reference,
        )
        db.session.commit()
        return balance

    balance = run_with_retry(_op)
    return {
        "customer_id": customer.id,
        "points_earned": calculation.total_points,
        "total_points": balance,
        "calculation": calculation.to_dict(),
    }


def list_transactions(org_id: int, customer_id: int, limit: int = 100) -> list[dict]:
    _require_customer(org_id, customer_id)
    rows = (
        db.session.query(PointsTransaction)
        .filter_by(customer_id=customer_id)
        .order_by(PointsTransaction.occurred_at.desc(), PointsTransaction.id.desc())
        .limit(limit)
        .all()
    )
    return [r.to_dict() for r in rows]
