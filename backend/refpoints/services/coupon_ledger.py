# Overview: Coupon Ledger; issues codes and counts redemptions against usage limits.

"""
Coupon Ledger Invariants (authoritative)

- A code is allocated once per org and never recycled.
- usage_count never exceeds usage_limit. redeem() increments with a single
  conditional UPDATE (... WHERE is_active AND usage_count < usage_limit),
  so of N concurrent redemptions at most the remaining uses succeed.
- The increment that reaches usage_limit also deactivates the coupon, in
  the same statement.
- redeem() never commits: the caller owns the transaction so the usage
  increment and the points award land together or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import case, exists, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import Contention, GenerationExhausted, Inactive, InvalidConfiguration, LimitExceeded, NotFound
from ..extensions import db
from ..models import Campaign, Coupon, Customer
from ..time_utils import utcnow
from . import code_generator


@dataclass(frozen=True)
class CouponSnapshot:
    """Coupon state right after a successful redemption."""
    id: int
    code: str
    value: int
    usage_count: int
    usage_limit: int
    is_active: bool
    campaign_id: int | None
    customer_id: int | None

    @classmethod
    def from_model(cls, coupon: Coupon) -> "CouponSnapshot":
        return cls(
            id=coupon.id,
            code=coupon.code,
            value=coupon.value,
            usage_count=coupon.usage_count,
            usage_limit=coupon.usage_limit,
            is_active=coupon.is_active,
            campaign_id=coupon.campaign_id,
            customer_id=coupon.customer_id,
        )


def code_exists(org_id: int, code: str) -> bool:
    """Collision oracle: a code is taken if any coupon or customer in the org holds it."""
    in_coupons = db.session.execute(
        select(exists().where(Coupon.org_id == org_id, Coupon.code == code))
    ).scalar()
    if in_coupons:
        return True
    return bool(db.session.execute(
        select(exists().where(Customer.org_id == org_id, Customer.referral_code == code))
    ).scalar())


def new_code(org_id: int) -> str:
    return code_generator.generate(
        lambda candidate: code_exists(org_id, candidate),
        length=current_app.config.get("REFERRAL_CODE_LENGTH", code_generator.DEFAULT_CODE_LENGTH),
        max_attempts=current_app.config.get("CODE_GENERATION_ATTEMPTS", code_generator.DEFAULT_MAX_ATTEMPTS),
    )


def _validate_issue(value, usage_limit) -> None:
    if isinstance(usage_limit, bool) or not isinstance(usage_limit, int) or usage_limit <= 0:
        raise InvalidConfiguration("usage_limit must be a positive integer")
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidConfiguration("value must be an integer >= 0")


def issue(
    org_id: int,
    *,
    value: int,
    usage_limit: int,
    campaign_id: int | None = None,
    customer_id: int | None = None,
    code: str | None = None,
    commit: bool = True,
) -> Coupon:
    """
    Issue a new coupon with usage_count=0 and is_active=True.

    `code` is only passed for a customer's personal referral coupon, which
    reuses the customer's referral code; otherwise a fresh code is drawn.
    """
    _validate_issue(value, usage_limit)

    if campaign_id is not None:
        if not db.session.query(Campaign).filter_by(id=campaign_id, org_id=org_id).first():
            raise NotFound("Campaign not found")
    if customer_id is not None:
        if not db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first():
            raise NotFound("Customer not found")

    attempts = current_app.config.get("CODE_GENERATION_ATTEMPTS", code_generator.DEFAULT_MAX_ATTEMPTS)
    for _ in range(attempts):
        coupon = Coupon(
            org_id=org_id,
            code=code_generator.normalize_code(code) if code else new_code(org_id),
            customer_id=customer_id,
            campaign_id=campaign_id,
            value=value,
            usage_limit=usage_limit,
            usage_count=0,
            is_active=True,
        )
        db.session.add(coupon)
        try:
            db.session.flush()
        except IntegrityError:
            # Another writer took the same code between the check and the insert
            db.session.rollback()
            if code:
                raise InvalidConfiguration("Coupon code already issued", details={"code": code})
            if not commit:
                raise Contention("Coupon code collided with a concurrent issue, please try again")
            continue
        if commit:
            db.session.commit()
        return coupon

    raise GenerationExhausted("Could not allocate a unique coupon code")


def get_by_code(org_id: int, code: str) -> Coupon:
    coupon = (
        db.session.query(Coupon)
        .filter_by(org_id=org_id, code=code_generator.normalize_code(code))
        .first()
    )
    if not coupon:
        raise NotFound("Coupon not found", details={"code": code_generator.normalize_code(code)})
    return coupon


def check_redeemable(coupon: Coupon) -> None:
    if not coupon.is_active:
        if coupon.usage_count >= coupon.usage_limit:
            raise LimitExceeded("Coupon usage limit reached", details={"code": coupon.code})
        raise Inactive("Coupon is not active", details={"code": coupon.code})
    if coupon.usage_count >= coupon.usage_limit:
        raise LimitExceeded("Coupon usage limit reached", details={"code": coupon.code})


def validate(org_id: int, code: str) -> Coupon:
    """Look up a coupon and confirm it can be redeemed right now. No writes."""
    coupon = get_by_code(org_id, code)
    check_redeemable(coupon)
    return coupon


def redeem(org_id: int, code: str) -> CouponSnapshot:
    """
    Count one use of the coupon.

    Raises NotFound, Inactive or LimitExceeded. Does not commit.
    """
    coupon = validate(org_id, code)
    reaches_limit = Coupon.usage_count + 1 >= Coupon.usage_limit

    result = db.session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            Coupon.is_active.is_(True),
            Coupon.usage_count < Coupon.usage_limit,
        )
        .values(
            usage_count=Coupon.usage_count + 1,
            is_active=case((reaches_limit, False), else_=Coupon.is_active),
            deactivated_at=case((reaches_limit, utcnow()), else_=Coupon.deactivated_at),
            version_id=Coupon.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )

    refreshed = db.session.get(Coupon, coupon.id, populate_existing=True)
    if result.rowcount != 1:
        # Lost the race: someone else used the last slot or switched it off
        check_redeemable(refreshed)
        raise LimitExceeded("Coupon usage limit reached", details={"code": refreshed.code})

    return CouponSnapshot.from_model(refreshed)


def deactivate(org_id: int, code: str) -> Coupon:
    coupon = get_by_code(org_id, code)
    if coupon.is_active:
        coupon.is_active = False
        coupon.deactivated_at = utcnow()
        db.session.commit()
    return coupon


def list_coupons(org_id: int, active_only: bool = False, customer_id: int | None = None) -> list[dict]:
    q = db.session.query(Coupon).filter_by(org_id=org_id)
    if active_only:
        q = q.filter(Coupon.is_active.is_(True), Coupon.usage_count < Coupon.usage_limit)
    if customer_id is not None:
        q = q.filter_by(customer_id=customer_id)
    return [c.to_dict() for c in q.order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()]
