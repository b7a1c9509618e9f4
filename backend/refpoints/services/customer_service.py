# Overview: Service-layer operations for customer registration and lookup.

from __future__ import annotations

import logging
import re

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import Contention, DuplicateCustomer, InvalidInput, NotFound
from ..extensions import db
from ..models import Coupon, Customer
from refpoints.time_utils import utcnow
from ..models.campaigns import REWARD_FIXED
from . import campaign_service, coupon_ledger
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10


def normalize_phone(phone: str | None) -> str:
    """Strip everything but digits; shops key customers by the bare number."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) < MIN_PHONE_DIGITS:
        raise InvalidInput("Invalid phone number", details={"phone_number": phone})
    return digits


def get_customer(org_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
    if not customer:
        raise NotFound("Customer not found")
    return customer


def find_by_phone(org_id: int, phone: str) -> Customer | None:
    return db.session.query(Customer).filter_by(org_id=org_id, phone_number=normalize_phone(phone)).first()


def list_customers(org_id: int, active_only: bool = False) -> list[dict]:
    q = db.session.query(Customer).filter_by(org_id=org_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [c.to_dict() for c in q.order_by(Customer.created_at.desc(), Customer.id.desc()).all()]


def create_customer(org_id: int, name: str, phone: str) -> Customer:
    """
    Insert a customer with a fresh referral code and issue the matching
    personal referral coupon. Flushes, never commits.
    """
    name = (name or "").strip()
    if not name:
        raise InvalidInput("Name is required")
    phone = normalize_phone(phone)

    code = coupon_ledger.new_code(org_id)
    customer = Customer(org_id=org_id, name=name, phone_number=phone, referral_code=code)
    db.session.add(customer)
    db.session.flush()

    campaign = campaign_service.current_campaign(org_id)
    if campaign is not None and campaign.reward_type == REWARD_FIXED:
        value = campaign.reward_per_referral
    else:
        value = current_app.config.get("DEFAULT_REFERRAL_REWARD", 10)

    coupon_ledger.issue(
        org_id,
        value=value,
        usage_limit=current_app.config.get("DEFAULT_COUPON_USAGE_LIMIT", 100),
        campaign_id=campaign.id if campaign else None,
        customer_id=customer.id,
        code=code,
        commit=False,
    )
    return customer


def register_customer(org_id: int, name: str, phone: str) -> tuple[Customer, bool]:
    """
    Register a customer, or return the existing one for a known phone.

    Returns (customer, created).
    """
    existing = find_by_phone(org_id, phone)
    if existing:
        return existing, False

    try:
        customer = create_customer(org_id, name, phone)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        # Lost a race with a concurrent registration of the same phone
        existing = find_by_phone(org_id, phone)
        if existing:
            return existing, False
        raise Contention("Could not register customer, please try again")

    logger.info("Customer %s registered with referral code %s", customer.id, customer.referral_code)
    return customer, True


def update_customer(org_id: int, customer_id: int, *, name: str | None = None, phone: str | None = None) -> Customer:
    """
    Edit a customer's profile (name and phone number).

    Balances are not editable here; they only move through
    points_service.apply_points so every change has a ledger row.
    """
    if name is not None:
        name = name.strip()
        if not name:
            raise InvalidInput("Name is required")
    if phone is not None:
        phone = normalize_phone(phone)

    def _op():
        customer = get_customer(org_id, customer_id)
        if phone is not None and phone != customer.phone_number:
            if find_by_phone(org_id, phone) is not None:
                raise DuplicateCustomer("Phone number already registered", details={"phone_number": phone})
            customer.phone_number = phone
        if name is not None:
            customer.name = name
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise DuplicateCustomer("Phone number already registered", details={"phone_number": phone})
        return customer

    customer = run_with_retry(_op)
    logger.info("Customer %s profile updated", customer.id)
    return customer


def deactivate_customer(org_id: int, customer_id: int) -> Customer:
    """
    Soft-delete a customer.

    The row stays (referrals, bills and ledger rows point at it). The
    customer drops out of active listings and broadcasts, and their
    personal referral coupons stop accepting redemptions.
    """
    def _op():
        customer = get_customer(org_id, customer_id)
        if not customer.is_active:
            return customer
        customer.is_active = False
        db.session.execute(
            update(Coupon)
            .where(Coupon.org_id == org_id, Coupon.customer_id == customer.id, Coupon.is_active.is_(True))
            .values(is_active=False, deactivated_at=utcnow(), version_id=Coupon.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        logger.info("Customer %s deactivated", customer.id)
        return customer

    return run_with_retry(_op)
