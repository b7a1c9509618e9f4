r"""
Referral Redemption Workflow

STATES:
    PENDING -> VALIDATED -> AWARDED -> NOTIFIED
        \           \
         +-----------+--> REJECTED

- PENDING -> VALIDATED: coupon exists, is active, is under its limit, the
  campaign (if any) is running, and this (code, referred phone) pair has
  not been awarded before.
- VALIDATED -> AWARDED: coupon usage increment, referral audit row, points
  award (with its ledger row) and referral counters commit as ONE
  transaction. Any failure rolls all of it back.
- AWARDED -> NOTIFIED: best-effort message after commit. A failed send
  leaves the attempt AWARDED; the award is already durable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateRedemption, Inactive, InvalidInput, InvalidTransition, RewardsError
from ..extensions import db
from ..models import Campaign, Customer, Referral
from ..models.campaigns import REWARD_FIXED
from ..models.communications import KIND_REWARD, KIND_WELCOME
from refpoints.time_utils import utcnow
from . import code_generator, coupon_ledger, customer_service, notification_service
from .concurrency import RetryableConflict, run_with_retry
from .notifier import NotifierSession
from .points_service import TXN_EARN, apply_points, campaign_rule, compute_points

logger = logging.getLogger(__name__)


class RedemptionState(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    AWARDED = "awarded"
    NOTIFIED = "notified"
    REJECTED = "rejected"


ALLOWED_TRANSITIONS = {
    RedemptionState.PENDING: {RedemptionState.VALIDATED, RedemptionState.REJECTED},
    RedemptionState.VALIDATED: {RedemptionState.AWARDED, RedemptionState.REJECTED},
    RedemptionState.AWARDED: {RedemptionState.NOTIFIED},
    RedemptionState.NOTIFIED: set(),
    RedemptionState.REJECTED: set(),
}


@dataclass
class RedemptionAttempt:
    code: str
    referred_name: str
    referred_phone: str
    sale_amount: Decimal | None = None

    state: RedemptionState = RedemptionState.PENDING
    history: list[RedemptionState] = field(default_factory=list)
    points_earned: int = 0
    total_points: int | None = None
    referral_id: int | None = None
    awarded_customer_id: int | None = None
    referred_customer_id: int | None = None
    new_customer: bool = False
    error: RewardsError | None = None

    def transition(self, target: RedemptionState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot move redemption from {self.state.value} to {target.value}")
        self.history.append(self.state)
        self.state = target

    def restart(self) -> None:
        """Back to PENDING before a retried transaction; nothing was committed."""
        if self.state not in (RedemptionState.PENDING, RedemptionState.VALIDATED):
            raise InvalidTransition(f"Cannot restart a redemption in state {self.state.value}")
        self.state = RedemptionState.PENDING
        self.history.clear()

    def reject(self, error: RewardsError) -> None:
        self.error = error
        self.transition(RedemptionState.REJECTED)

    @property
    def succeeded(self) -> bool:
        return self.state in (RedemptionState.AWARDED, RedemptionState.NOTIFIED)

    def to_dict(self) -> dict:
        return {
            "pointsEarned": self.points_earned,
            "totalPoints": self.total_points,
            "state": self.state.value,
            "referralId": self.referral_id,
            "awardedCustomerId": self.awarded_customer_id,
            "referredCustomerId": self.referred_customer_id,
            "notified": self.state == RedemptionState.NOTIFIED,
        }


def referral_points(coupon, campaign: Campaign | None, sale_amount: Decimal | None) -> int:
    """
    Coupons carry a fixed value; campaigns with an amount-based rule price
    the referral off the referred sale instead (0 when no sale was given).
    """
    if campaign is None or campaign.reward_type == REWARD_FIXED:
        points = compute_points(REWARD_FIXED, sale_amount or 0, coupon.value)
    else:
        rule_type, param = campaign_rule(campaign)
        points = compute_points(rule_type, sale_amount or 0, param)
    if campaign is not None and campaign.maximum_points is not None:
        points = min(points, campaign.maximum_points)
    return points


def _already_redeemed(org_id: int, code: str, phone: str) -> bool:
    return db.session.query(Referral.id).filter_by(
        org_id=org_id, coupon_code=code, referred_phone=phone
    ).first() is not None


class RedemptionWorkflow:
    """
    Binds a presented code to a referred customer and awards the points.

    The notifier session is owned by the app factory and passed in; the
    workflow never connects or disconnects it.
    """

    def __init__(self, notifier: NotifierSession | None = None):
        self.notifier = notifier

    def redeem(
        self,
        org_id: int,
        code: str,
        referred_name: str,
        referred_phone: str,
        sale_amount: Decimal | None = None,
    ) -> RedemptionAttempt:
        attempt = RedemptionAttempt(
            code=code_generator.normalize_code(code),
            referred_name=(referred_name or "").strip(),
            referred_phone=referred_phone,
            sale_amount=sale_amount,
        )

        try:
            if not attempt.code:
                raise InvalidInput("Coupon code is required")
            if not attempt.referred_name:
                raise InvalidInput("Referred customer name is required")
            attempt.referred_phone = customer_service.normalize_phone(referred_phone)
            run_with_retry(lambda: self._validate_and_award(org_id, attempt))
        except RewardsError as exc:
            attempt.reject(exc)
            logger.info("Redemption of %s rejected: %s", attempt.code, exc.code)
            raise

        logger.info(
            "Redemption of %s awarded %d points to customer %s",
            attempt.code, attempt.points_earned, attempt.awarded_customer_id,
        )
        self._notify(org_id, attempt)
        return attempt

    def _validate_and_award(self, org_id: int, attempt: RedemptionAttempt) -> None:
        attempt.restart()
        try:
            self._award(org_id, attempt)
        except IntegrityError:
            db.session.rollback()
            if _already_redeemed(org_id, attempt.code, attempt.referred_phone):
                raise DuplicateRedemption(
                    "This code was already redeemed for this phone number",
                    details={"code": attempt.code},
                )
            # e.g. a concurrent redemption inserted the same new customer
            raise RetryableConflict("Redemption conflicted with a concurrent insert")
        except RewardsError:
            db.session.rollback()
            raise

    def _award(self, org_id: int, attempt: RedemptionAttempt) -> None:
        coupon = coupon_ledger.get_by_code(org_id, attempt.code)
        referrer = coupon.customer
        campaign = coupon.campaign

        if referrer is not None and referrer.phone_number == attempt.referred_phone:
            raise InvalidInput("Customers cannot redeem their own referral code")
        # A repeat pair is a duplicate even when that use filled the coupon
        if _already_redeemed(org_id, coupon.code, attempt.referred_phone):
            raise DuplicateRedemption(
                "This code was already redeemed for this phone number",
                details={"code": coupon.code},
            )
        coupon_ledger.check_redeemable(coupon)
        if campaign is not None and not campaign.is_running(utcnow()):
            raise Inactive("Campaign is not active", details={"campaign_id": campaign.id})

        points = referral_points(coupon, campaign, attempt.sale_amount)
        attempt.transition(RedemptionState.VALIDATED)

        snapshot = coupon_ledger.redeem(org_id, coupon.code)

        referred = db.session.query(Customer).filter_by(org_id=org_id, phone_number=attempt.referred_phone).first()
        new_customer = referred is None
        if new_customer:
            referred = customer_service.create_customer(org_id, attempt.referred_name, attempt.referred_phone)

        beneficiary_id = snapshot.customer_id if snapshot.customer_id is not None else referred.id

        referral = Referral(
            org_id=org_id,
            coupon_id=snapshot.id,
            coupon_code=snapshot.code,
            campaign_id=snapshot.campaign_id,
            referrer_customer_id=snapshot.customer_id,
            referred_customer_id=referred.id,
            referred_name=attempt.referred_name,
            referred_phone=attempt.referred_phone,
            awarded_customer_id=beneficiary_id,
            points_awarded=points,
            sale_amount_cents=int(attempt.sale_amount * 100) if attempt.sale_amount is not None else None,
        )
        db.session.add(referral)
        db.session.flush()

        balance = apply_points(
            beneficiary_id,
            points,
            transaction_type=TXN_EARN,
            reason=f"Referral via code {snapshot.code}",
            referral_id=referral.id,
        )

        if snapshot.customer_id is not None:
            db.session.execute(
                update(Customer)
                .where(Customer.id == snapshot.customer_id)
                .values(total_referrals=Customer.total_referrals + 1, version_id=Customer.version_id + 1)
                .execution_options(synchronize_session=False)
            )
        if snapshot.campaign_id is not None:
            counters = {"referrals_count": Campaign.referrals_count + 1}
            if new_customer:
                counters["participant_count"] = Campaign.participant_count + 1
            db.session.execute(
                update(Campaign)
                .where(Campaign.id == snapshot.campaign_id)
                .values(**counters)
                .execution_options(synchronize_session=False)
            )

        db.session.commit()

        attempt.points_earned = points
        attempt.total_points = balance
        attempt.referral_id = referral.id
        attempt.awarded_customer_id = beneficiary_id
        attempt.referred_customer_id = referred.id
        attempt.new_customer = new_customer
        attempt.transition(RedemptionState.AWARDED)

    def _notify(self, org_id: int, attempt: RedemptionAttempt) -> None:
        if self.notifier is None:
            return

        beneficiary = db.session.get(Customer, attempt.awarded_customer_id, populate_existing=True)
        result = notification_service.notify(
            self.notifier,
            org_id,
            beneficiary.phone_number,
            notification_service.REWARD_TEMPLATE.format(
                name=beneficiary.name, points=attempt.points_earned, balance=beneficiary.points,
            ),
            KIND_REWARD,
            customer_id=beneficiary.id,
        )

        if attempt.new_customer and attempt.referred_customer_id != beneficiary.id:
            referred = db.session.get(Customer, attempt.referred_customer_id)
            notification_service.notify(
                self.notifier,
                org_id,
                referred.phone_number,
                notification_service.WELCOME_TEMPLATE.format(name=referred.name, code=referred.referral_code),
                KIND_WELCOME,
                customer_id=referred.id,
            )

        if result.success:
            attempt.transition(RedemptionState.NOTIFIED)
