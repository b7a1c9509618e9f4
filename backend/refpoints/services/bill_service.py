"""
Bill Submission Service

LIFECYCLE: pending -> approved | rejected, exactly once.

The status flip is a conditional UPDATE (... WHERE verification_status =
'pending'), so two staff members verifying the same bill at once cannot
both win. Approval awards points through apply_points in the same
transaction; rejection never touches points.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import update

from ..errors import Inactive, InvalidInput, InvalidTransition, NotFound
from ..extensions import db
from ..models import BillSubmission, Campaign, Customer
from ..models.bills import STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from ..models.communications import KIND_BILL
from refpoints.time_utils import utcnow
from . import notification_service
from .concurrency import run_with_retry
from .notifier import NotifierSession
from .points_service import TXN_EARN, apply_points, calculate_sale_points, to_amount


def _amount_to_cents(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


def submit_bill(
    org_id: int,
    customer_id: int,
    total_amount,
    campaign_id: int | None = None,
    bill_reference: str | None = None,
) -> BillSubmission:
    amount = to_amount(total_amount)
    if amount <= 0:
        raise InvalidInput("total_amount must be > 0")

    customer = db.session.query(Customer).filter_by(id=customer_id, org_id=org_id).first()
    if not customer:
        raise NotFound("Customer not found")
    if not customer.is_active:
        raise Inactive("Customer is not active")
    if campaign_id is not None and not db.session.query(Campaign).filter_by(id=campaign_id, org_id=org_id).first():
        raise NotFound("Campaign not found")

    submission = BillSubmission(
        org_id=org_id,
        customer_id=customer_id,
        campaign_id=campaign_id,
        total_amount_cents=_amount_to_cents(amount),
        bill_reference=bill_reference,
        verification_status=STATUS_PENDING,
    )
    db.session.add(submission)
    db.session.commit()
    return submission


def get_submission(org_id: int, submission_id: int) -> BillSubmission:
    submission = db.session.query(BillSubmission).filter_by(id=submission_id, org_id=org_id).first()
    if not submission:
        raise NotFound("Bill submission not found")
    return submission


def list_pending(org_id: int) -> list[dict]:
    rows = (
        db.session.query(BillSubmission)
        .filter_by(org_id=org_id, verification_status=STATUS_PENDING)
        .order_by(BillSubmission.created_at.asc(), BillSubmission.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]


def list_for_customer(org_id: int, customer_id: int) -> list[dict]:
    rows = (
        db.session.query(BillSubmission)
        .filter_by(org_id=org_id, customer_id=customer_id)
        .order_by(BillSubmission.created_at.desc(), BillSubmission.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]


def points_for_bill(submission: BillSubmission) -> int:
    """Campaign rule applied to the bill total; no campaign means the default rule."""
    amount = Decimal(submission.total_amount_cents) / 100
    return calculate_sale_points(amount, submission.campaign).total_points


def verify_bill(
    org_id: int,
    submission_id: int,
    status: str,
    verified_by: str,
    *,
    points_awarded: int | None = None,
    notes: str | None = None,
    notifier: NotifierSession | None = None,
) -> BillSubmission:
    """
    Approve or reject a pending bill.

    points_awarded overrides the computed award on approval.
    """
    if status not in (STATUS_APPROVED, STATUS_REJECTED):
        raise InvalidInput("status must be 'approved' or 'rejected'")
    if not verified_by or not verified_by.strip():
        raise InvalidInput("verified_by is required")
    if points_awarded is not None:
        if isinstance(points_awarded, bool) or not isinstance(points_awarded, int) or points_awarded < 0:
            raise InvalidInput("pointsAwarded must be an integer >= 0")

    def _op():
        submission = get_submission(org_id, submission_id)
        if submission.verification_status != STATUS_PENDING:
            raise InvalidTransition(
                f"Bill submission is already {submission.verification_status}",
                details={"verification_status": submission.verification_status},
            )

        points = None
        if status == STATUS_APPROVED:
            points = points_awarded if points_awarded is not None else points_for_bill(submission)

        result = db.session.execute(
            update(BillSubmission)
            .where(BillSubmission.id == submission.id, BillSubmission.verification_status == STATUS_PENDING)
            .values(
                verification_status=status,
                points_awarded=points,
                verified_by=verified_by.strip(),
                verified_at=utcnow(),
                notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise InvalidTransition("Bill submission was already verified")

        balance = None
        if status == STATUS_APPROVED:
            balance = apply_points(
                submission.customer_id,
                points,
                transaction_type=TXN_EARN,
                reason=f"Bill {submission.bill_reference or submission.id} approved",
                bill_submission_id=submission.id,
            )
        db.session.commit()
        return balance

    balance = run_with_retry(_op)
    submission = db.session.get(BillSubmission, submission_id, populate_existing=True)

    customer = submission.customer
    if status == STATUS_APPROVED:
        message = notification_service.BILL_APPROVED_TEMPLATE.format(
            name=customer.name, points=submission.points_awarded, balance=balance,
        )
    else:
        message = notification_service.BILL_REJECTED_TEMPLATE.format(name=customer.name)
    notification_service.notify(notifier, org_id, customer.phone_number, message, KIND_BILL, customer_id=customer.id)
    return submission
