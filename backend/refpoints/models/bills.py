from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
VERIFICATION_STATUSES = {STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED}


class BillSubmission(db.Model):
    """
    Customer-submitted purchase bill waiting for staff verification.

    LIFECYCLE: pending -> approved | rejected (both terminal).
    Approval is the only transition that awards points.
    """
    __tablename__ = "bill_submissions"
    __table_args__ = (
        db.Index("ix_bill_submissions_org_status", "org_id", "verification_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=True, index=True)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    bill_reference = db.Column(db.String(128), nullable=True)

    verification_status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING)
    points_awarded = db.Column(db.Integer, nullable=True)  # Set only on approval
    verified_by = db.Column(db.String(128), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("bill_submissions", lazy=True))
    campaign = db.relationship("Campaign")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "campaign_id": self.campaign_id,
            "total_amount_cents": self.total_amount_cents,
            "bill_reference": self.bill_reference,
            "verification_status": self.verification_status,
            "points_awarded": self.points_awarded,
            "verified_by": self.verified_by,
            "verified_at": to_utc_z(self.verified_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
