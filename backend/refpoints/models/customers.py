from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z


class Customer(db.Model):
    """
    Shop customer with a personal referral code and a points balance.

    MULTI-TENANT: phone_number and referral_code are unique per organization.

    Points fields are written only by points_service.apply_points, which
    keeps them in step with the PointsTransaction ledger:
    - points: current balance (never negative)
    - points_earned / points_redeemed: lifetime totals
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "phone_number", name="uq_customers_org_phone"),
        db.UniqueConstraint("org_id", "referral_code", name="uq_customers_org_referral_code"),
        db.CheckConstraint("points >= 0", name="ck_customers_points_non_negative"),
        db.Index("ix_customers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(32), nullable=False)
    referral_code = db.Column(db.String(32), nullable=False)

    points = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    total_referrals = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    organization = db.relationship("Organization", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "phone_number": self.phone_number,
            "referral_code": self.referral_code,
            "points": self.points,
            "points_earned": self.points_earned,
            "points_redeemed": self.points_redeemed,
            "total_referrals": self.total_referrals,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PointsTransaction(db.Model):
    """
    Append-only ledger of points balance changes.

    TRANSACTION TYPES:
    - EARN: Points awarded (referral, approved bill, sale)
    - REDEEM: Points spent on a reward
    - ADJUST: Manual correction by shop staff

    IMMUTABLE: Records are never updated or deleted. Every change to
    Customer.points has exactly one row here, written in the same
    DB transaction.
    """
    __tablename__ = "points_transactions"
    __table_args__ = (
        db.Index("ix_points_txns_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # EARN, REDEEM, ADJUST
    points = db.Column(db.Integer, nullable=False)  # Positive for earn, negative for redeem
    balance_after = db.Column(db.Integer, nullable=False)

    referral_id = db.Column(db.Integer, db.ForeignKey("referrals.id"), nullable=True, index=True)
    bill_submission_id = db.Column(db.Integer, db.ForeignKey("bill_submissions.id"), nullable=True, index=True)
    sale_reference = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("points_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance_after": self.balance_after,
            "referral_id": self.referral_id,
            "bill_submission_id": self.bill_submission_id,
            "sale_reference": self.sale_reference,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
