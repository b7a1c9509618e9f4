from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z, within_window

REWARD_FIXED = "fixed"
REWARD_PERCENTAGE = "percentage"
REWARD_DEFAULT_PER_AMOUNT = "default_per_amount"
VALID_REWARD_TYPES = {REWARD_FIXED, REWARD_PERCENTAGE, REWARD_DEFAULT_PER_AMOUNT}


class Campaign(db.Model):
    """
    Time-bounded referral campaign.

    reward_type selects how points are computed for redemptions and bills:
    - fixed: reward_per_referral points
    - percentage: floor(amount * percentage_rate / 100)
    - default_per_amount: floor(amount / 10)

    Counters (participant_count, referrals_count) are bumped by the
    redemption workflow, never by clients.
    """
    __tablename__ = "campaigns"
    __table_args__ = (
        db.CheckConstraint("end_date >= start_date", name="ck_campaigns_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    reward_type = db.Column(db.String(32), nullable=False, default=REWARD_FIXED)
    reward_per_referral = db.Column(db.Integer, nullable=False, default=0)
    percentage_rate = db.Column(db.Numeric(5, 2), nullable=True)
    minimum_purchase_cents = db.Column(db.Integer, nullable=True)
    maximum_points = db.Column(db.Integer, nullable=True)

    goal_count = db.Column(db.Integer, nullable=False, default=100)
    participant_count = db.Column(db.Integer, nullable=False, default=0)
    referrals_count = db.Column(db.Integer, nullable=False, default=0)

    start_date = db.Column(db.DateTime(timezone=True), nullable=False)
    end_date = db.Column(db.DateTime(timezone=True), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("campaigns", lazy=True))

    def is_running(self, now) -> bool:
        return bool(self.is_active) and within_window(now, self.start_date, self.end_date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "description": self.description,
            "reward_type": self.reward_type,
            "reward_per_referral": self.reward_per_referral,
            "percentage_rate": str(self.percentage_rate) if self.percentage_rate is not None else None,
            "minimum_purchase_cents": self.minimum_purchase_cents,
            "maximum_points": self.maximum_points,
            "goal_count": self.goal_count,
            "participant_count": self.participant_count,
            "referrals_count": self.referrals_count,
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
