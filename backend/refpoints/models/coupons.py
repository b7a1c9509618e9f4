from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z


class Coupon(db.Model):
    """
    Redeemable code worth `value` points.

    INVARIANTS:
    - code is unique per org and never changes or gets reissued
    - 0 <= usage_count <= usage_limit, usage_count only goes up
    - is_active flips to False when usage_count reaches usage_limit

    usage_count is only written by coupon_ledger.redeem through a
    conditional UPDATE, so concurrent redemptions cannot overshoot.
    """
    __tablename__ = "coupons"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_coupons_org_code"),
        db.CheckConstraint("usage_limit > 0", name="ck_coupons_usage_limit_positive"),
        db.CheckConstraint("usage_count >= 0 AND usage_count <= usage_limit", name="ck_coupons_usage_bounds"),
        db.CheckConstraint("value >= 0", name="ck_coupons_value_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)  # Referrer who owns the code
    campaign_id = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=True, index=True)

    value = db.Column(db.Integer, nullable=False)
    usage_limit = db.Column(db.Integer, nullable=False)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("coupons", lazy=True))
    campaign = db.relationship("Campaign", backref=db.backref("coupons", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_uses(self) -> int:
        return max(self.usage_limit - self.usage_count, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "customer_id": self.customer_id,
            "campaign_id": self.campaign_id,
            "value": self.value,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "remaining_uses": self.remaining_uses,
            "is_active": self.is_active,
            "deactivated_at": to_utc_z(self.deactivated_at),
            "created_at": to_utc_z(self.created_at),
        }
