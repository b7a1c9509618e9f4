from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z


class Referral(db.Model):
    """
    Redemption audit record: one row per awarded coupon redemption.

    IMMUTABLE: written once inside the redemption transaction, together
    with the coupon usage increment and the EARN ledger row.

    The (org_id, coupon_code, referred_phone) unique constraint is the
    duplicate-redemption guard.
    """
    __tablename__ = "referrals"
    __table_args__ = (
        db.UniqueConstraint("org_id", "coupon_code", "referred_phone", name="uq_referrals_code_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    coupon_code = db.Column(db.String(32), nullable=False, index=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=True, index=True)

    referrer_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    referred_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    referred_name = db.Column(db.String(255), nullable=False)
    referred_phone = db.Column(db.String(32), nullable=False)

    # Who received the points: the referrer, or the redeemer for unowned promo coupons
    awarded_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    points_awarded = db.Column(db.Integer, nullable=False)
    sale_amount_cents = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coupon_code": self.coupon_code,
            "campaign_id": self.campaign_id,
            "referrer_customer_id": self.referrer_customer_id,
            "referred_customer_id": self.referred_customer_id,
            "referred_name": self.referred_name,
            "referred_phone": self.referred_phone,
            "awarded_customer_id": self.awarded_customer_id,
            "points_awarded": self.points_awarded,
            "sale_amount_cents": self.sale_amount_cents,
            "created_at": to_utc_z(self.created_at),
        }
