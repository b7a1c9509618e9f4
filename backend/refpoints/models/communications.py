from __future__ import annotations

from ..extensions import db
from refpoints.time_utils import to_utc_z

KIND_WELCOME = "welcome_referral"
KIND_REWARD = "reward_earned"
KIND_BILL = "bill_verified"
KIND_BROADCAST = "broadcast"

STATUS_SENT = "sent"
STATUS_FAILED = "failed"


class NotificationLog(db.Model):
    """
    One row per outbound WhatsApp/SMS attempt.

    Delivery is best-effort: a failed row is the whole record of the
    failure, nothing is retried from here.
    """
    __tablename__ = "notification_logs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    phone_number = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=False)
    kind = db.Column(db.String(32), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, index=True)
    provider_message_id = db.Column(db.String(128), nullable=True)
    error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "phone_number": self.phone_number,
            "message": self.message,
            "kind": self.kind,
            "status": self.status,
            "provider_message_id": self.provider_message_id,
            "error": self.error,
            "created_at": to_utc_z(self.created_at),
        }
