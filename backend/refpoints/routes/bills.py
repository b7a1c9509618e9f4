from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..extensions import NOTIFIER_KEY
from ..schemas import BillSubmissionInput, BillVerification
from ..services import bill_service

bills_bp = Blueprint("bills", __name__, url_prefix="/api/bills")


@bills_bp.post("/submissions")
@require_tenant
def submit_bill():
    try:
        body = BillSubmissionInput.from_payload(request.get_json(silent=True))
        submission = bill_service.submit_bill(
            g.org_id,
            body.customer_id,
            body.total_amount,
            campaign_id=body.campaign_id,
            bill_reference=body.bill_reference,
        )
        return jsonify(submission.to_dict()), 201
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit bill")
        return jsonify({"message": "Internal server error"}), 500


@bills_bp.get("/submissions/pending")
@require_tenant
def list_pending():
    return jsonify(bill_service.list_pending(g.org_id))


@bills_bp.post("/submissions/<int:submission_id>/verify")
@require_tenant
def verify_bill(submission_id: int):
    """
    Approve or reject a pending bill.

    Body: {status: approved|rejected, verifiedBy, pointsAwarded?, notes?}
    A bill can be verified once; a second attempt answers 409.
    """
    try:
        body = BillVerification.from_payload(request.get_json(silent=True))
        submission = bill_service.verify_bill(
            g.org_id,
            submission_id,
            body.status,
            body.verified_by,
            points_awarded=body.points_awarded,
            notes=body.notes,
            notifier=current_app.extensions.get(NOTIFIER_KEY),
        )
        return jsonify(submission.to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to verify bill")
        return jsonify({"message": "Internal server error"}), 500
