# Overview: Coupon issuing/inspection and the referral redemption endpoint.

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..extensions import NOTIFIER_KEY
from ..schemas import CouponIssue, RedemptionRequest
from ..services import coupon_ledger
from ..services.redemption_service import RedemptionWorkflow
from ..time_utils import utcnow

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")
referrals_bp = Blueprint("referrals", __name__, url_prefix="/api/referrals")


@coupons_bp.route("", methods=["POST"])
@require_tenant
def issue_coupon():
    try:
        body = CouponIssue.from_payload(request.get_json(silent=True))
        coupon = coupon_ledger.issue(
            g.org_id,
            value=body.value,
            usage_limit=body.usage_limit,
            campaign_id=body.campaign_id,
            customer_id=body.customer_id,
        )
        return jsonify(coupon.to_dict()), 201
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue coupon")
        return jsonify({"message": "Internal server error"}), 500


@coupons_bp.route("", methods=["GET"])
@require_tenant
def list_coupons():
    customer_id = request.args.get("customer_id", type=int)
    return jsonify(coupon_ledger.list_coupons(g.org_id, customer_id=customer_id))


@coupons_bp.route("/active", methods=["GET"])
@require_tenant
def list_active_coupons():
    return jsonify(coupon_ledger.list_coupons(g.org_id, active_only=True))


@coupons_bp.route("/verify/<string:code>", methods=["GET"])
@require_tenant
def verify_coupon(code: str):
    """
    Check a code without using it.

    Always 200 for an existing coupon; `valid` says whether it can be
    redeemed right now and `reason` says why not.
    """
    try:
        coupon = coupon_ledger.get_by_code(g.org_id, code)
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code

    body = {"valid": True, "coupon": coupon.to_dict()}
    try:
        coupon_ledger.check_redeemable(coupon)
        if coupon.campaign is not None and not coupon.campaign.is_running(utcnow()):
            body.update(valid=False, reason="Inactive")
    except RewardsError as e:
        body.update(valid=False, reason=e.code)
    return jsonify(body)


@coupons_bp.route("/<string:code>/deactivate", methods=["POST"])
@require_tenant
def deactivate_coupon(code: str):
    try:
        return jsonify(coupon_ledger.deactivate(g.org_id, code).to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


def _redeem(body: RedemptionRequest):
    workflow = RedemptionWorkflow(current_app.extensions.get(NOTIFIER_KEY))
    try:
        attempt = workflow.redeem(
            g.org_id,
            body.code,
            body.referred_customer_name,
            body.referred_customer_phone,
            sale_amount=body.sale_amount,
        )
        return jsonify(attempt.to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem referral code")
        return jsonify({"message": "Internal server error"}), 500


@referrals_bp.route("/redeem", methods=["POST"])
@require_tenant
def redeem_referral():
    """
    Redeem a referral code for a referred customer.

    Body: {code, referredCustomerName, referredCustomerPhone, saleAmount?}
    Returns: {pointsEarned, totalPoints, ...}
    """
    try:
        body = RedemptionRequest.from_payload(request.get_json(silent=True))
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    return _redeem(body)


@coupons_bp.route("/<string:code>/redeem", methods=["POST"])
@require_tenant
def redeem_coupon(code: str):
    try:
        body = RedemptionRequest.from_payload(request.get_json(silent=True), code=code)
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    return _redeem(body)
