from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..extensions import NOTIFIER_KEY
from ..models.communications import KIND_WELCOME
from ..schemas import CustomerRegistration, CustomerUpdate, PointsAdjustment, PointsRedemption
from ..services import bill_service, customer_service, notification_service, points_service

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.route("", methods=["POST"])
@require_tenant
def register_customer():
    """
    Register a customer (idempotent by phone number).

    Returns 201 with the new customer, or 200 with the existing one.
    """
    try:
        body = CustomerRegistration.from_payload(request.get_json(silent=True))
        customer, created = customer_service.register_customer(g.org_id, body.name, body.phone_number)
        if created:
            notification_service.notify(
                current_app.extensions.get(NOTIFIER_KEY),
                g.org_id,
                customer.phone_number,
                notification_service.WELCOME_TEMPLATE.format(name=customer.name, code=customer.referral_code),
                KIND_WELCOME,
                customer_id=customer.id,
            )
        return jsonify({**customer.to_dict(), "created": created}), 201 if created else 200
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.route("", methods=["GET"])
@require_tenant
def list_customers():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify(customer_service.list_customers(g.org_id, active_only))


@customers_bp.route("/<int:customer_id>", methods=["GET"])
@require_tenant
def get_customer(customer_id: int):
    try:
        return jsonify(customer_service.get_customer(g.org_id, customer_id).to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.route("/<int:customer_id>", methods=["PATCH"])
@require_tenant
def update_customer(customer_id: int):
    """Edit name and/or phone number. Balances cannot be set through this route."""
    try:
        body = CustomerUpdate.from_payload(request.get_json(silent=True))
        customer = customer_service.update_customer(
            g.org_id, customer_id, name=body.name, phone=body.phone_number,
        )
        return jsonify(customer.to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.route("/<int:customer_id>", methods=["DELETE"])
@require_tenant
def deactivate_customer(customer_id: int):
    """Soft-delete: the customer is deactivated, never removed."""
    try:
        customer = customer_service.deactivate_customer(g.org_id, customer_id)
        return jsonify({"message": "Customer deactivated", "customer": customer.to_dict()})
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate customer")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.route("/<int:customer_id>/points", methods=["GET"])
@require_tenant
def get_points(customer_id: int):
    """Balance plus the most recent ledger rows."""
    limit = request.args.get("limit", 100, type=int)
    try:
        customer = customer_service.get_customer(g.org_id, customer_id)
        return jsonify({
            "customer_id": customer.id,
            "points": customer.points,
            "points_earned": customer.points_earned,
            "points_redeemed": customer.points_redeemed,
            "transactions": points_service.list_transactions(g.org_id, customer.id, limit=max(1, min(limit, 500))),
        })
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


@customers_bp.route("/<int:customer_id>/redeem-points", methods=["POST"])
@require_tenant
def redeem_points(customer_id: int):
    try:
        body = PointsRedemption.from_payload(request.get_json(silent=True))
        result = points_service.redeem_points(g.org_id, customer_id, body.points_to_redeem, body.reward_description)
        return jsonify(result)
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to redeem points")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.route("/<int:customer_id>/adjust-points", methods=["POST"])
@require_tenant
def adjust_points(customer_id: int):
    try:
        body = PointsAdjustment.from_payload(request.get_json(silent=True))
        balance = points_service.adjust_points(g.org_id, customer_id, body.points, body.reason)
        return jsonify({"customer_id": customer_id, "adjustment": body.points, "points": balance})
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust points")
        return jsonify({"message": "Internal server error"}), 500


@customers_bp.route("/<int:customer_id>/bills", methods=["GET"])
@require_tenant
def list_bills(customer_id: int):
    try:
        return jsonify(bill_service.list_for_customer(g.org_id, customer_id))
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
