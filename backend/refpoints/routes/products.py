# Overview: Flask API routes for the product catalog and per-product point rules.

"""
Product catalog routes.

MULTI-TENANT: every route is scoped to the X-Tenant organization.
Point rules live on the product (fixed, percentage or tier); tier bands
are added through /<id>/tiers.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..schemas import PointTierInput, ProductInput
from ..services import product_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_tenant
def list_products():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify(product_service.list_products(g.org_id, active_only))


@products_bp.post("")
@require_tenant
def create_product():
    try:
        body = ProductInput.from_payload(request.get_json(silent=True))
        product = product_service.create_product(g.org_id, body.fields)
        return jsonify(product.to_dict(include_tiers=True)), 201
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_tenant
def get_product(product_id: int):
    try:
        return jsonify(product_service.get_product(g.org_id, product_id).to_dict(include_tiers=True))
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.patch("/<int:product_id>")
@require_tenant
def update_product(product_id: int):
    try:
        body = ProductInput.from_payload(request.get_json(silent=True), partial=True)
        product = product_service.update_product(g.org_id, product_id, body.fields)
        return jsonify(product.to_dict(include_tiers=True))
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"message": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/tiers")
@require_tenant
def add_tier(product_id: int):
    try:
        body = PointTierInput.from_payload(request.get_json(silent=True))
        tier = product_service.add_point_tier(
            g.org_id,
            product_id,
            min_amount_cents=body.min_amount_cents,
            points=body.points,
            max_amount_cents=body.max_amount_cents,
            multiplier=body.multiplier,
        )
        return jsonify(tier.to_dict()), 201
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add point tier")
        return jsonify({"message": "Internal server error"}), 500
