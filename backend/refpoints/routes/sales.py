# Overview: POS sale hooks; preview and award points for a completed sale.

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import NotFound, RewardsError
from ..schemas import SaleRequest
from ..services import campaign_service, customer_service, points_service, product_service

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/preview-points")
@require_tenant
def preview_points():
    """Points a sale would earn. Never writes."""
    try:
        body = SaleRequest.from_payload(request.get_json(silent=True), require_customer=False)
        campaign = None
        if body.campaign_id is not None:
            campaign = campaign_service.get_campaign(g.org_id, body.campaign_id)
        lines = product_service.resolve_sale_lines(g.org_id, body.items)
        return jsonify(points_service.calculate_sale_points(body.amount, campaign, lines).to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.post("/process")
@require_tenant
def process_sale():
    """
    Award points for a completed sale.

    The customer is identified by customerId or, failing that, phoneNumber.
    Itemised sales are priced per line (see points_service).
    """
    try:
        body = SaleRequest.from_payload(request.get_json(silent=True))
        if body.customer_id is not None:
            customer = customer_service.get_customer(g.org_id, body.customer_id)
        else:
            customer = customer_service.find_by_phone(g.org_id, body.phone_number)
            if customer is None:
                raise NotFound("Customer not found", details={"phone_number": body.phone_number})

        result = points_service.process_sale(
            g.org_id,
            customer.id,
            body.amount,
            campaign_id=body.campaign_id,
            sale_reference=body.sale_reference,
            lines=product_service.resolve_sale_lines(g.org_id, body.items),
        )
        return jsonify(result)
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process sale points")
        return jsonify({"message": "Internal server error"}), 500
