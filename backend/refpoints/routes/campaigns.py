from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..schemas import CampaignInput
from ..services import campaign_service

campaigns_bp = Blueprint("campaigns", __name__, url_prefix="/api/campaigns")


@campaigns_bp.route("", methods=["GET"])
@require_tenant
def list_campaigns():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify(campaign_service.list_campaigns(g.org_id, active_only))


@campaigns_bp.route("", methods=["POST"])
@require_tenant
def create_campaign():
    try:
        body = CampaignInput.from_payload(request.get_json(silent=True))
        campaign = campaign_service.create_campaign(g.org_id, body.fields)
        return jsonify(campaign.to_dict()), 201
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create campaign")
        return jsonify({"message": "Internal server error"}), 500


@campaigns_bp.route("/<int:campaign_id>", methods=["GET"])
@require_tenant
def get_campaign(campaign_id: int):
    try:
        return jsonify(campaign_service.get_campaign(g.org_id, campaign_id).to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code


@campaigns_bp.route("/<int:campaign_id>", methods=["PATCH"])
@require_tenant
def update_campaign(campaign_id: int):
    try:
        body = CampaignInput.from_payload(request.get_json(silent=True), partial=True)
        campaign = campaign_service.update_campaign(g.org_id, campaign_id, body.fields)
        return jsonify(campaign.to_dict())
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update campaign")
        return jsonify({"message": "Internal server error"}), 500


@campaigns_bp.route("/<int:campaign_id>/stats", methods=["GET"])
@require_tenant
def campaign_stats(campaign_id: int):
    try:
        return jsonify(campaign_service.campaign_stats(g.org_id, campaign_id))
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
