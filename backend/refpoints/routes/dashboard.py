from flask import Blueprint, g, jsonify, request

from ..decorators import require_tenant
from ..services import reporting_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/stats")
@require_tenant
def stats():
    top_n = request.args.get("top", 5, type=int)
    return jsonify(reporting_service.dashboard_stats(g.org_id, top_n=max(1, min(top_n, 50))))
