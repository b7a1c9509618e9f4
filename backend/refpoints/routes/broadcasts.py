from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..errors import RewardsError
from ..extensions import BROADCAST_QUEUE_KEY
from ..schemas import BroadcastRequest
from ..services import broadcast_service

broadcasts_bp = Blueprint("broadcasts", __name__, url_prefix="/api/broadcasts")


@broadcasts_bp.post("")
@require_tenant
def send_broadcast():
    """
    Send a templated message to active customers.

    Blocks until every message has been attempted; the queue paces sends.
    """
    broadcast_queue = current_app.extensions.get(BROADCAST_QUEUE_KEY)
    if broadcast_queue is None or not broadcast_queue.running:
        return jsonify({"message": "Broadcast queue is not running"}), 503

    try:
        body = BroadcastRequest.from_payload(request.get_json(silent=True))
        result = broadcast_service.send_broadcast(broadcast_queue, g.org_id, body.message, body.customer_ids)
        return jsonify(result)
    except RewardsError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to send broadcast")
        return jsonify({"message": "Internal server error"}), 500
