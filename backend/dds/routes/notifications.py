# Overview: Flask API routes for the caller's notifications.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    """
    List the caller's notifications, newest first.

    Query parameters:
        unread_only: 1/true to hide read notifications
        limit: Max results (default 50)
    """
    try:
        unread_only = request.args.get("unread_only", "").lower() in {"1", "true", "yes"}
        limit = int(request.args.get("limit", 50))
        rows = notification_service.list_for_user(g.current_user.id, unread_only=unread_only, limit=limit)
        return jsonify({"notifications": [n.to_dict() for n in rows]}), 200
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.current_user.id)
        if not notification:
            return jsonify({"error": "Notification not found"}), 404
        db.session.commit()
        return jsonify({"notification": notification.to_dict()}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500
