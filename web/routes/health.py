"""Health check blueprint."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from database.models import isoformat, utcnow

health_bp = Blueprint("health", __name__)


@health_bp.route("/health")
def health_check():
    service = current_app.config.get("ADMIN_SERVICE")
    transport = service.transport_status() if service is not None else {"connected": False}
    data = {
        "success": True,
        "status": "ok",
        "transport": transport,
        "timestamp": isoformat(utcnow()),
    }
    return jsonify(data)
