"""Admin JSON API over purchases, users and the chat transport."""

from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory
from flask_login import current_user, login_required, login_user, logout_user

from core import get_logger
from core.exceptions import ReceiptStorageError, ValidationError
from database.models import isoformat, utcnow
from services import run_coroutine_sync
from services.admin_service import ApprovalOutcome, PurchaseAdminService
from services.receipt_storage import ReceiptStorage
from utils.validators import normalize_sender_id, validate_sender_id
from web.auth import AdminCredentials, AdminUser, validate_credentials

logger = get_logger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _ok(http_status: int = 200, **data: Any):
    body: Dict[str, Any] = {"success": True, "timestamp": isoformat(utcnow())}
    body.update(data)
    return jsonify(body), http_status


def _admin_service() -> PurchaseAdminService:
    service = current_app.config.get("ADMIN_SERVICE")
    if service is None:
        abort(503, description="Purchase service is not available")
    return service


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _user_param(raw: str) -> str:
    user = normalize_sender_id(raw)
    if not validate_sender_id(user):
        raise ValidationError(f"Invalid user identifier: {raw}")
    return user


@admin_bp.route("/login", methods=["POST"])
def login():
    data = _json_body() or request.form
    username = data.get("username", "")
    password = data.get("password", "")
    credentials: AdminCredentials = current_app.config["ADMIN_CREDENTIALS"]

    if not validate_credentials(credentials, username, password):
        logger.warning(f"Failed admin login for '{username}' from {request.remote_addr}")
        return jsonify({
            "success": False,
            "error": "Invalid credentials",
            "timestamp": isoformat(utcnow()),
        }), 401

    login_user(AdminUser(username=credentials.username))
    logger.info(f"🔐 Admin '{credentials.username}' logged in")
    return _ok(user=credentials.username)


@admin_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    username = current_user.username
    logout_user()
    logger.info(f"Admin '{username}' logged out")
    return _ok()


@admin_bp.route("/api/purchases")
@login_required
def list_purchases():
    status = request.args.get("status", "pending")
    records = run_coroutine_sync(_admin_service().list_purchases(status))
    return _ok(status=status, purchases=[r.to_dict() for r in records], count=len(records))


@admin_bp.route("/api/purchases/<record_id>")
@login_required
def get_purchase(record_id: str):
    record = run_coroutine_sync(_admin_service().get_purchase(record_id))
    return _ok(purchase=record.to_dict())


@admin_bp.route("/api/purchases/<record_id>/approve", methods=["POST"])
@login_required
def approve_purchase(record_id: str):
    data = _json_body()
    service = _admin_service()
    numbers = data.get("numbers")

    if numbers:
        if not isinstance(numbers, list):
            raise ValidationError("'numbers' must be a list")
        external = {"external_purchase_id": data.get("external_purchase_id")}
        if data.get("total_numbers") is not None:
            external["total_numbers"] = data["total_numbers"]
        record = run_coroutine_sync(service.approve(record_id, numbers, external))
        outcome = ApprovalOutcome.APPROVED
    else:
        result = run_coroutine_sync(service.approve_with_ledger(record_id))
        record, outcome = result.record, result.outcome

    logger.info(
        f"Admin '{current_user.username}' approval: {outcome.value}",
        extra={"record_id": record_id, "user": record.user},
    )
    return _ok(outcome=outcome.value, purchase=record.to_dict())


@admin_bp.route("/api/purchases/<record_id>/reject", methods=["POST"])
@login_required
def reject_purchase(record_id: str):
    reason = _json_body().get("reason")
    record = run_coroutine_sync(_admin_service().reject(record_id, reason))
    logger.info(
        f"Admin '{current_user.username}' rejected purchase",
        extra={"record_id": record_id, "user": record.user},
    )
    return _ok(purchase=record.to_dict())


@admin_bp.route("/api/users/<user>/block", methods=["POST"])
@login_required
def block_user(user: str):
    user = _user_param(user)
    reason = _json_body().get("reason")
    canceled = run_coroutine_sync(_admin_service().block_user(user, reason))
    return _ok(user=user, canceled=[r.id for r in canceled])


@admin_bp.route("/api/users/<user>/block", methods=["DELETE"])
@login_required
def unblock_user(user: str):
    user = _user_param(user)
    removed = run_coroutine_sync(_admin_service().unblock_user(user))
    return _ok(user=user, unblocked=removed)


@admin_bp.route("/api/messages", methods=["POST"])
@login_required
def send_message():
    data = _json_body()
    user = _user_param(str(data.get("user", "")))
    sent = run_coroutine_sync(_admin_service().send_message(user, data.get("text", "")))
    return _ok(user=user, sent=sent)


@admin_bp.route("/api/statistics")
@login_required
def statistics():
    stats = run_coroutine_sync(_admin_service().statistics())
    return _ok(statistics=stats)


@admin_bp.route("/api/transport-status")
@login_required
def transport_status():
    return _ok(**_admin_service().transport_status())


@admin_bp.route("/receipts/<ref>")
@login_required
def receipt_image(ref: str):
    storage: ReceiptStorage = current_app.config.get("RECEIPT_STORAGE")
    if storage is None:
        abort(503, description="Receipt storage is not available")
    try:
        path = storage.path_for(ref)
    except ReceiptStorageError:
        abort(404)
    return send_from_directory(path.parent.resolve(), path.name)
