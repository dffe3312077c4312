# Overview: Flask API routes for distribution workflow; parses input and returns JSON responses.

# backend/dds/routes/distributions.py
"""
Distribution Workflow API Routes

DESIGN:
- One route per workflow operation; all state rules live in distribution_service
- Routes commit on success and roll back on any error
- Notification events are dispatched only after a successful commit

ERRORS:
- 400 ValidationError, 404 not found, 409 precondition / concurrency conflict
- 422 discrepancy confirmation required (resubmit with
  force_complete_with_discrepancies=true)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth
from ..services import distribution_service, notification_service, report_service
from ..services.concurrency import commit_or_conflict
from ..services.errors import DistributionError, ValidationError
from ..services.sequence_service import peek_next_number
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow


distributions_bp = Blueprint("distributions", __name__, url_prefix="/api/distributions")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _expected_version(data: dict) -> int | None:
    version = data.get("version_id")
    if version is None:
        return None
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValidationError("version_id must be an integer")
    return version


def _int_arg(name: str) -> int | None:
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _commit_and_dispatch() -> None:
    commit_or_conflict("Distribution")
    notification_service.dispatch_pending()


def _fail(exc: Exception, message: str):
    db.session.rollback()
    notification_service.discard_pending()
    if isinstance(exc, DistributionError):
        return jsonify(exc.to_dict()), exc.status_code
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE / READ
# =============================================================================

@distributions_bp.post("")
@require_auth
def create_distribution_route():
    """
    Create a draft distribution from the caller's department.

    Request body:
    {
        "type_id": 1,
        "destination_department_id": 2,
        "document_type": "invoice",          (optional, default invoice)
        "documents": [12, 13],                (ids, or {document_type, document_id})
        "notes": "Month-end batch"            (optional)
    }

    Returns:
        201: {"distribution": {...}, "warnings": [...]}
    """
    try:
        data = _json_body()
        distribution, warnings = distribution_service.create_distribution(
            actor_id=g.current_user.id,
            type_id=data.get("type_id"),
            destination_department_id=data.get("destination_department_id"),
            documents=data.get("documents"),
            document_type=data.get("document_type") or "invoice",
            notes=data.get("notes"),
        )
        _commit_and_dispatch()
        return jsonify({
            "distribution": distribution.to_dict(include_documents=True),
            "warnings": warnings,
        }), 201
    except Exception as e:
        return _fail(e, "Failed to create distribution")


@distributions_bp.get("")
@require_auth
def list_distributions_route():
    """
    List distributions.

    Query parameters: status, department_id, origin_department_id,
    destination_department_id, user_id, type_id, document_type,
    from_date, to_date (ISO-8601), search, include_deleted, limit, offset
    """
    try:
        try:
            from_date = parse_iso_datetime(request.args.get("from_date"))
            to_date = parse_iso_datetime(request.args.get("to_date"), end_of_day=True)
        except ValueError:
            raise ValidationError("from_date/to_date must be ISO-8601 datetimes")

        rows, total = distribution_service.list_distributions(
            status=request.args.get("status") or None,
            department_id=_int_arg("department_id"),
            origin_department_id=_int_arg("origin_department_id"),
            destination_department_id=_int_arg("destination_department_id"),
            user_id=_int_arg("user_id"),
            type_id=_int_arg("type_id"),
            document_type=request.args.get("document_type") or None,
            from_date=from_date,
            to_date=to_date,
            search=request.args.get("search") or None,
            include_deleted=request.args.get("include_deleted", "").lower() in {"1", "true", "yes"},
            limit=_int_arg("limit") or 100,
            offset=_int_arg("offset") or 0,
        )
        return jsonify({"distributions": [d.to_dict() for d in rows], "total": total}), 200
    except Exception as e:
        return _fail(e, "Failed to list distributions")


@distributions_bp.get("/next-number")
@require_auth
def next_number_route():
    """Preview the next number for ?type_id= in the caller's department."""
    try:
        type_id = _int_arg("type_id")
        if not type_id:
            raise ValidationError("type_id is required")
        if not g.department_id:
            raise ValidationError("Caller is not assigned to a department")
        number = peek_next_number(department_id=g.department_id, type_id=type_id)
        return jsonify({"distribution_number": number}), 200
    except Exception as e:
        return _fail(e, "Failed to preview distribution number")


@distributions_bp.get("/<int:distribution_id>")
@require_auth
def get_distribution_route(distribution_id: int):
    try:
        distribution = distribution_service.get_distribution(distribution_id)
        return jsonify({"distribution": distribution.to_dict(include_documents=True)}), 200
    except Exception as e:
        return _fail(e, "Failed to load distribution")


@distributions_bp.get("/<int:distribution_id>/history")
@require_auth
def get_history_route(distribution_id: int):
    try:
        rows = distribution_service.get_history(distribution_id)
        return jsonify({"history": [h.to_dict() for h in rows]}), 200
    except Exception as e:
        return _fail(e, "Failed to load distribution history")


@distributions_bp.get("/<int:distribution_id>/discrepancies")
@require_auth
def get_discrepancies_route(distribution_id: int):
    try:
        return jsonify(report_service.discrepancy_summary(distribution_id)), 200
    except Exception as e:
        return _fail(e, "Failed to build discrepancy summary")


@distributions_bp.get("/<int:distribution_id>/transmittal")
@require_auth
def get_transmittal_route(distribution_id: int):
    try:
        report = report_service.transmittal_report(distribution_id)
        report["generated_at"] = to_utc_z(utcnow())
        return jsonify(report), 200
    except Exception as e:
        return _fail(e, "Failed to build transmittal report")


# =============================================================================
# DRAFT EDITING
# =============================================================================

@distributions_bp.put("/<int:distribution_id>")
@require_auth
def update_distribution_route(distribution_id: int):
    """
    Update a draft distribution.

    Request body: any of type_id, destination_department_id, notes; optional version_id.
    """
    try:
        data = _json_body()
        expected_version = _expected_version(data)
        changes = {k: v for k, v in data.items() if k != "version_id"}
        distribution = distribution_service.update_distribution(
            distribution_id,
            actor_id=g.current_user.id,
            changes=changes,
            expected_version=expected_version,
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict()}), 200
    except Exception as e:
        return _fail(e, "Failed to update distribution")


@distributions_bp.delete("/<int:distribution_id>")
@require_auth
def delete_distribution_route(distribution_id: int):
    try:
        data = _json_body()
        distribution_service.delete_distribution(
            distribution_id,
            actor_id=g.current_user.id,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"deleted": True, "id": distribution_id}), 200
    except Exception as e:
        return _fail(e, "Failed to delete distribution")


@distributions_bp.post("/<int:distribution_id>/documents")
@require_auth
def attach_documents_route(distribution_id: int):
    """Request body: {"documents": [ids or {document_type, document_id}], "version_id"?}"""
    try:
        data = _json_body()
        distribution, warnings = distribution_service.attach_documents(
            distribution_id,
            actor_id=g.current_user.id,
            documents=data.get("documents"),
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({
            "distribution": distribution.to_dict(include_documents=True),
            "warnings": warnings,
        }), 200
    except Exception as e:
        return _fail(e, "Failed to attach documents")


@distributions_bp.delete("/<int:distribution_id>/documents/<string:document_type>/<int:document_id>")
@require_auth
def detach_document_route(distribution_id: int, document_type: str, document_id: int):
    try:
        data = _json_body()
        distribution = distribution_service.detach_document(
            distribution_id,
            actor_id=g.current_user.id,
            document_type=document_type,
            document_id=document_id,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict(include_documents=True)}), 200
    except Exception as e:
        return _fail(e, "Failed to detach document")


# =============================================================================
# TRANSITIONS
# =============================================================================

@distributions_bp.post("/<int:distribution_id>/verify-sender")
@require_auth
def verify_sender_route(distribution_id: int):
    """
    Request body:
    {
        "verifications": [{"document_id": 12, "status": "verified", "notes": null}, ...],
        "notes": "All present",
        "version_id": 3                       (optional)
    }
    """
    try:
        data = _json_body()
        distribution = distribution_service.verify_sender(
            distribution_id,
            actor_id=g.current_user.id,
            verifications=data.get("verifications"),
            notes=data.get("notes"),
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict(include_documents=True)}), 200
    except Exception as e:
        return _fail(e, "Failed to verify distribution (sender)")


@distributions_bp.post("/<int:distribution_id>/send")
@require_auth
def send_route(distribution_id: int):
    try:
        data = _json_body()
        distribution = distribution_service.send_distribution(
            distribution_id,
            actor_id=g.current_user.id,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict()}), 200
    except Exception as e:
        return _fail(e, "Failed to send distribution")


@distributions_bp.post("/<int:distribution_id>/receive")
@require_auth
def receive_route(distribution_id: int):
    try:
        data = _json_body()
        distribution = distribution_service.receive_distribution(
            distribution_id,
            actor_id=g.current_user.id,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict(include_documents=True)}), 200
    except Exception as e:
        return _fail(e, "Failed to receive distribution")


@distributions_bp.post("/<int:distribution_id>/verify-receiver")
@require_auth
def verify_receiver_route(distribution_id: int):
    """
    Request body:
    {
        "verifications": [{"document_id": 12, "status": "missing", "notes": "not in envelope"}],
        "notes": "...",
        "force_complete_with_discrepancies": false,
        "version_id": 5                       (optional)
    }

    Returns:
        200: verified
        422: discrepancies need confirmation; nothing was changed
    """
    try:
        data = _json_body()
        distribution = distribution_service.verify_receiver(
            distribution_id,
            actor_id=g.current_user.id,
            verifications=data.get("verifications"),
            notes=data.get("notes"),
            force_complete_with_discrepancies=data.get("force_complete_with_discrepancies") is True,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict(include_documents=True)}), 200
    except Exception as e:
        return _fail(e, "Failed to verify distribution (receiver)")


@distributions_bp.post("/<int:distribution_id>/complete")
@require_auth
def complete_route(distribution_id: int):
    try:
        data = _json_body()
        distribution = distribution_service.complete_distribution(
            distribution_id,
            actor_id=g.current_user.id,
            expected_version=_expected_version(data),
        )
        _commit_and_dispatch()
        return jsonify({"distribution": distribution.to_dict()}), 200
    except Exception as e:
        return _fail(e, "Failed to complete distribution")
