from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_actor, require_role
from ..errors import BackofficeError
from ..services import commission_service, series_service
from ..validation import parse_int, parse_text


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/series-numbers")
@require_actor
@require_role("manager")
def list_series_route():
    return jsonify({"series": series_service.list_series()}), 200


@settings_bp.put("/series-numbers")
@require_actor
@require_role("admin")
def set_series_route():
    payload = request.get_json(silent=True) or {}
    try:
        series_id = parse_text(payload.get("series_id"), "series_id", required=True, max_length=32)
        row = series_service.set_next_number(
            series_id, parse_int(payload.get("next_number"), "next_number", minimum=1)
        )
        return jsonify({"series": row.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update series numbers")
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.post("/series-numbers/<series_id>/next")
@require_actor
@require_role("salesperson", "cashier", "manager")
def allocate_series_id_route(series_id: str):
    # Ids for documents stored outside this service (quotations, audits)
    try:
        return jsonify({"series_id": series_id, "id": series_service.next_series_id_committed(series_id)}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to allocate id from series %s", series_id)
        return jsonify({"error": "Internal server error"}), 500


@settings_bp.get("/commission")
@require_actor
@require_role("manager")
def get_commission_route():
    return jsonify({"commission": commission_service.get_commission_setting().to_dict()}), 200


@settings_bp.put("/commission")
@require_actor
@require_role("admin")
def update_commission_route():
    payload = request.get_json(silent=True) or {}
    try:
        setting = commission_service.update_commission_setting(payload, actor_id=g.actor.user_id)
        return jsonify({"commission": setting.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update commission settings")
        return jsonify({"error": "Internal server error"}), 500
