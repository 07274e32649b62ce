from flask import Blueprint, g, jsonify, request

from ..decorators import require_actor
from ..errors import BackofficeError, ValidationError
from ..services import commission_service
from ..time_utils import parse_iso_datetime


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _parse_bound(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", {"field": name, "value": raw}) from None


@reports_bp.get("/commission")
@require_actor
def commission_report():
    """Commission earned by one salesperson; salespeople may only view their own."""
    salesperson_id = request.args.get("salesperson_id") or g.actor.user_id
    if g.actor.role not in ("admin", "manager") and salesperson_id != g.actor.user_id:
        return jsonify({
            "error": "Permission denied",
            "code": "forbidden",
            "details": {"salesperson_id": salesperson_id},
        }), 403

    try:
        report = commission_service.salesperson_commission_report(
            salesperson_id,
            start=_parse_bound("from"),
            end=_parse_bound("to"),
        )
        return jsonify(report), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.http_status
