from __future__ import annotations

from datetime import date, datetime, timedelta
from functools import wraps

from flask import Flask, g, jsonify, request

from ..common.datetime_utils import parse_iso_date
from ..core.constants import DEFAULT_HISTORY_PAGE_SIZE
from ..core.exceptions import ConflictError, DomainError, NotFoundError, ValidationError
from ..container import Container


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def _optional_float(payload: dict, key: str):
    value = payload.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be a number")


def _date_arg(name: str, default: date) -> date:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


def _int_arg(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def register(app: Flask, container: Container) -> None:
    """JSON endpoints for the attendance core.

    Authentication happens upstream; the gateway forwards the caller's ids
    in X-User-Id / X-Company-Id.
    """

    svc = container.attendance_service

    @app.errorhandler(ValidationError)
    def _validation(exc):
        return _error(str(exc), 400)

    @app.errorhandler(NotFoundError)
    def _not_found(exc):
        return _error(str(exc), 404)

    @app.errorhandler(ConflictError)
    def _conflict(exc):
        return _error(str(exc), 409)

    @app.errorhandler(DomainError)
    def _domain(exc):
        return _error(str(exc), 400)

    def identified(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                g.user_id = int(request.headers["X-User-Id"])
                g.company_id = int(request.headers["X-Company-Id"])
            except (KeyError, ValueError):
                return _error("Missing or invalid identity headers", 401)
            return view(*args, **kwargs)

        return wrapper

    @app.post("/api/attendance/check-in")
    @identified
    def attendance_check_in():
        body = request.get_json(silent=True) or {}
        result = svc.check_in(
            g.user_id,
            g.company_id,
            work_mode=body.get("workMode"),
            latitude=_optional_float(body, "latitude"),
            longitude=_optional_float(body, "longitude"),
            device_fingerprint=body.get("deviceFingerprint"),
            notes=body.get("notes"),
        )
        return jsonify(result.to_dict()), 201

    @app.post("/api/attendance/check-out")
    @identified
    def attendance_check_out():
        body = request.get_json(silent=True) or {}
        result = svc.check_out(
            g.user_id,
            g.company_id,
            latitude=_optional_float(body, "latitude"),
            longitude=_optional_float(body, "longitude"),
            notes=body.get("notes"),
        )
        return jsonify(result.to_dict())

    @app.post("/api/attendance/breaks")
    @identified
    def attendance_start_break():
        body = request.get_json(silent=True) or {}
        result = svc.start_break(g.user_id, g.company_id, break_type=body.get("type"))
        return jsonify(result.to_dict()), 201

    @app.post("/api/attendance/breaks/<int:break_id>/end")
    @identified
    def attendance_end_break(break_id: int):
        result = svc.end_break(g.user_id, g.company_id, break_id)
        return jsonify(result.to_dict())

    @app.post("/api/attendance/events/<int:event_id>/override")
    @identified
    def attendance_override(event_id: int):
        body = request.get_json(silent=True) or {}
        raw_ts = (body.get("timestamp") or "").strip()
        try:
            timestamp = datetime.fromisoformat(raw_ts) if raw_ts else None
        except ValueError:
            raise ValidationError("timestamp must be ISO-8601")
        event = svc.override_event(
            event_id,
            actor_id=g.user_id,
            company_id=g.company_id,
            reason=body.get("reason") or "",
            timestamp=timestamp,
            work_mode=body.get("workMode"),
        )
        return jsonify(event.to_dict())

    @app.get("/api/attendance/today")
    @identified
    def attendance_today():
        return jsonify(svc.get_today(g.user_id, g.company_id).to_dict())

    @app.get("/api/attendance/history")
    @identified
    def attendance_history():
        today = date.today()
        page = svc.get_history(
            g.user_id,
            _date_arg("startDate", today - timedelta(days=30)),
            _date_arg("endDate", today),
            page=_int_arg("page", 1),
            limit=_int_arg("limit", DEFAULT_HISTORY_PAGE_SIZE),
        )
        return jsonify(page.to_dict())

    @app.get("/api/attendance/summary")
    @identified
    def attendance_summary():
        today = date.today()
        summary = svc.get_summary(
            g.user_id,
            _date_arg("startDate", today.replace(day=1)),
            _date_arg("endDate", today),
        )
        return jsonify(summary.to_dict())

    @app.get("/api/attendance/locations")
    @identified
    def attendance_locations():
        today = date.today()
        end_date = _date_arg("endDate", today)
        locations = svc.list_check_in_locations(
            g.company_id,
            _date_arg("startDate", end_date - timedelta(days=7)),
            end_date,
        )
        return jsonify({"success": True, "data": [loc.to_dict() for loc in locations]})
