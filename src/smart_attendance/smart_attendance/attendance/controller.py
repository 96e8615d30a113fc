from __future__ import annotations

import io
from datetime import date

import qrcode
from flask import Flask, jsonify, request, send_file

from ..common.datetime_utils import from_iso
from ..common.http import arg_date, coordinate_from, error_response, fail, json_body, ok
from ..container import Container
from ..core.constants import DEFAULT_ATTENDANCE_HISTORY_LIMIT
from ..core.enums import AttendanceState, CheckInMethod
from ..core.exceptions import NotCheckedIn, ValidationError


def serialize_record(record, policy) -> dict:
    data = record.to_document()
    duration = record.work_duration
    data["synced"] = record.synced
    data["is_late"] = policy.is_late(record.check_in_at)
    data["work_minutes"] = int(duration.total_seconds() // 60) if duration is not None else None
    return data


def register(app: Flask, container: Container) -> None:
    service = container.attendance_service

    def _resolve_membership(owner_id: str, coordinate):
        zones = container.geofence_repo.list_active_for_owner(owner_id)
        return container.tracker.evaluate(coordinate, zones)

    def _check_in(data: dict, method: CheckInMethod):
        subject_id = str(data.get("subject_id") or "").strip()
        owner_id = str(data.get("owner_id") or "").strip()
        if not subject_id or not owner_id:
            raise ValidationError("subject_id and owner_id are required")
        coordinate = coordinate_from(data)
        membership = _resolve_membership(owner_id, coordinate)
        return service.check_in(
            subject_id,
            owner_id,
            coordinate,
            geofence_id=membership.geofence_id,
            inside_geofence=membership.is_inside,
            method=method,
            proof_ref=data.get("proof_ref"),
        )

    def _check_out(data: dict):
        coordinate = coordinate_from(data)
        attendance_id = data.get("attendance_id")
        if not attendance_id:
            subject_id = str(data.get("subject_id") or "").strip()
            if not subject_id:
                raise ValidationError("attendance_id or subject_id is required")
            today = service.get_today(subject_id)
            if today is None:
                raise NotCheckedIn("No attendance record for today")
            attendance_id = today.id

        inside = False
        current = service.get(attendance_id)
        if current is not None and current.owner_id:
            inside = _resolve_membership(current.owner_id, coordinate).is_inside
        return service.check_out(attendance_id, coordinate, inside_geofence=inside, proof_ref=data.get("proof_ref"))

    @app.route("/api/attendance/check-in", methods=["POST"], endpoint="attendance_check_in")
    def check_in():
        data = json_body()
        try:
            method = CheckInMethod(str(data.get("method") or CheckInMethod.MANUAL.value).upper())
            record = _check_in(data, method)
        except Exception as e:
            return error_response(e)
        return ok({"attendance": serialize_record(record, service.policy)}, message="Checked in", status=201)

    @app.route("/api/attendance/check-out", methods=["POST"], endpoint="attendance_check_out")
    def check_out():
        try:
            record = _check_out(json_body())
        except Exception as e:
            return error_response(e)
        return ok({"attendance": serialize_record(record, service.policy)}, message="Checked out")

    @app.route("/api/attendance/qr", methods=["POST"], endpoint="attendance_qr")
    def attendance_qr():
        """QR check-in/check-out: check out when today's record is open, check in otherwise."""

        data = json_body()
        qr_code = str(data.get("qr_code") or "").strip()
        if not qr_code:
            return fail("QR code is required", 400)
        if qr_code != app.config.get("QR_TOKEN"):
            return fail("Invalid QR code", 400)

        try:
            subject_id = str(data.get("subject_id") or "").strip()
            current = service.get_today(subject_id) if subject_id else None
            if current is not None and current.is_checked_in:
                record = _check_out({**data, "attendance_id": current.id})
                action = "check_out"
            else:
                record = _check_in(data, CheckInMethod.QR_CODE)
                action = "check_in"
        except Exception as e:
            return error_response(e)
        return ok({"action": action, "attendance": serialize_record(record, service.policy)})

    @app.route("/api/attendance/today", methods=["GET"], endpoint="attendance_today")
    def attendance_today():
        subject_id = request.args.get("subject_id", "").strip()
        if not subject_id:
            return fail("subject_id is required", 400)
        record = service.get_today(subject_id)
        return ok({"attendance": serialize_record(record, service.policy) if record else None})

    @app.route("/api/attendance/history", methods=["GET"], endpoint="attendance_history")
    def attendance_history():
        subject_id = request.args.get("subject_id", "").strip()
        if not subject_id:
            return fail("subject_id is required", 400)
        try:
            rows = service.history(
                subject_id,
                start_date=arg_date("start"),
                end_date=arg_date("end"),
                limit=int(request.args.get("limit", DEFAULT_ATTENDANCE_HISTORY_LIMIT)),
            )
        except Exception as e:
            return error_response(e)
        return ok({"records": [serialize_record(r, service.policy) for r in rows]})

    @app.route("/api/attendance/<attendance_id>/override", methods=["POST"], endpoint="attendance_override")
    def attendance_override(attendance_id: str):
        data = json_body()
        try:
            state = data.get("state")
            record = service.override(
                attendance_id,
                str(data.get("admin_id") or "").strip(),
                str(data.get("reason") or ""),
                new_state=AttendanceState(str(state).upper()) if state else None,
                new_check_in_at=from_iso(data.get("check_in_at")),
                new_check_out_at=from_iso(data.get("check_out_at")),
            )
        except Exception as e:
            return error_response(e)
        return ok({"attendance": serialize_record(record, service.policy)}, message="Attendance overridden")

    @app.route("/api/attendance/stats", methods=["GET"], endpoint="attendance_stats")
    def attendance_stats():
        subject_id = request.args.get("subject_id", "").strip()
        if not subject_id:
            return fail("subject_id is required", 400)
        try:
            today = date.today()
            end = arg_date("end") or today
            start = arg_date("start") or end.replace(day=1)
            if start > end:
                return fail("start must not be after end", 400)
            stats = container.report_service.stats(subject_id, start, end)
            punctuality = container.report_service.punctuality(subject_id, today=end, days=(end - start).days or 1)
            streak = container.report_service.current_streak(subject_id, today)
        except Exception as e:
            return error_response(e)
        return ok(
            {
                "start": start.isoformat(),
                "end": end.isoformat(),
                "stats": stats.to_dict(),
                "punctuality_rate": round(punctuality.punctuality_rate, 2),
                "early_check_ins": punctuality.early_check_ins,
                "current_streak": streak,
            }
        )

    @app.route("/admin/qr/image", endpoint="admin_qr_image")
    def admin_qr_image():
        """Ảnh QR của văn phòng (PNG) chứa mã QR_TOKEN."""
        try:
            qr = qrcode.QRCode(
                version=1,
                error_correction=qrcode.constants.ERROR_CORRECT_L,
                box_size=10,
                border=2,
            )
            qr.add_data(app.config.get("QR_TOKEN"))
            qr.make(fit=True)
            img = qr.make_image(fill_color="black", back_color="white")

            buf = io.BytesIO()
            img.save(buf, format="PNG")
            buf.seek(0)
            return send_file(buf, mimetype="image/png")
        except Exception as e:
            return jsonify({"success": False, "message": str(e)}), 500
