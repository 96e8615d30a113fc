from __future__ import annotations

from datetime import timedelta

from flask import Flask, request

from ..common.http import arg_datetime, error_response, fail, json_body, ok
from ..container import Container
from ..core.constants import DEFAULT_LOCATION_HISTORY_LIMIT
from ..core.exceptions import DomainError, ValidationError


def serialize_sample(sample) -> dict:
    return {**sample.to_document(), "synced": sample.synced}


def register(app: Flask, container: Container) -> None:
    buffer = container.location_buffer

    @app.route("/api/locations", methods=["POST"], endpoint="locations_ingest")
    def locations_ingest():
        """Nhận một hoặc nhiều mẫu vị trí thô từ thiết bị và đánh giá geofence."""

        data = json_body()
        subject_id = str(data.get("subject_id") or "").strip()
        owner_id = str(data.get("owner_id") or "").strip()
        if not subject_id or not owner_id:
            return fail("subject_id and owner_id are required", 400)

        raw_samples = data.get("samples")
        if raw_samples is None:
            raw_samples = [data["sample"]] if isinstance(data.get("sample"), dict) else []
        if not isinstance(raw_samples, list) or not raw_samples:
            return fail("samples must be a non-empty list", 400)

        results = []
        rejected = 0
        for index, raw in enumerate(raw_samples):
            try:
                if not isinstance(raw, dict):
                    raise ValidationError("sample must be an object")
                r = container.sample_processor.process(raw, subject_id, owner_id)
            except (DomainError, KeyError, TypeError, ValueError) as e:
                rejected += 1
                results.append(
                    {"index": index, "accepted": False, "rejected": True, "error": getattr(e, "user_message", None) or str(e)}
                )
                continue
            except Exception as e:
                return error_response(e)
            results.append(
                {
                    "index": index,
                    "id": r.sample.id,
                    "accepted": r.accepted,
                    "rejected": False,
                    "inside": r.membership.is_inside,
                    "geofence_id": r.membership.geofence_id,
                    "events": [{"geofence_id": ev.geofence_id, "type": ev.type.value} for ev in r.events],
                }
            )

        payload = {"results": results, "rejected": rejected, "pending": buffer.pending_count}
        if rejected == len(results):
            return fail("No valid samples", 400, **payload)
        return ok(payload, status=201)

    @app.route("/api/locations/flush", methods=["POST"], endpoint="locations_flush")
    def locations_flush():
        try:
            result = buffer.flush()
        except Exception as e:
            return error_response(e)
        payload = {"written": result.written, "skipped": result.skipped, "pending": buffer.pending_count}
        if not result.ok:
            return fail("Flush failed, samples kept for the next attempt", 503, **payload)
        return ok(payload)

    @app.route("/api/locations/history", methods=["GET"], endpoint="locations_history")
    def locations_history():
        subject_id = request.args.get("subject_id", "").strip()
        if not subject_id:
            return fail("subject_id is required", 400)
        try:
            samples = buffer.history(
                subject_id,
                start=arg_datetime("start"),
                end=arg_datetime("end"),
                limit=int(request.args.get("limit", DEFAULT_LOCATION_HISTORY_LIMIT)),
            )
        except Exception as e:
            return error_response(e)
        return ok({"samples": [serialize_sample(s) for s in samples]})

    @app.route("/api/locations/prune", methods=["POST"], endpoint="locations_prune")
    def locations_prune():
        data = json_body()
        subject_id = str(data.get("subject_id") or "").strip()
        try:
            if not subject_id:
                raise ValidationError("subject_id is required")
            days = int(data.get("older_than_days", container.location_retention_days))
            if days < 0:
                raise ValidationError("older_than_days must not be negative")
            result = buffer.prune(subject_id, timedelta(days=days))
        except Exception as e:
            return error_response(e)
        return ok(
            {
                "local_deleted": result.local_deleted,
                "remote_deleted": result.remote_deleted,
                "errors": list(result.errors),
            }
        )
