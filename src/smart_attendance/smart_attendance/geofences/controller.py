from __future__ import annotations

import uuid

from flask import Flask, request

from ..common.http import coordinate_from, error_response, fail, json_body, ok
from ..container import Container
from ..geo.geometry import Coordinate
from .model import Geofence


def serialize_geofence(geofence: Geofence) -> dict:
    return geofence.to_document()


def register(app: Flask, container: Container) -> None:
    repo = container.geofence_repo

    @app.route("/api/geofences", methods=["GET"], endpoint="geofences_list")
    def geofences_list():
        owner_id = request.args.get("owner_id", "").strip()
        if not owner_id:
            return fail("owner_id is required", 400)
        try:
            rows = repo.list_active_for_owner(owner_id)
        except Exception as e:
            return error_response(e)
        return ok({"geofences": [serialize_geofence(g) for g in rows]})

    @app.route("/api/geofences", methods=["POST"], endpoint="geofences_create")
    def geofences_create():
        data = json_body()
        try:
            geofence = Geofence.create(
                id=str(data.get("id") or uuid.uuid4().hex),
                owner_id=str(data.get("owner_id") or "").strip(),
                center=coordinate_from(data),
                radius_meters=float(data.get("radius_meters", data.get("radius", 0))),
                active=bool(data.get("active", True)),
                name=str(data.get("name") or ""),
                auto_check_in=bool(data.get("auto_check_in", True)),
                auto_check_out=bool(data.get("auto_check_out", True)),
            )
            repo.save(geofence)
        except Exception as e:
            return error_response(e)
        return ok({"geofence": serialize_geofence(geofence)}, message="Geofence saved", status=201)

    @app.route("/api/geofences/<geofence_id>", methods=["DELETE"], endpoint="geofences_delete")
    def geofences_delete(geofence_id: str):
        try:
            removed = repo.delete(geofence_id)
        except Exception as e:
            return error_response(e)
        if not removed:
            return fail("Geofence not found", 404)
        return ok(message="Geofence deleted")

    @app.route("/api/geofences/evaluate", methods=["POST"], endpoint="geofences_evaluate")
    def geofences_evaluate():
        data = json_body()
        owner_id = str(data.get("owner_id") or "").strip()
        if not owner_id:
            return fail("owner_id is required", 400)
        try:
            point: Coordinate = coordinate_from(data)
            result = container.tracker.evaluate(point, repo.list_active_for_owner(owner_id))
        except Exception as e:
            return error_response(e)
        return ok(
            {
                "inside": result.is_inside,
                "geofence_id": result.geofence_id,
                "distance_meters": result.distance_meters,
            }
        )
