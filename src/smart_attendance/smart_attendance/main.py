from __future__ import annotations

import importlib
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .common.datetime_utils import parse_hhmm
from .common.logging import configure_logging, get_logger
from .container import build_container
from .core.constants import (
    DEFAULT_FLUSH_INTERVAL_SECONDS,
    DEFAULT_LOCATION_RETENTION_DAYS,
    DEFAULT_RECONNECT_DELAY_SECONDS,
    DEFAULT_RECONNECT_MAX_ATTEMPTS,
    DEFAULT_SAMPLE_BATCH_SIZE,
    DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS,
)
from .database.bootstrap import apply_schema, list_tables
from .geofences.controller import register as register_geofences
from .locations.controller import register as register_locations

log = get_logger(__name__)


def create_app(settings_module: Optional[str] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)

    configure_logging(
        getattr(settings, "LOG_LEVEL", "INFO"),
        json_output=bool(getattr(settings, "LOG_JSON", False)),
    )

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["QR_TOKEN"] = getattr(settings, "QR_TOKEN", "OFFICE_CHECKIN_SYSTEM")

    remote_backend = getattr(settings, "REMOTE_BACKEND", "mysql")
    db_config = getattr(settings, "DB_CONFIG", None)

    log.info(
        "app_settings_loaded",
        settings=settings_module,
        remote_backend=remote_backend,
        local_backend=getattr(settings, "LOCAL_STORE_BACKEND", "file"),
    )

    if remote_backend == "mysql" and bool(getattr(settings, "AUTO_INIT_DB", False)):
        schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
        apply_schema(db_config, schema_path=schema_path)
        log.info("schema_ready", tables=len(list_tables(db_config)))

    container = build_container(
        db_config=db_config,
        remote_backend=remote_backend,
        local_backend=getattr(settings, "LOCAL_STORE_BACKEND", "file"),
        local_store_dir=getattr(settings, "LOCAL_STORE_DIR", None),
        sample_batch_size=int(getattr(settings, "SAMPLE_BATCH_SIZE", DEFAULT_SAMPLE_BATCH_SIZE)),
        flush_interval_seconds=float(getattr(settings, "FLUSH_INTERVAL_SECONDS", DEFAULT_FLUSH_INTERVAL_SECONDS)),
        late_threshold=parse_hhmm(getattr(settings, "LATE_THRESHOLD", "09:15")),
        reconnect_max_attempts=int(getattr(settings, "RECONNECT_MAX_ATTEMPTS", DEFAULT_RECONNECT_MAX_ATTEMPTS)),
        reconnect_delay_seconds=float(getattr(settings, "RECONNECT_DELAY_SECONDS", DEFAULT_RECONNECT_DELAY_SECONDS)),
        shutdown_flush_timeout=float(
            getattr(settings, "SHUTDOWN_FLUSH_TIMEOUT_SECONDS", DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS)
        ),
        location_retention_days=int(getattr(settings, "LOCATION_RETENTION_DAYS", DEFAULT_LOCATION_RETENTION_DAYS)),
    )
    app.extensions["smart_attendance"] = container

    recovered = container.location_buffer.recover()
    if bool(getattr(settings, "START_FLUSH_SCHEDULER", True)):
        container.flush_scheduler.start()
    log.info("location_buffer_ready", recovered=recovered)

    register_attendance(app, container)
    register_locations(app, container)
    register_geofences(app, container)

    return app
