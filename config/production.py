import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "smart_attendance"),
}

REMOTE_BACKEND = os.getenv("REMOTE_BACKEND", "mysql")

LOCAL_STORE_BACKEND = os.getenv("LOCAL_STORE_BACKEND", "file")
LOCAL_STORE_DIR = os.getenv("LOCAL_STORE_DIR", "/var/lib/smart_attendance")

SAMPLE_BATCH_SIZE = int(os.getenv("SAMPLE_BATCH_SIZE", "10"))
FLUSH_INTERVAL_SECONDS = int(os.getenv("FLUSH_INTERVAL_SECONDS", "300"))
START_FLUSH_SCHEDULER = bool(int(os.getenv("START_FLUSH_SCHEDULER", "1")))

LATE_THRESHOLD = os.getenv("LATE_THRESHOLD", "09:15")

RECONNECT_MAX_ATTEMPTS = int(os.getenv("RECONNECT_MAX_ATTEMPTS", "5"))
RECONNECT_DELAY_SECONDS = float(os.getenv("RECONNECT_DELAY_SECONDS", "2"))
SHUTDOWN_FLUSH_TIMEOUT_SECONDS = float(os.getenv("SHUTDOWN_FLUSH_TIMEOUT_SECONDS", "10"))
LOCATION_RETENTION_DAYS = int(os.getenv("LOCATION_RETENTION_DAYS", "30"))

# QR Code token for attendance check-in
QR_TOKEN = os.getenv("QR_TOKEN", "OFFICE_CHECKIN_SYSTEM")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = bool(int(os.getenv("LOG_JSON", "1")))

DEBUG = False

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
