import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "smart_attendance_test"),
}

REMOTE_BACKEND = "memory"
LOCAL_STORE_BACKEND = "memory"
LOCAL_STORE_DIR = None

SAMPLE_BATCH_SIZE = 10
FLUSH_INTERVAL_SECONDS = 300
START_FLUSH_SCHEDULER = False

LATE_THRESHOLD = "09:15"

RECONNECT_MAX_ATTEMPTS = 1
RECONNECT_DELAY_SECONDS = 0
SHUTDOWN_FLUSH_TIMEOUT_SECONDS = 1
LOCATION_RETENTION_DAYS = 30

QR_TOKEN = "TEST_QR_TOKEN"

LOG_LEVEL = "WARNING"
LOG_JSON = False

DEBUG = False
TESTING = True

AUTO_INIT_DB = False
