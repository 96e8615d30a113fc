"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

from datetime import time

EARTH_RADIUS_METERS = 6_371_000.0

DEFAULT_SAMPLE_BATCH_SIZE = 10
DEFAULT_FLUSH_INTERVAL_SECONDS = 5 * 60
DEFAULT_SHUTDOWN_FLUSH_TIMEOUT_SECONDS = 10.0
DEFAULT_LOCATION_HISTORY_LIMIT = 100
DEFAULT_LOCATION_RETENTION_DAYS = 30

DEFAULT_TRACKING_INTERVAL_SECONDS = 30

DEFAULT_RECONNECT_MAX_ATTEMPTS = 5
DEFAULT_RECONNECT_DELAY_SECONDS = 2.0

DEFAULT_LATE_THRESHOLD = time(9, 15)
DEFAULT_EARLY_MARGIN_MINUTES = 10
DEFAULT_ATTENDANCE_HISTORY_LIMIT = 30

LOCATIONS_COLLECTION = "locations"
ATTENDANCE_COLLECTION = "attendance"
GEOFENCES_COLLECTION = "geofences"
