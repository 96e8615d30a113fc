from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional

from ..core.constants import DEFAULT_EARLY_MARGIN_MINUTES, DEFAULT_LATE_THRESHOLD
from ..core.enums import Punctuality


@dataclass(frozen=True)
class PunctualityPolicy:
    """Company rule for classifying a check-in time.

    Late is derived, never stored: a check-in strictly after ``late_threshold``
    (time of day) is late. ``work_start`` enables the early classification used
    by reports; it defaults to the threshold itself.
    """

    late_threshold: time = DEFAULT_LATE_THRESHOLD
    work_start: Optional[time] = None
    early_margin_minutes: int = DEFAULT_EARLY_MARGIN_MINUTES

    def is_late(self, check_in_at: Optional[datetime]) -> bool:
        if check_in_at is None:
            return False
        return check_in_at.time() > self.late_threshold

    def classify(self, check_in_at: datetime) -> Punctuality:
        if self.is_late(check_in_at):
            return Punctuality.LATE

        start = datetime.combine(check_in_at.date(), self.work_start or self.late_threshold)
        if check_in_at < start - timedelta(minutes=self.early_margin_minutes):
            return Punctuality.EARLY
        return Punctuality.ON_TIME
