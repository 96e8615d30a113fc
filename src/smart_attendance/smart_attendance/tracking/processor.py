from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..common.logging import get_logger
from ..geofences.model import MembershipResult
from ..geofences.repository import GeofenceRepository
from ..geofences.tracker import GeofenceMembershipTracker
from ..locations.buffer import LocationSampleBuffer
from ..locations.model import LocationSample
from .presence import GeofenceEvent, PresenceMonitor

log = get_logger(__name__)


@dataclass(frozen=True)
class ProcessedSample:
    sample: LocationSample
    accepted: bool
    membership: MembershipResult
    events: tuple[GeofenceEvent, ...] = ()


class SampleProcessor:
    """One raw location record through the whole pipeline:
    parse and validate, buffer, evaluate membership, dispatch presence.

    Invalid coordinates raise InvalidCoordinate before anything is stored.
    """

    def __init__(
        self,
        buffer: LocationSampleBuffer,
        geofences: GeofenceRepository,
        presence: PresenceMonitor,
        *,
        tracker: GeofenceMembershipTracker | None = None,
    ):
        self._buffer = buffer
        self._geofences = geofences
        self._presence = presence
        self._tracker = tracker or GeofenceMembershipTracker()

    def process(self, raw: Mapping[str, Any], subject_id: str, owner_id: str) -> ProcessedSample:
        sample = LocationSample.from_native(raw, subject_id)
        accepted = self._buffer.ingest(sample)

        zones = self._geofences.list_active_for_owner(owner_id)
        membership = self._tracker.evaluate(sample.coordinate, zones)
        if not accepted:
            # Redelivered sample; presence already saw it.
            return ProcessedSample(sample=sample, accepted=False, membership=membership)

        events = self._presence.observe(subject_id, owner_id, membership, now=sample.captured_at)
        return ProcessedSample(sample=sample, accepted=True, membership=membership, events=tuple(events))
