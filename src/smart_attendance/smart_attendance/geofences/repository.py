from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..common.logging import get_logger
from ..core.constants import GEOFENCES_COLLECTION
from ..core.exceptions import RemoteUnavailable, StorageCorrupt
from ..storage.document_store import DocumentStore, Filter
from ..storage.local_store import LocalStore
from .model import Geofence

log = get_logger(__name__)


class GeofenceRepository(Protocol):
    def list_active_for_owner(self, owner_id: str) -> Sequence[Geofence]:
        raise NotImplementedError

    def get(self, geofence_id: str) -> Optional[Geofence]:
        raise NotImplementedError

    def save(self, geofence: Geofence) -> Geofence:
        raise NotImplementedError

    def delete(self, geofence_id: str) -> bool:
        raise NotImplementedError


class DocumentGeofenceRepository(GeofenceRepository):
    """Geofences from the remote store with a local read-through cache.

    Reads fall back to the cache when the remote store is unreachable, so
    membership can still be evaluated offline.
    """

    def __init__(self, remote: DocumentStore, cache: LocalStore):
        self._remote = remote
        self._cache = cache

    def list_active_for_owner(self, owner_id: str) -> Sequence[Geofence]:
        try:
            docs = self._remote.query(
                GEOFENCES_COLLECTION,
                [Filter("owner_id", "==", owner_id), Filter("active", "==", True)],
            )
        except RemoteUnavailable as exc:
            log.info("geofences_from_cache", owner_id=owner_id, error=str(exc))
            return self._cached(owner_id)

        geofences = [Geofence.from_document(d.fields, d.id) for d in docs]
        self._refresh_cache(owner_id, geofences)
        return sorted(geofences, key=lambda g: g.id)

    def _refresh_cache(self, owner_id: str, geofences: Sequence[Geofence]) -> None:
        """Replace the owner's cached zones with the remote result."""

        fresh = {g.id for g in geofences}
        for key, fields in list(self._cache.items()):
            if fields.get("owner_id") == owner_id and key not in fresh:
                self._cache.delete(key)
        for geofence in geofences:
            self._cache.put(geofence.id, geofence.to_document())

    def _cached(self, owner_id: str) -> list[Geofence]:
        out = []
        for key, fields in self._cache.items():
            geofence = Geofence.from_document(fields, key)
            if geofence.owner_id == owner_id and geofence.active:
                out.append(geofence)
        return sorted(out, key=lambda g: g.id)

    def get(self, geofence_id: str) -> Optional[Geofence]:
        try:
            fields = self._remote.get(GEOFENCES_COLLECTION, geofence_id)
        except RemoteUnavailable:
            try:
                fields = self._cache.get(geofence_id)
            except StorageCorrupt as exc:
                log.warning("geofence_cache_corrupt", geofence_id=geofence_id, error=str(exc))
                return None
        return Geofence.from_document(fields, geofence_id) if fields else None

    def save(self, geofence: Geofence) -> Geofence:
        self._remote.put(GEOFENCES_COLLECTION, geofence.id, geofence.to_document())
        self._cache.put(geofence.id, geofence.to_document())
        return geofence

    def delete(self, geofence_id: str) -> bool:
        removed = self._remote.delete(GEOFENCES_COLLECTION, geofence_id)
        self._cache.delete(geofence_id)
        return removed
