"""Session-scoped, single-slot cache of matrix profile artifacts."""
import enum
import logging
import zipfile
from typing import Optional

from attrs import define

from mpserver.data.artifact_store import ArtifactStore, StoreConnectionError
from mpserver.models.artifact import Artifact

logger = logging.getLogger(__name__)


class LookupStatus(enum.Enum):
    HIT = "hit"
    MISS = "miss"
    UNAVAILABLE = "unavailable"


class WriteStatus(enum.Enum):
    STORED = "stored"
    REJECTED = "rejected"
    UNAVAILABLE = "unavailable"


@define(frozen=True)
class CacheLookup:
    """Result of reading a session slot."""

    status: LookupStatus
    artifact: Optional[Artifact] = None

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.HIT


@define(frozen=True)
class CacheWrite:
    """Result of replacing a session slot."""

    status: WriteStatus
    reason: Optional[str] = None
    size: int = 0

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.STORED


class ArtifactCache:
    """
    Holds at most one artifact per session.

    A write replaces the slot and restarts its retention period; reads never
    extend it. Store failures are reported through the returned status
    rather than raised, so callers can tell a plain miss from an outage.
    """

    def __init__(
        self,
        store: ArtifactStore,
        retention_period: int,
        max_blob_bytes: int,
        prefix: str = "mpserver:artifact:",
    ):
        self.store = store
        self.retention_period = retention_period
        self.max_blob_bytes = max_blob_bytes
        self.prefix = prefix

    def _key(self, session: str) -> str:
        return f"{self.prefix}{session}"

    def get(self, session: str) -> CacheLookup:
        """Read the artifact cached for a session."""
        try:
            blob = self.store.get(self._key(session))
        except StoreConnectionError as e:
            logger.error("Artifact store unreachable on get: %s", e)
            return CacheLookup(LookupStatus.UNAVAILABLE)

        if blob is None:
            logger.debug("Artifact cache miss for session %s", session)
            return CacheLookup(LookupStatus.MISS)

        try:
            artifact = Artifact.from_bytes(blob)
        except (ValueError, KeyError, OSError, zipfile.BadZipFile) as e:
            logger.warning("Discarding unreadable artifact for session %s: %s", session, e)
            return CacheLookup(LookupStatus.MISS)

        return CacheLookup(LookupStatus.HIT, artifact)

    def put(self, session: str, artifact: Artifact) -> CacheWrite:
        """Replace the session slot with a new artifact."""
        blob = artifact.to_bytes()
        size = len(blob)
        if size > self.max_blob_bytes:
            reason = (
                f"serialized matrix profile is {size} bytes, "
                f"exceeding the maximum of {self.max_blob_bytes} bytes"
            )
            logger.warning("Rejected artifact write for session %s: %s", session, reason)
            return CacheWrite(WriteStatus.REJECTED, reason=reason, size=size)

        try:
            self.store.set(self._key(session), blob, self.retention_period)
        except StoreConnectionError as e:
            logger.error("Artifact store unreachable on put: %s", e)
            return CacheWrite(WriteStatus.UNAVAILABLE, reason=str(e), size=size)

        return CacheWrite(WriteStatus.STORED, size=size)

    def invalidate(self, session: str) -> None:
        """Drop the session slot. No-op when nothing is cached."""
        try:
            self.store.delete(self._key(session))
        except StoreConnectionError as e:
            logger.error("Artifact store unreachable on invalidate: %s", e)
