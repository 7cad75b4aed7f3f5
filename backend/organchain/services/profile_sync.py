"""
Profile Sync Queue.
Holds profile-store writes that failed transiently after their ledger
transaction confirmed, and replays them once the store is reachable again.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from ..core.errors import AlreadyExists, ProfileStoreError
from .records import ProfileRecord

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class SyncOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"


@dataclass
class PendingProfileWrite:
    """A profile write waiting to be replayed."""
    local_id: str
    identity: str
    operation: SyncOperation
    profile: Optional[ProfileRecord] = None  # CREATE
    fields: Dict = field(default_factory=dict)  # UPDATE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sync_status: SyncStatus = SyncStatus.PENDING
    sync_attempts: int = 0
    error_message: Optional[str] = None


class ProfileSyncQueue:
    """
    In-process queue of deferred profile writes.

    Writes are replayed in the order they were queued. A replayed create that
    hits AlreadyExists counts as synced: the profile is there.
    """

    MAX_ATTEMPTS = 5

    def __init__(self):
        self._queue: List[PendingProfileWrite] = []

    def queue_create(self, profile: ProfileRecord) -> PendingProfileWrite:
        return self._queue_write(PendingProfileWrite(
            local_id=str(uuid.uuid4()),
            identity=profile.identity,
            operation=SyncOperation.CREATE,
            profile=profile,
        ))

    def queue_update(self, identity: str, fields: Dict) -> PendingProfileWrite:
        return self._queue_write(PendingProfileWrite(
            local_id=str(uuid.uuid4()),
            identity=identity,
            operation=SyncOperation.UPDATE,
            fields=dict(fields),
        ))

    def _queue_write(self, write: PendingProfileWrite) -> PendingProfileWrite:
        self._queue.append(write)
        logger.info("Queued deferred profile %s for %s", write.operation.value, write.identity)
        return write

    def get_pending_records(self, identity: Optional[str] = None) -> List[PendingProfileWrite]:
        """Return writes still awaiting replay, optionally for one identity."""
        return [
            w for w in self._queue
            if w.sync_status == SyncStatus.PENDING and (identity is None or w.identity == identity)
        ]

    def mark_synced(self, local_id: str) -> None:
        for write in self._queue:
            if write.local_id == local_id:
                write.sync_status = SyncStatus.SYNCED
                return

    def mark_failed(self, local_id: str, error: str) -> None:
        """Record a failed attempt; the write stays pending until MAX_ATTEMPTS."""
        for write in self._queue:
            if write.local_id == local_id:
                write.sync_attempts += 1
                write.error_message = error
                write.sync_status = (
                    SyncStatus.FAILED if write.sync_attempts >= self.MAX_ATTEMPTS else SyncStatus.PENDING
                )
                return

    async def sync_all_pending(self, profile_client) -> Dict:
        """Replay pending writes against ``profile_client``."""
        pending = self.get_pending_records()
        results = {"synced": 0, "failed": 0, "total": len(pending)}

        for write in pending:
            write.sync_status = SyncStatus.SYNCING
            try:
                if write.operation == SyncOperation.CREATE:
                    await profile_client.create(write.profile)
                else:
                    await profile_client.update_status(write.identity, write.fields)
            except AlreadyExists:
                self.mark_synced(write.local_id)
                results["synced"] += 1
            except ProfileStoreError as e:
                self.mark_failed(write.local_id, str(e))
                results["failed"] += 1
            else:
                self.mark_synced(write.local_id)
                results["synced"] += 1

        # Failed writes stay queued for inspection; synced ones are done
        self._queue = [w for w in self._queue if w.sync_status != SyncStatus.SYNCED]

        if results["total"]:
            logger.info("Profile sync replay: %(synced)d synced, %(failed)d failed of %(total)d", results)
        return results
