# passgate/store/whitelist.py
"""
Allow-list store: the single owner of the PassRecord collection and of its
JSON mirror on disk.

Every mutation rewrites the whole file (temp file + os.replace), so readers
never see a half-written list. Storage failures are logged and the store
keeps serving from memory; memory and disk can then differ until the next
successful write.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from passgate.core.errors import NotFound, StorageError
from passgate.core.ids import new_record_id
from passgate.store.models import STATUS_ACTIVE, PassRecord, PassRecordIn

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge(local: Iterable[PassRecord], remote: Iterable[PassRecord]) -> list[PassRecord]:
    """
    Union of two record collections. Records with equal ``(pass_id, name)``
    are the same record; the first one seen wins and field conflicts are not
    resolved. Entries of ``local`` are all kept as given.
    """
    merged = list(local)
    seen = {(r.pass_id, r.name) for r in merged}
    for entry in remote:
        key = (entry.pass_id, entry.name)
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    return merged


class WhitelistStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        # Guards every read-evict-write sequence
        self._lock = threading.RLock()
        # Ids removed or evicted by this process. Not persisted: the file is
        # a bare array of live records, so after a restart a client may get a
        # previously deleted id accepted again. Server-assigned ids are uuid4
        # and never collide.
        self._retired_ids: set[str] = set()
        try:
            self._records = self._read_file()
        except StorageError as e:
            logger.warning("Starting with an empty whitelist: %s", e)
            self._records = []
        logger.info("Loaded %d whitelist entries from %s", len(self._records), self.path)

    # --- persistence -------------------------------------------------------

    def _read_file(self) -> list[PassRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageError(f"cannot read {self.path}: {e}") from e
        if not isinstance(raw, list):
            raise StorageError(f"{self.path} does not hold a JSON array")

        records = []
        for item in raw:
            try:
                records.append(PassRecord.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed whitelist entry in %s", self.path)
        return records

    def _write_file(self) -> None:
        payload = [r.model_dump() for r in self._records]
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".whitelist-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, ensure_ascii=False, indent=2)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"cannot write {self.path}: {e}") from e

    def _persist(self) -> None:
        try:
            self._write_file()
        except StorageError as e:
            logger.warning("Whitelist kept in memory only: %s", e)

    # --- operations --------------------------------------------------------

    def insert(self, entry: PassRecordIn, now: datetime | None = None) -> PassRecord:
        now = now or _utcnow()
        with self._lock:
            record_id = entry.id
            if not record_id or record_id in self._retired_ids or self._find_by_id(record_id):
                record_id = new_record_id()
            if any(r.pass_id == entry.pass_id and r.name == entry.name for r in self._records):
                logger.warning("Duplicate whitelist entry for pass_id=%s", entry.pass_id)

            record = PassRecord(
                id=record_id,
                pass_id=entry.pass_id,
                name=entry.name,
                pass_status=entry.pass_status,
                created_at=now.isoformat(),
                issue_time=entry.issue_time,
                expiry_date=entry.expiry_date,
                status=STATUS_ACTIVE,
            )
            self._records.append(record)
            self._persist()
        logger.info("Whitelist entry added: id=%s pass_id=%s", record.id, record.pass_id)
        return record

    def sweep_expired(self, now: datetime | None = None) -> list[PassRecord]:
        """Drop and return every record whose expiry has passed."""
        now = now or _utcnow()
        with self._lock:
            expired = [r for r in self._records if r.is_expired(now)]
            if not expired:
                return []
            self._records = [r for r in self._records if not r.is_expired(now)]
            self._retired_ids.update(r.id for r in expired)
            self._persist()
        logger.info("Evicted %d expired whitelist entries", len(expired))
        return expired

    def list_active(self, now: datetime | None = None) -> list[PassRecord]:
        """Sweep, then return what is left. Never returns an expired record."""
        with self._lock:
            self.sweep_expired(now)
            return list(self._records)

    def records(self) -> list[PassRecord]:
        with self._lock:
            return list(self._records)

    def pass_ids(self) -> set[str]:
        with self._lock:
            return {r.pass_id for r in self._records}

    def find_by_pass_id_and_status(self, pass_id: str, status: str = STATUS_ACTIVE) -> PassRecord | None:
        with self._lock:
            return next(
                (r for r in self._records if r.pass_id == pass_id and r.status == status),
                None,
            )

    def _find_by_id(self, record_id: str) -> PassRecord | None:
        return next((r for r in self._records if r.id == record_id), None)

    def remove(self, record_id: str) -> PassRecord:
        with self._lock:
            record = self._find_by_id(str(record_id))
            if record is None:
                raise NotFound(f"Whitelist entry {record_id} not found")
            self._records.remove(record)
            self._retired_ids.add(record.id)
            self._persist()
        logger.info("Whitelist entry removed: id=%s pass_id=%s", record.id, record.pass_id)
        return record
