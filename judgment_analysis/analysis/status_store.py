"""
Analysis status records.

The pipeline only ever writes status through a StatusSink: create a record
when a job is queued, update it as the job progresses. InMemoryStatusStore
is the in-process implementation; it is passed explicitly to whatever runs
the pipeline instead of living as a module-level global.
"""

import copy
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol

STATUS_QUEUED = "queued"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

VALID_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)

_UPDATABLE_FIELDS = ("status", "result", "error")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class StatusRecord:
    analysis_id: str
    judgment_id: str
    status: str = STATUS_QUEUED
    result: Any = None
    error: str | None = None
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict:
        return {
            "analysisId": self.analysis_id,
            "judgmentId": self.judgment_id,
            "status": self.status,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


class StatusSink(Protocol):
    """What the pipeline needs from a status store."""

    def create(self, analysis_id: str, judgment_id: str) -> StatusRecord:
        ...

    def update(self, analysis_id: str, **fields) -> StatusRecord:
        ...


class InMemoryStatusStore:
    """
    Thread-safe StatusSink keyed by analysis id.

    Records handed out by get() are copies, so callers polling from another
    thread never observe a half-written update.
    """

    def __init__(self):
        self._records: dict[str, StatusRecord] = {}
        self._lock = threading.Lock()

    def create(self, analysis_id: str, judgment_id: str) -> StatusRecord:
        """
        Raises:
            ValueError: If a record with this id already exists
        """
        with self._lock:
            if analysis_id in self._records:
                raise ValueError(f"Analysis {analysis_id} already exists")
            record = StatusRecord(analysis_id=analysis_id, judgment_id=str(judgment_id))
            self._records[analysis_id] = record
            return copy.deepcopy(record)

    def update(self, analysis_id: str, **fields) -> StatusRecord:
        """
        Update status, result and/or error of a record.

        Raises:
            KeyError: Unknown analysis id
            ValueError: Unknown field or status value
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        if "status" in fields and fields["status"] not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {fields['status']}")

        with self._lock:
            if analysis_id not in self._records:
                raise KeyError(f"Unknown analysis: {analysis_id}")
            record = replace(self._records[analysis_id], **fields, updated_at=_now_iso())
            self._records[analysis_id] = record
            return copy.deepcopy(record)

    def get(self, analysis_id: str) -> StatusRecord:
        """
        Raises:
            KeyError: Unknown analysis id
        """
        with self._lock:
            if analysis_id not in self._records:
                raise KeyError(f"Unknown analysis: {analysis_id}")
            return copy.deepcopy(self._records[analysis_id])

    def list_for_judgment(self, judgment_id: str) -> list[StatusRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values() if r.judgment_id == str(judgment_id)]
