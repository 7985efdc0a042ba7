"""Bounded JSON audit log of sync runs and mutations."""

from __future__ import annotations

import json
import logging
import uuid
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from skillssync.sync.config import SyncEnvironment
from skillssync.sync.fsutil import atomic_write
from skillssync.sync.models import iso8601, utc_now

logger = logging.getLogger(__name__)

AUDIT_VERSION = 1
DEFAULT_EVENT_LIMIT = 5000


class AuditStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    BLOCKED = "blocked"


class AuditEvent(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: str = Field(default_factory=lambda: iso8601(utc_now()))
    action: str
    status: AuditStatus
    trigger: str | None = None
    summary: str
    paths: list[str] = Field(default_factory=list)
    details: dict[str, str] = Field(default_factory=dict)


class AuditLog(BaseModel):
    version: int = AUDIT_VERSION
    events: list[AuditEvent] = Field(default_factory=list)


class AuditStore:
    def __init__(self, env: SyncEnvironment, limit: int = DEFAULT_EVENT_LIMIT) -> None:
        self._path = env.audit_path
        self._limit = limit

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> AuditLog:
        try:
            return AuditLog.model_validate(json.loads(self._path.read_text()))
        except FileNotFoundError:
            return AuditLog()
        except (json.JSONDecodeError, OSError, ValidationError, ValueError) as e:
            logger.warning(f"Starting a fresh audit log, {self._path} is unreadable: {e}")
            return AuditLog()

    def append(self, event: AuditEvent) -> AuditEvent:
        log = self._load()
        log.events.append(event)
        if len(log.events) > self._limit:
            log.events = log.events[-self._limit :]
        atomic_write(self._path, json.dumps(log.model_dump(mode="json"), indent=2) + "\n")
        return event

    def record(
        self,
        action: str,
        status: AuditStatus,
        summary: str,
        *,
        trigger: str | None = None,
        paths: list[str] | None = None,
        details: dict[str, str] | None = None,
    ) -> None:
        """Append an event; failures to write are logged, never raised."""
        event = AuditEvent(
            action=action,
            status=status,
            trigger=trigger,
            summary=summary,
            paths=paths or [],
            details=details or {},
        )
        try:
            self.append(event)
        except OSError as e:
            logger.warning(f"Could not write audit event {action}: {e}")

    def list_events(
        self,
        limit: int | None = None,
        status: AuditStatus | None = None,
        action: str | None = None,
    ) -> list[AuditEvent]:
        """Newest first, optionally filtered by status and action."""
        events = [
            e
            for e in reversed(self._load().events)
            if (status is None or e.status == status) and (action is None or e.action == action)
        ]
        return events[:limit] if limit is not None else events
