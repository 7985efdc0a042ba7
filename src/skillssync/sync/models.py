"""Pydantic models for the sync engine state document."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

STATE_VERSION = 2


class SkillScope(StrEnum):
    GLOBAL = "global"
    PROJECT = "project"


class PackageKind(StrEnum):
    DIRECTORY = "directory"
    FILE = "file"


class SkillStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class SyncHealth(StrEnum):
    OK = "ok"
    FAILED = "failed"
    SYNCING = "syncing"
    UNKNOWN = "unknown"


class SyncTrigger(StrEnum):
    MANUAL = "manual"
    WIDGET = "widget"
    DELETE = "delete"
    ARCHIVE = "archive"
    RESTORE = "restore"
    MAKE_GLOBAL = "make_global"
    RENAME = "rename"
    AUTO_FILESYSTEM = "auto-filesystem"


class ScopeFilter(StrEnum):
    ALL = "all"
    GLOBAL = "global"
    PROJECT = "project"
    ARCHIVED = "archived"


def utc_now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def iso8601(value: datetime) -> str:
    """Format as second-precision UTC with a trailing Z."""
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class SkillRecord(BaseModel):
    id: str
    name: str
    scope: SkillScope
    workspace: str | None = None
    canonical_source_path: str
    target_paths: list[str] = Field(default_factory=list)
    exists: bool = True
    is_symlink_canonical: bool = False
    package_type: PackageKind = PackageKind.DIRECTORY
    skill_key: str
    symlink_target: str = ""
    # Lifecycle (optional for older documents)
    status: SkillStatus = SkillStatus.ACTIVE
    archived_at: str | None = None
    archived_bundle_path: str | None = None
    archived_original_scope: SkillScope | None = None
    archived_original_workspace: str | None = None

    @field_validator("package_type", mode="before")
    @classmethod
    def _accept_legacy_kind(cls, value: object) -> object:
        if value == "dir":
            return PackageKind.DIRECTORY
        return value

    @property
    def is_archived(self) -> bool:
        return self.status == SkillStatus.ARCHIVED

    def sort_key(self) -> tuple[int, int, str, str]:
        return (
            0 if self.status == SkillStatus.ACTIVE else 1,
            0 if self.scope == SkillScope.GLOBAL else 1,
            self.name.lower(),
            self.workspace or "",
        )


class SyncMetadata(BaseModel):
    status: SyncHealth = SyncHealth.UNKNOWN
    last_started_at: str | None = None
    last_finished_at: str | None = None
    duration_ms: int | None = None
    error: str | None = None
    warnings: list[str] = Field(default_factory=list)


class SyncSummary(BaseModel):
    global_count: int = 0
    project_count: int = 0
    conflict_count: int = 0


class SyncState(BaseModel):
    version: int = STATE_VERSION
    generated_at: str = ""
    sync: SyncMetadata = Field(default_factory=SyncMetadata)
    summary: SyncSummary = Field(default_factory=SyncSummary)
    skills: list[SkillRecord] = Field(default_factory=list)
    top_skills: list[str] = Field(default_factory=list)

    def find(self, skill_id: str) -> SkillRecord | None:
        for skill in self.skills:
            if skill.id == skill_id:
                return skill
        return None

    def filtered(self, scope: ScopeFilter = ScopeFilter.ALL) -> list[SkillRecord]:
        if scope == ScopeFilter.ALL:
            return list(self.skills)
        if scope == ScopeFilter.ARCHIVED:
            return [s for s in self.skills if s.is_archived]
        return [s for s in self.skills if not s.is_archived and s.scope == scope.value]


class ArchiveManifest(BaseModel):
    """manifest.json stored inside every archive bundle."""

    version: int = 1
    archived_at: str
    skill_key: str
    name: str
    package_type: PackageKind = PackageKind.DIRECTORY
    original_scope: SkillScope
    original_workspace: str | None = None
    original_canonical_source_path: str
    removed_links: list[str] = Field(default_factory=list)


class SyncConflict(BaseModel):
    skill_key: str
    scope: SkillScope
    workspace: str | None = None
    paths: list[str] = Field(default_factory=list)
