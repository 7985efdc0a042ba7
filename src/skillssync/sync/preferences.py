"""Preferences document shared with the presentation layer."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from skillssync.sync.config import SyncEnvironment, SyncOptions
from skillssync.sync.fsutil import atomic_write

logger = logging.getLogger(__name__)

PREFERENCES_VERSION = 2


class SyncPreferences(BaseModel):
    version: int = 1
    auto_migrate_to_canonical_source: bool = False
    workspace_discovery_roots: list[str] = Field(default_factory=list)
    # Owned by the presentation layer; carried through untouched.
    window_state: dict[str, Any] | None = None
    ui_state: dict[str, Any] | None = None

    @field_validator("workspace_discovery_roots", mode="before")
    @classmethod
    def _none_as_empty(cls, value: object) -> object:
        return [] if value is None else value

    def to_options(self) -> SyncOptions:
        return SyncOptions(
            auto_migrate=self.auto_migrate_to_canonical_source,
            discovery_roots=tuple(Path(p) for p in normalize_roots(self.workspace_discovery_roots)),
        )


def normalize_roots(roots: list[str]) -> list[str]:
    """Absolute, de-duplicated discovery roots in first-seen order."""
    seen: list[str] = []
    for raw in roots:
        path = Path(raw.strip()).expanduser()
        if not raw.strip() or not path.is_absolute():
            continue
        value = str(path)
        if value not in seen:
            seen.append(value)
    return seen


class PreferencesStore:
    def __init__(self, env: SyncEnvironment) -> None:
        self._path = env.preferences_path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SyncPreferences:
        """Read app-settings.json, returning defaults on a missing or corrupt file."""
        try:
            return SyncPreferences.model_validate(json.loads(self._path.read_text()))
        except FileNotFoundError:
            return SyncPreferences()
        except (json.JSONDecodeError, OSError, ValidationError, ValueError) as e:
            logger.warning(f"Ignoring unreadable preferences {self._path}: {e}")
            return SyncPreferences()

    def save(self, preferences: SyncPreferences) -> SyncPreferences:
        saved = preferences.model_copy(
            update={
                "version": PREFERENCES_VERSION,
                "workspace_discovery_roots": normalize_roots(preferences.workspace_discovery_roots),
            }
        )
        atomic_write(self._path, json.dumps(saved.model_dump(mode="json"), indent=2) + "\n")
        return saved

    def options(self) -> SyncOptions:
        return self.load().to_options()
