"""State document and managed-links manifest persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from skillssync.sync.config import SyncEnvironment
from skillssync.sync.fsutil import atomic_write
from skillssync.sync.models import SkillRecord, SyncState, iso8601, utc_now

logger = logging.getLogger(__name__)

TOP_SKILLS_LIMIT = 6
MANAGED_LINKS_VERSION = 1


class ManagedLinks(BaseModel):
    version: int = MANAGED_LINKS_VERSION
    generated_at: str = ""
    managed_links: list[str] = Field(default_factory=list)


class StateStore:
    def __init__(self, env: SyncEnvironment) -> None:
        self._env = env

    @property
    def path(self) -> Path:
        return self._env.state_path

    def load_state(self) -> SyncState:
        """Read state.json. Missing or corrupt files yield an empty state."""
        try:
            return SyncState.model_validate(json.loads(self.path.read_text()))
        except FileNotFoundError:
            return SyncState()
        except (json.JSONDecodeError, OSError, ValidationError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return SyncState()

    def save_state(self, state: SyncState) -> None:
        atomic_write(self.path, json.dumps(state.model_dump(mode="json"), indent=2) + "\n")

    def load_managed_links(self) -> list[str]:
        path = self._env.managed_links_path
        try:
            return ManagedLinks.model_validate(json.loads(path.read_text())).managed_links
        except (FileNotFoundError, json.JSONDecodeError, OSError, ValidationError, ValueError):
            return []

    def save_managed_links(self, links: list[str]) -> None:
        manifest = ManagedLinks(generated_at=iso8601(utc_now()), managed_links=sorted(set(links)))
        atomic_write(
            self._env.managed_links_path,
            json.dumps(manifest.model_dump(mode="json"), indent=2) + "\n",
        )

    def top_skills(self, state: SyncState | None = None) -> list[SkillRecord]:
        """Preferred records from `top_skills`, filled up to six from the rest."""
        if state is None:
            state = self.load_state()
        by_id = {skill.id: skill for skill in state.skills}
        result: list[SkillRecord] = []
        for skill_id in state.top_skills:
            skill = by_id.get(skill_id)
            if skill is not None and skill not in result:
                result.append(skill)
            if len(result) == TOP_SKILLS_LIMIT:
                return result
        for skill in sorted(state.skills, key=lambda s: s.sort_key()):
            if len(result) == TOP_SKILLS_LIMIT:
                break
            if skill not in result:
                result.append(skill)
        return result
