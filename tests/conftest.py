"""Shared fixtures for skillssync tests."""

from pathlib import Path

import pytest

from skillssync.sync.config import SyncEnvironment, SyncOptions
from skillssync.sync.engine import SyncEngine
from skillssync.sync.mutations import SkillMutator


@pytest.fixture
def home(tmp_path: Path) -> Path:
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def env(home: Path) -> SyncEnvironment:
    environment = SyncEnvironment.for_home(home)
    environment.trash_dir = home / ".Trash"
    return environment


@pytest.fixture
def engine(env: SyncEnvironment) -> SyncEngine:
    return SyncEngine(env)


@pytest.fixture
def mutator(engine: SyncEngine) -> SkillMutator:
    return SkillMutator(engine)


@pytest.fixture
def migrate() -> SyncOptions:
    return SyncOptions(auto_migrate=True)
