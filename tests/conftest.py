"""Pytest configuration and shared fixtures."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from beatline.backends.cli import CliBackend
from beatline.backends.jsonl import JsonlBackend, reset_cache
from beatline.core.models import Beat, BeatType
from beatline.testing.fake_bd import FakeBdRunner
from beatline.workflows.descriptors import WorkflowDescriptor, builtin_profile_descriptor
from beatline.workflows.states import apply_workflow_state

# Set test environment
os.environ.setdefault("BEATLINE_DEBUG", "true")
os.environ.setdefault("BEATLINE_LOG_LEVEL", "DEBUG")


@pytest.fixture
def mock_settings() -> Generator:
    """Clear cached settings around a test."""
    from beatline.core.config import clear_settings_cache

    clear_settings_cache()

    yield

    clear_settings_cache()


@pytest.fixture
def repo_path(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide an empty repository with a ``.beads`` directory."""
    (tmp_path / ".beads").mkdir()
    reset_cache(tmp_path)

    yield tmp_path

    reset_cache(tmp_path)


@pytest.fixture
def jsonl_backend(repo_path: Path) -> JsonlBackend:
    """Provide a JSONL backend over a fresh repository."""
    return JsonlBackend(repo_path)


@pytest.fixture
def fake_bd() -> FakeBdRunner:
    """Provide an in-memory bd emulator."""
    return FakeBdRunner()


@pytest.fixture
def cli_backend(tmp_path: Path, fake_bd: FakeBdRunner) -> CliBackend:
    """Provide a CLI backend wired to the fake bd runner."""
    return CliBackend(tmp_path, runner=fake_bd)


@pytest.fixture
def autopilot() -> WorkflowDescriptor:
    return builtin_profile_descriptor("autopilot")


@pytest.fixture
def semiauto() -> WorkflowDescriptor:
    return builtin_profile_descriptor("semiauto")


@pytest.fixture
def sample_beats() -> list[Beat]:
    """Provide a few beats in different workflow states."""
    autopilot = builtin_profile_descriptor("autopilot")
    semiauto = builtin_profile_descriptor("semiauto")

    beats = [
        Beat(id="bd-1", title="Set up CI", type=BeatType.CHORE, priority=1, labels=["infra"]),
        Beat(id="bd-2", title="Fix login redirect", type=BeatType.BUG, priority=0, assignee="ana"),
        Beat(id="bd-3", title="Add export", type=BeatType.FEATURE, priority=2, owner="team-a"),
        Beat(id="bd-3.1", title="Export CSV", type=BeatType.TASK, parent="bd-3"),
    ]
    apply_workflow_state(beats[0], autopilot, "ready_for_implementation")
    apply_workflow_state(beats[1], autopilot, "implementation")
    apply_workflow_state(beats[2], semiauto, "ready_for_plan_review")
    apply_workflow_state(beats[3], autopilot, "shipped")
    return beats


# Markers
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")
