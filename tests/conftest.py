"""
Pytest configuration and shared fixtures.

Provides fixtures for temporary backlogs, sample tasks and configuration,
and open Backlog instances over each repository implementation.
"""

from pathlib import Path

import pytest

from taskmark.core.config.loader import get_backlog_dir, init_backlog
from taskmark.core.config.models import TaskmarkConfig
from taskmark.core.tasks.codec import encode_task, task_filename, write_record
from taskmark.core.tasks.models import Task
from taskmark.core.tasks.repository import get_repository
from taskmark.core.tasks.service import Backlog

TIMESTAMP = "2025-10-22T10:00:00.000Z"

# ==============================================================================
# Directory Fixtures
# ==============================================================================


@pytest.fixture
def temp_dir(tmp_path):
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def project_dir(tmp_path):
    """
    Provide a temporary project with an initialized backlog.

    Creates:
    - backlog/config.yml
    - backlog/.gitignore
    """
    project = tmp_path / "project"
    project.mkdir()
    init_backlog(project, "Test Project")
    return project


@pytest.fixture
def backlog_dir(project_dir):
    """Provide the backlog directory of the temporary project."""
    return get_backlog_dir(project_dir)


# ==============================================================================
# Sample Data Fixtures
# ==============================================================================


@pytest.fixture
def default_config():
    """Provide a default configuration."""
    return TaskmarkConfig()


@pytest.fixture
def make_task():
    """
    Factory for Task objects with sensible defaults.

    Usage:
        task = make_task(3, title="Write docs", status="In Progress")
    """

    def _make(task_id: int, **overrides) -> Task:
        data = {
            "id": task_id,
            "title": f"Task {task_id}",
            "created_date": TIMESTAMP,
            "updated_date": TIMESTAMP,
        }
        data.update(overrides)
        return Task(**data)

    return _make


@pytest.fixture
def write_task(backlog_dir, make_task):
    """
    Factory that writes a task file straight to disk, bypassing repositories.

    Returns the written Task with its file_path set.
    """

    def _write(task_id: int, directory: Path | None = None, **overrides) -> Task:
        task = make_task(task_id, **overrides)
        target = directory or backlog_dir
        task.file_path = target / task_filename(task.id, task.title)
        write_record(task.file_path, encode_task(task))
        return task

    return _write


# ==============================================================================
# Backlog Fixtures
# ==============================================================================


@pytest.fixture(params=["filesystem", "indexed"])
def repository_name(request):
    """Run the test once per repository implementation."""
    return request.param


@pytest.fixture
def repository(repository_name, backlog_dir):
    """Provide an open repository of each implementation."""
    repo = get_repository(repository_name, backlog_dir)
    yield repo
    repo.close()


@pytest.fixture
def backlog(project_dir, repository_name):
    """Provide a Backlog over each repository implementation."""
    config = TaskmarkConfig()
    repo = get_repository(repository_name, get_backlog_dir(project_dir))
    with Backlog(project_dir, config, repository=repo) as opened:
        yield opened
