"""
Taskmark - Markdown task backlog

Tracks tasks as one Markdown file per task, with parent/subtask and
dependency links kept consistent and close rules enforced.
"""

__version__ = "0.1.0"

# Re-export core models for convenience
from taskmark.core.config.models import TaskmarkConfig
from taskmark.core.tasks.models import Task, TaskData, TaskFilters
from taskmark.core.tasks.service import Backlog

__all__ = ["Backlog", "Task", "TaskData", "TaskFilters", "TaskmarkConfig", "__version__"]
