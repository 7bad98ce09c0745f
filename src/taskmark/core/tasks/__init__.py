"""
Task storage, relationships and close validation.

This module provides the Task model, the TaskRepository protocol with its
plain and indexed implementations, the close validator, and the Backlog
facade that keeps relationships between tasks consistent.
"""

from .close import (
    BlockingIssue,
    BlockingType,
    CloseSuggestion,
    CloseValidationResult,
    CloseValidator,
    CloseWarning,
    SuggestionType,
    WarningType,
)
from .models import (
    AcceptanceCriterion,
    ChangelogEntry,
    IndexEntry,
    Task,
    TaskData,
    TaskFilters,
)
from .repository import (
    TaskRepository,
    get_repository,
    list_repositories,
    register_repository,
)

# Import repository implementations to trigger registration
from . import filesystem, indexed  # noqa: F401, E402

from .service import Backlog, CloseOutcome, DependencyView, TaskTree  # noqa: E402

__all__ = [
    # Models
    "AcceptanceCriterion",
    "ChangelogEntry",
    "IndexEntry",
    "Task",
    "TaskData",
    "TaskFilters",
    # Repository protocol and registry
    "TaskRepository",
    "get_repository",
    "list_repositories",
    "register_repository",
    # Close validation
    "BlockingIssue",
    "BlockingType",
    "CloseSuggestion",
    "CloseValidationResult",
    "CloseValidator",
    "CloseWarning",
    "SuggestionType",
    "WarningType",
    # Facade
    "Backlog",
    "CloseOutcome",
    "DependencyView",
    "TaskTree",
]
