"""
Unit tests for close validation.

Tests blocking checks, force override, warnings with an injected clock,
and post-close suggestions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from taskmark.core.config.models import CloseValidationConfig
from taskmark.core.tasks.close import (
    BlockingType,
    CloseValidator,
    SuggestionType,
    WarningType,
)
from taskmark.core.tasks.models import AcceptanceCriterion

RESOLVED = {"Done", "Cancelled"}
CREATED = "2025-10-01T10:00:00.000Z"
NOW = datetime(2025, 10, 20, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def validator():
    return CloseValidator(CloseValidationConfig(), RESOLVED)


@pytest.fixture
def task(make_task):
    """Factory with a creation date well before NOW."""

    def _task(task_id: int, **overrides):
        overrides.setdefault("created_date", CREATED)
        return make_task(task_id, **overrides)

    return _task


# ==============================================================================
# Blocking checks
# ==============================================================================


class TestBlockingChecks:
    """Test hard failures that prevent a close."""

    def test_open_subtask_blocks_parent(self, validator, task):
        """Task #5 with open subtask #6 cannot close until #6 is done."""
        parent = task(5, subtasks=[6])
        child = task(6, status="To Do", parent_task=5)

        result = validator.validate_close(parent, [parent, child], now=NOW)

        assert result.valid is False
        assert len(result.blocking) == 1
        issue = result.blocking[0]
        assert issue.type == BlockingType.SUBTASK
        assert [ref.id for ref in issue.tasks] == [6]
        assert issue.message == "1 subtask(s) not completed"

        child.status = "Done"
        result = validator.validate_close(parent, [parent, child], now=NOW)

        assert result.valid is True
        assert result.blocking == []

    def test_cancelled_subtask_does_not_block(self, validator, task):
        parent = task(5, subtasks=[6])
        child = task(6, status="Cancelled", parent_task=5)
        assert validator.validate_close(parent, [parent, child], now=NOW).valid

    def test_force_skips_blocking_checks(self, validator, task):
        parent = task(5, subtasks=[6])
        child = task(6, status="To Do", parent_task=5)

        result = validator.validate_close(parent, [parent, child], force=True, now=NOW)

        assert result.valid is True
        assert result.blocking == []
        assert result.warnings == []

    def test_force_ignored_when_not_allowed(self, task):
        validator = CloseValidator(CloseValidationConfig(allow_force=False), RESOLVED)
        parent = task(5, subtasks=[6])
        child = task(6, status="To Do", parent_task=5)

        result = validator.validate_close(parent, [parent, child], force=True, now=NOW)

        assert result.valid is False
        assert result.blocking[0].type == BlockingType.SUBTASK

    def test_unresolved_dependency_blocks(self, validator, task):
        blocked = task(1, dependencies=[2, 3])
        deps = [task(2, status="In Progress"), task(3, status="To Do")]

        result = validator.validate_close(blocked, [blocked, *deps], now=NOW)

        assert result.valid is False
        assert result.blocking[0].type == BlockingType.DEPENDENCY
        assert result.blocking[0].message == "2 dependencies not resolved"

    def test_single_dependency_message(self, validator, task):
        blocked = task(1, dependencies=[2])
        result = validator.validate_close(blocked, [blocked, task(2)], now=NOW)
        assert result.blocking[0].message == "1 dependency not resolved"

    def test_blocked_by_blocks(self, validator, task):
        target = task(1, blocked_by=[4])
        blocker = task(4, status="Review")

        result = validator.validate_close(target, [target, blocker], now=NOW)

        assert result.blocking[0].type == BlockingType.BLOCKED_BY
        assert result.blocking[0].message == "Task is blocked by 1 task(s)"

    def test_unchecked_criterion_blocks(self, validator, task):
        target = task(1, acceptance_criteria=[AcceptanceCriterion(text="Add tests")])

        result = validator.validate_close(target, [target], now=NOW)

        assert result.valid is False
        issue = result.blocking[0]
        assert issue.type == BlockingType.ACCEPTANCE_CRITERIA
        assert issue.message == "1 acceptance criterion not met (0/1 completed)"
        assert [c.text for c in issue.criteria] == ["Add tests"]

        target.acceptance_criteria[0].checked = True
        result = validator.validate_close(target, [target], now=NOW)

        assert result.valid is True
        assert result.blocking == []

    def test_criteria_progress_in_message(self, validator, task):
        target = task(
            1,
            acceptance_criteria=[
                AcceptanceCriterion(text="a", checked=True),
                AcceptanceCriterion(text="b"),
                AcceptanceCriterion(text="c"),
            ],
        )
        result = validator.validate_close(target, [target], now=NOW)
        assert result.blocking[0].message == "2 acceptance criteria not met (1/3 completed)"

    def test_all_checks_reported_together(self, validator, task):
        target = task(
            1,
            subtasks=[2],
            dependencies=[3],
            blocked_by=[4],
            acceptance_criteria=[AcceptanceCriterion(text="x")],
        )
        others = [task(2, parent_task=1), task(3), task(4)]

        result = validator.validate_close(target, [target, *others], now=NOW)

        assert [issue.type for issue in result.blocking] == [
            BlockingType.SUBTASK,
            BlockingType.DEPENDENCY,
            BlockingType.BLOCKED_BY,
            BlockingType.ACCEPTANCE_CRITERIA,
        ]

    def test_disabled_checks_are_skipped(self, task):
        config = CloseValidationConfig(
            check_subtasks=False,
            check_dependencies=False,
            check_blocked_by=False,
            check_acceptance_criteria=False,
        )
        validator = CloseValidator(config, RESOLVED)
        target = task(
            1, subtasks=[2], dependencies=[2], acceptance_criteria=[AcceptanceCriterion(text="x")]
        )

        assert validator.validate_close(target, [target, task(2)], now=NOW).valid

    def test_missing_referenced_task_is_ignored(self, validator, task):
        target = task(1, dependencies=[99])
        assert validator.validate_close(target, [target], now=NOW).valid


# ==============================================================================
# Warnings
# ==============================================================================


class TestWarnings:
    """Test non-blocking observations."""

    def test_no_warnings_by_default(self, validator, task):
        target = task(1)
        result = validator.validate_close(target, [target], now=NOW)
        assert result.valid
        assert result.warnings == []

    def test_missing_ai_review(self, validator, task):
        target = task(1, assignees=["Claude"])
        result = validator.validate_close(target, [target], now=NOW)
        assert [w.type for w in result.warnings] == [WarningType.MISSING_AI_REVIEW]
        assert result.warnings[0].message == "No AI review found"

    def test_ai_review_present(self, validator, task):
        target = task(1, assignees=["claude"], ai_review="LGTM")
        assert validator.validate_close(target, [target], now=NOW).warnings == []

    def test_human_assignee_needs_no_review(self, validator, task):
        target = task(1, assignees=["alice"])
        assert validator.validate_close(target, [target], now=NOW).warnings == []

    def test_early_close(self, validator, task):
        end = (NOW + timedelta(days=2, hours=3)).isoformat()
        target = task(1, end_date=end)

        warnings = validator.validate_close(target, [target], now=NOW).warnings

        assert [w.type for w in warnings] == [WarningType.EARLY_CLOSE]
        assert warnings[0].message == "Task closed 3 day(s) before planned end date"

    def test_late_close(self, validator, task):
        target = task(1, end_date="2025-10-15")

        warnings = validator.validate_close(target, [target], now=NOW).warnings

        assert [w.type for w in warnings] == [WarningType.LATE_CLOSE]
        assert warnings[0].message == "Task closed 6 day(s) after planned end date"

    def test_late_close_disabled(self, task):
        validator = CloseValidator(CloseValidationConfig(warn_late_close=False), RESOLVED)
        target = task(1, end_date="2025-10-15")
        assert validator.validate_close(target, [target], now=NOW).warnings == []

    def test_quick_close(self, validator, task):
        created = (NOW - timedelta(seconds=95)).isoformat()
        target = task(1, created_date=created, priority="critical")

        warnings = validator.validate_close(target, [target], now=NOW).warnings

        assert [w.type for w in warnings] == [WarningType.QUICK_CLOSE]
        assert warnings[0].message == "Task completed very quickly (1m 35s)"
        assert warnings[0].details == "This is a critical priority task"

    def test_quick_close_threshold_zero_disables(self, task):
        validator = CloseValidator(CloseValidationConfig(warn_quick_close=0), RESOLVED)
        target = task(1, created_date=(NOW - timedelta(seconds=5)).isoformat())
        assert validator.validate_close(target, [target], now=NOW).warnings == []

    def test_warnings_reported_when_blocked(self, validator, task):
        """Task #5 blocked by open subtask #6 still reports the missing review."""
        parent = task(5, subtasks=[6], assignees=["claude"])
        child = task(6, status="To Do", parent_task=5)

        result = validator.validate_close(parent, [parent, child], now=NOW)

        assert result.valid is False
        assert [issue.type for issue in result.blocking] == [BlockingType.SUBTASK]
        assert [w.type for w in result.warnings] == [WarningType.MISSING_AI_REVIEW]

    def test_no_warnings_when_forced_without_permission(self, task):
        validator = CloseValidator(CloseValidationConfig(allow_force=False), RESOLVED)
        parent = task(5, subtasks=[6], assignees=["claude"])
        child = task(6, status="To Do", parent_task=5)

        result = validator.validate_close(parent, [parent, child], force=True, now=NOW)

        assert result.valid is False
        assert result.warnings == []


# ==============================================================================
# Suggestions
# ==============================================================================


class TestSuggestions:
    """Test follow-ups computed after a close."""

    def test_parent_close_suggested_when_last_subtask_closes(self, validator, task):
        parent = task(1, title="Epic", subtasks=[2, 3])
        done = task(2, status="Done", parent_task=1)
        closing = task(3, status="Done", parent_task=1)

        suggestions = validator.get_suggestions_after_close(closing, [parent, done, closing])

        assert [s.type for s in suggestions] == [SuggestionType.PARENT_CLOSE]
        assert suggestions[0].message == "All subtasks of #1 (Epic) are now complete!"
        assert suggestions[0].command == "taskmark task close 1"

    def test_no_parent_suggestion_with_open_sibling(self, validator, task):
        parent = task(1, subtasks=[2, 3])
        sibling = task(2, status="In Progress", parent_task=1)
        closing = task(3, status="Done", parent_task=1)

        assert validator.get_suggestions_after_close(closing, [parent, sibling, closing]) == []

    def test_no_parent_suggestion_when_parent_done(self, validator, task):
        parent = task(1, status="Done", subtasks=[2])
        closing = task(2, status="Done", parent_task=1)
        assert validator.get_suggestions_after_close(closing, [parent, closing]) == []

    def test_unblocked_tasks(self, validator, task):
        closing = task(1, status="Done")
        waiting = task(2, blocked_by=[1])
        finished = task(3, status="Done", blocked_by=[1])

        suggestions = validator.get_suggestions_after_close(closing, [closing, waiting, finished])

        assert [s.type for s in suggestions] == [SuggestionType.UNBLOCKED_TASKS]
        assert suggestions[0].message == "1 task(s) unblocked"
        assert [ref.id for ref in suggestions[0].tasks] == [2]
