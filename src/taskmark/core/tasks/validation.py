"""
Status and priority validation.

Checks field values against the allowed sets in the board configuration
before anything is written, raising ValidationError with remediation
suggestions the CLI can show as-is.
"""

from collections.abc import Mapping
from typing import Any

from taskmark.core.config.models import BoardConfig
from taskmark.core.exceptions import ValidationError


class FieldValidator:
    """
    Validates task field values against the configured board.

    Example:
        >>> validator = FieldValidator(BoardConfig())
        >>> validator.validate_status("Done")
        >>> validator.validate_status("Shipped")
        Traceback (most recent call last):
        ...
        taskmark.core.exceptions.ValidationError: Invalid status "Shipped"
    """

    def __init__(self, board: BoardConfig):
        self.board = board

    def validate_status(self, status: str | None) -> None:
        """Raise ValidationError unless status is one of the board columns."""
        valid = self.board.columns
        if not status:
            raise ValidationError("Status is required", [f"Use one of: {', '.join(valid)}"])
        if status not in valid:
            raise ValidationError(
                f'Invalid status "{status}"',
                [
                    "Allowed statuses:",
                    *(f"  • {s}" for s in valid),
                    "",
                    "Tip: run `taskmark config statuses` to see all available statuses",
                ],
                field="status",
                value=status,
            )

    def validate_priority(self, priority: str | None) -> None:
        """Raise ValidationError unless priority is one of the board priorities."""
        valid = self.board.priorities
        if not priority:
            raise ValidationError("Priority is required", [f"Use one of: {', '.join(valid)}"])
        if priority not in valid:
            raise ValidationError(
                f'Invalid priority "{priority}"',
                [
                    "Allowed priorities:",
                    *(f"  • {p}" for p in valid),
                    "",
                    "Tip: run `taskmark config priorities` to see all available priorities",
                ],
                field="priority",
                value=priority,
            )

    def validate_task_data(self, status: str | None, priority: str | None) -> tuple[str, str]:
        """
        Validate values for a new task, filling in board defaults.

        Returns:
            The (status, priority) pair to use
        """
        status = status or self.board.default_status
        priority = priority or self.board.default_priority
        self.validate_status(status)
        self.validate_priority(priority)
        return status, priority

    def validate_task_updates(self, updates: Mapping[str, Any]) -> None:
        """Validate status and priority if the update touches them."""
        if "status" in updates:
            self.validate_status(updates["status"])
        if "priority" in updates:
            self.validate_priority(updates["priority"])

    def get_valid_statuses(self) -> list[str]:
        return list(self.board.columns)

    def get_valid_priorities(self) -> list[str]:
        return list(self.board.priorities)
