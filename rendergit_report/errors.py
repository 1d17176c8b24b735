from __future__ import annotations


class ReportError(Exception):
    """Base for every failure that aborts report generation."""

    exit_code = 1


class ReportInputError(ReportError):
    exit_code = 1


class GitError(ReportError):
    exit_code = 2


class RangeError(ReportError):
    exit_code = 2


class PlanSourceError(ReportError):
    exit_code = 3


class PlanError(ReportError):
    """A history plan line that failed validation."""

    exit_code = 3

    def __init__(self, line_no: int, line: str, reason: str) -> None:
        self.line_no = line_no
        self.line = line
        self.reason = reason
        super().__init__(f"line {line_no}: {reason}: {line}")


class MarkupError(Exception):
    """Raised by a diff markup collaborator; always recovered by the renderer."""
