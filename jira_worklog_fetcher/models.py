"""Worklog record shared by the fetch and export stages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

UNASSIGNED = "Unassigned"

COLS = [
    "Register Date",
    "Issue Key",
    "Issue Title",
    "Creator",
    "Hours",
    "Minutes",
    "Assigned To",
    "Comment",
]


@dataclass(frozen=True)
class WorklogRecord:
    """One logged time entry attributed to an issue.

    hours_spent and minutes_spent are rounded independently from the same
    timeSpentSeconds value, so minutes_spent is not hours_spent * 60.
    """

    date: str
    issue_key: str
    author: str
    hours_spent: float
    minutes_spent: float
    assignee: str = UNASSIGNED
    issue_summary: str = ""
    comment: str = ""

    @classmethod
    def from_seconds(cls, date: str, issue_key: str, author: str, seconds: int,
                     assignee: str, issue_summary: str = "", comment: str = "") -> "WorklogRecord":
        return cls(
            date=date,
            issue_key=issue_key,
            author=author,
            hours_spent=round(seconds / 3600.0, 2),
            minutes_spent=round(seconds / 60.0, 0),
            assignee=assignee or UNASSIGNED,
            issue_summary=issue_summary,
            comment=comment,
        )

    def as_row(self) -> List[object]:
        """Values in COLS order."""
        return [
            self.date,
            self.issue_key,
            self.issue_summary,
            self.author,
            self.hours_spent,
            self.minutes_spent,
            self.assignee,
            self.comment,
        ]
