from __future__ import annotations

from typing import Protocol

from leakrelay.core.models import Report


class ReportStore(Protocol):
    """Persistence boundary for local run artifacts."""
    def write(self, report: Report, summary: dict) -> dict:
        """Persist a redacted copy of the report and the run summary.

        Args:
            report (Report): Report built for this run.
            summary (dict): Run outcome summary.

        Returns:
            dict: Paths for the written artifacts.
        """
        ...
