from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from leakrelay.core.models import Report
from leakrelay.core.redaction import redact_data, redact_report_dict
from leakrelay.core.report import report_to_dict


@dataclass
class FileSystemReportStore:
    base_dir: str = "leakrelay-artifacts"

    def write(self, report: Report, summary: dict) -> dict:
        """Persist run artifacts to the filesystem.

        Notes:
            Finding secrets and matches are masked and the summary is redacted
            before writing; CI artifacts are readable by anyone with access
            to the job.
        """
        run_dir = Path(self.base_dir) / report.metadata.run_id / report.metadata.run_attempt
        run_dir.mkdir(parents=True, exist_ok=True)
        report_path = run_dir / "report.redacted.json"
        summary_path = run_dir / "summary.json"

        masked = redact_report_dict(report_to_dict(report))
        report_path.write_text(json.dumps(masked, indent=2, sort_keys=True), encoding="utf-8")
        summary_path.write_text(json.dumps(redact_data(summary), indent=2, sort_keys=True), encoding="utf-8")

        return {
            "report": str(report_path),
            "summary": str(summary_path),
        }
