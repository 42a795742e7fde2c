from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .job import JobPaths
from .utils import utc_now_iso, write_json


@dataclass
class JobWriter:
    paths: JobPaths

    def write_final(self, report: dict[str, Any], metrics: dict[str, Any], *, finished: bool = True) -> None:
        now = utc_now_iso()

        # Aborted runs still write a well-formed report, marked unfinished.
        metrics_out = dict(metrics)
        metrics_out["finished"] = finished
        metrics_out["completed_at"] = now

        report_out = dict(report)
        job = dict(report_out.get("job") or {})
        job["finished"] = finished
        job["completed_at"] = now
        report_out["job"] = job

        write_json(self.paths.report_json, report_out)
        write_json(self.paths.metrics_json, metrics_out)
