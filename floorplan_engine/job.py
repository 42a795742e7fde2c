from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from .errors import CleanupFailure
from .utils import append_jsonl, ensure_dir, utc_now_iso, write_json

logger = logging.getLogger(__name__)


@dataclass
class JobPaths:
    job_dir: Path
    pages_dir: Path  # rasterized PDF pages
    output_dir: Path  # generated renders only; merged into the final PDF
    stage_ocr_dir: Path  # heading crop previews
    report_json: Path
    metrics_json: Path
    errors_jsonl: Path


def create_job_dirs(
    workspace: str | Path,
    job_id: str,
    *,
    pages_dir: str | Path | None = None,
    output_dir: str | Path | None = None,
) -> JobPaths:
    """Create job directories under <workspace>/jobs/<job_id>.

    pages_dir and output_dir may point elsewhere (e.g. shared folders).
    """
    job_dir = Path(workspace) / "jobs" / job_id

    pages = Path(pages_dir) if pages_dir else job_dir / "pdf-pages"
    output = Path(output_dir) if output_dir else job_dir / "generated"
    stage_ocr_dir = job_dir / "stage" / "ocr"

    for p in [job_dir, pages, output, stage_ocr_dir]:
        ensure_dir(p)

    return JobPaths(
        job_dir=job_dir,
        pages_dir=pages,
        output_dir=output,
        stage_ocr_dir=stage_ocr_dir,
        report_json=job_dir / "report.json",
        metrics_json=job_dir / "metrics.json",
        errors_jsonl=job_dir / "errors.jsonl",
    )


def new_job_id() -> str:
    """Generate a new job ID: YYYY-MM-DD/HH-MM-SS__<shortid>."""
    now = datetime.now(timezone.utc)
    date_part = now.strftime("%Y-%m-%d")
    time_part = now.strftime("%H-%M-%S")
    short_id = uuid.uuid4().hex[:8]
    return f"{date_part}/{time_part}__{short_id}"


def record_error(paths: JobPaths, page_id: str, stage: str, message: str) -> None:
    append_jsonl(paths.errors_jsonl, {"page_id": page_id, "stage": stage, "message": message, "at": utc_now_iso()})


def init_job_outputs(paths: JobPaths) -> None:
    # Always create output files, even if empty.
    write_json(paths.report_json, {"job": {}, "pages": []})
    write_json(paths.metrics_json, {"created_at": utc_now_iso(), "finished": False, "completed_at": None})
    paths.errors_jsonl.parent.mkdir(parents=True, exist_ok=True)
    paths.errors_jsonl.touch(exist_ok=True)


def cleanup_intermediates(*dirs: Path, suffix: str = ".png") -> int:
    """Delete intermediate images from each directory; returns the count removed.

    Raises CleanupFailure after attempting every file if any deletion failed.
    """
    deleted = 0
    failures: list[str] = []
    for d in dirs:
        if not d.exists():
            continue
        for f in sorted(d.iterdir()):
            if not f.is_file() or f.suffix.lower() != suffix:
                continue
            try:
                f.unlink()
                deleted += 1
            except OSError as e:
                failures.append(f"{f.name}: {e}")
        logger.info("Deleted intermediate %s files from %s", suffix, d)

    if failures:
        raise CleanupFailure(f"{len(failures)} file(s) not deleted: " + "; ".join(failures[:5]))
    return deleted
