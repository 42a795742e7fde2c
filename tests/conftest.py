from __future__ import annotations

import json
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Sequence

import pytest
from PIL import Image

from floorplan_engine.job import JobPaths, create_job_dirs, init_job_outputs
from floorplan_engine.types import Detection, Group, PageImage


# ═══════════════════════════════════════════════════════════════════════════════
# TEST FIXTURES
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def workspace_dir() -> Path:
    """Create temporary workspace."""
    tmp = tempfile.mkdtemp()
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def job_paths(workspace_dir: Path) -> JobPaths:
    paths = create_job_dirs(workspace_dir, "job")
    init_job_outputs(paths)
    return paths


@pytest.fixture
def read_errors(job_paths: JobPaths) -> Callable[[], list[dict]]:
    """Entries written to the job's errors.jsonl so far."""

    def _read() -> list[dict]:
        if not job_paths.errors_jsonl.exists():
            return []
        lines = job_paths.errors_jsonl.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]

    return _read


@pytest.fixture
def make_detections() -> Callable[[Sequence[str | None]], list[Detection]]:
    """Headings to detections; None means OCR found nothing."""

    def _make(headings: Sequence[str | None]) -> list[Detection]:
        return [Detection.from_heading(h, 90.0) if h else Detection.missing() for h in headings]

    return _make


@pytest.fixture
def make_page_images(workspace_dir: Path) -> Callable[[int], list[PageImage]]:
    """Write n small board pages and return them as PageImages."""

    def _make(n: int, pages_dir: Path | None = None) -> list[PageImage]:
        folder = pages_dir or workspace_dir / "pages"
        folder.mkdir(parents=True, exist_ok=True)
        pages = []
        for i in range(n):
            path = folder / f"page-{i + 1:02d}.png"
            Image.new("RGB", (120, 90), color=(255, 255, 255)).save(path)
            pages.append(
                PageImage(page_index=i, page_id=path.stem, source_ref=f"board.pdf#page={i + 5}", image_path=str(path))
            )
        return pages

    return _make


@pytest.fixture
def make_groups() -> Callable[[Sequence[int]], list[Group]]:
    """Contiguous groups from a list of group sizes, e.g. [2, 1, 3]."""

    def _make(sizes: Sequence[int]) -> list[Group]:
        groups = []
        start = 0
        for gid, size in enumerate(sizes, start=1):
            indices = tuple(range(start, start + size))
            groups.append(
                Group(
                    group_id=gid,
                    page_indices=indices,
                    pages=tuple(f"page-{i + 1}.png" for i in indices),
                    room_label=f"Room {gid}",
                    normalized_name=f"room {gid}",
                )
            )
            start += size
        return groups

    return _make
