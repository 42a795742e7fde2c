from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from .config import EngineConfig, Settings
from .errors import CleanupFailure, DetectionFailure, GroupPipelineFailure, InputError, MergeFailure
from .grouper import group_pages
from .job import JobPaths, cleanup_intermediates, record_error
from .merger import MergeResult, merge_images_to_pdf
from .ocr import HeadingDetector
from .page_provider import PageProvider
from .room_renderer import RoomRenderer
from .types import Detection, Group, GroupOutcome, PageImage, PageResult
from .utils import utc_now_iso
from .worker_pool import GroupWorkerPool
from .writer import JobWriter

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RENDERING = "rendering"
    DETECTING = "detecting"
    GROUPING = "grouping"
    PROCESSING = "processing"
    MERGING = "merging"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    ABORTED = "aborted"


class PageSource(Protocol):
    def render(self) -> list[PageImage]: ...


class Detector(Protocol):
    def detect(self, image_path: str | Path, page_id: str | None = None) -> Detection: ...


class GroupRenderer(Protocol):
    async def render_group(self, group: Group, detections: Sequence[Detection]) -> GroupOutcome: ...


Merger = Callable[[Path, Path], MergeResult]


@dataclass
class RunOptions:
    input_path: str
    skip_conversion_pages: int = 4
    skip_pages: int = 0
    concurrency: int = 2
    continue_on_error: bool = False
    merge_output: bool = True
    merged_output_path: str | None = None
    dpi: int = 110
    file_prefix: str = "page"
    pad_pages: bool = True
    keep_intermediates: bool = False


@dataclass
class PipelineReport:
    job_id: str
    state: PipelineState
    pages_dir: str
    output_dir: str
    page_images: list[PageImage] = field(default_factory=list)
    pages: list[PageImage] = field(default_factory=list)  # after skip_pages
    detections: list[Detection] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    processed_pages: list[PageResult] = field(default_factory=list)
    skip_pages: int = 0
    concurrency: int = 0
    merged_pdf_path: str | None = None
    merge_error: str | None = None
    error: str | None = None
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def successes(self) -> int:
        return sum(1 for r in self.processed_pages if r.ok)

    @property
    def failures(self) -> int:
        return sum(1 for r in self.processed_pages if not r.ok)

    def metrics(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at,
            "state": self.state.value,
            "pages_rendered": len(self.page_images),
            "pages_total": len(self.pages),
            "groups_total": len(self.groups),
            "pages_succeeded": self.successes,
            "pages_failed": self.failures,
            "detection_failures": sum(1 for d in self.detections if d.error),
            "fallback_headings": sum(1 for d in self.detections if d.used_fallback),
            "concurrency": self.concurrency,
            "merged": self.merged_pdf_path is not None,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": {"job_id": self.job_id, "state": self.state.value, "created_at": self.created_at, "error": self.error},
            "pages_dir": self.pages_dir,
            "output_dir": self.output_dir,
            "page_images": [p.image_path for p in self.page_images],
            "skip_pages": self.skip_pages,
            "concurrency": self.concurrency,
            "detections": [
                {"page_image": p.image_path, **d.to_dict()} for p, d in zip(self.pages, self.detections)
            ],
            "groups": [g.to_dict() for g in self.groups],
            "pages": [r.to_dict() for r in self.processed_pages],
            "merged_pdf_path": self.merged_pdf_path,
            "merge_error": self.merge_error,
        }


class EnginePipeline:
    def __init__(
        self,
        paths: JobPaths,
        cfg: EngineConfig,
        opts: RunOptions,
        *,
        settings: Settings | None = None,
        page_provider: PageSource | None = None,
        detector: Detector | None = None,
        renderer: GroupRenderer | None = None,
        merger: Merger | None = None,
    ):
        self.paths = paths
        self.cfg = cfg
        self.opts = opts

        self.page_provider = page_provider or PageProvider(
            input_path=opts.input_path,
            pages_dir=paths.pages_dir,
            dpi=opts.dpi,
            skip_pages=opts.skip_conversion_pages,
            file_prefix=opts.file_prefix,
            pad_pages=opts.pad_pages,
        )
        self.detector = detector or HeadingDetector.from_config(cfg.detect, preview_dir=paths.stage_ocr_dir)
        self.renderer = renderer or RoomRenderer.from_config(paths.output_dir, cfg, settings)
        self.merger = merger or partial(merge_images_to_pdf, **cfg.merge)
        self.writer = JobWriter(paths=paths)

    def _finish(self, report: PipelineReport, state: PipelineState) -> PipelineReport:
        report.state = state
        self.writer.write_final(report.to_dict(), report.metrics(), finished=state == PipelineState.DONE)
        return report

    async def _detect(self, report: PipelineReport) -> None:
        # One page at a time: the OCR reader is not shared across threads.
        for page in report.pages:
            try:
                detection = await asyncio.to_thread(self.detector.detect, page.image_path, page.page_id)
            except InputError as e:
                record_error(self.paths, page_id=page.page_id, stage="detect", message=str(e))
                raise
            except Exception as e:
                message = str(e) or type(e).__name__
                logger.warning("Heading detection failed for %s: %s", page.page_id, message)
                record_error(self.paths, page_id=page.page_id, stage="detect", message=message)
                if not self.opts.continue_on_error:
                    raise DetectionFailure(page.page_id, message) from e
                detection = Detection.missing(error=message)
            report.detections.append(detection)

    async def _merge(self, report: PipelineReport) -> None:
        target = Path(self.opts.merged_output_path) if self.opts.merged_output_path else self.paths.job_dir / "merged-output.pdf"
        try:
            result = await asyncio.to_thread(self.merger, self.paths.output_dir, target)
        except MergeFailure as e:
            logger.warning("Failed to merge output images: %s", e)
            record_error(self.paths, page_id="-", stage="merge", message=str(e))
            report.merge_error = str(e)
            return
        report.merged_pdf_path = str(result.output_path)
        logger.info("Merged %d image(s) into %s", result.image_count, result.output_path)

    async def _cleanup(self) -> None:
        try:
            deleted = await asyncio.to_thread(cleanup_intermediates, self.paths.output_dir, self.paths.pages_dir)
            logger.info("Deleted %d intermediate image(s)", deleted)
        except CleanupFailure as e:
            logger.warning("Cleanup incomplete: %s", e)
            record_error(self.paths, page_id="-", stage="cleanup", message=str(e))

    async def run(self, job_id: str) -> PipelineReport:
        report = PipelineReport(
            job_id=job_id,
            state=PipelineState.RENDERING,
            pages_dir=str(self.paths.pages_dir),
            output_dir=str(self.paths.output_dir),
            skip_pages=self.opts.skip_pages,
        )

        try:
            report.page_images = await asyncio.to_thread(self.page_provider.render)
        except InputError as e:
            record_error(self.paths, page_id="-", stage="render", message=str(e))
            report.error = str(e)
            e.report = self._finish(report, PipelineState.ABORTED)  # type: ignore[attr-defined]
            raise

        skip = max(0, self.opts.skip_pages)
        if skip >= len(report.page_images):
            logger.warning(
                "Requested to skip %d page(s), but only %d were rendered. Nothing to process.",
                skip, len(report.page_images),
            )
            return self._finish(report, PipelineState.DONE)

        # Re-index the processed subset from 0.
        report.pages = [
            PageImage(page_index=i, page_id=p.page_id, source_ref=p.source_ref, image_path=p.image_path)
            for i, p in enumerate(report.page_images[skip:])
        ]
        logger.info("Processing %d page(s) starting from index %d", len(report.pages), skip)

        report.state = PipelineState.DETECTING
        try:
            await self._detect(report)
        except (DetectionFailure, InputError) as e:
            report.error = str(e)
            e.report = self._finish(report, PipelineState.ABORTED)  # type: ignore[attr-defined]
            raise

        report.state = PipelineState.GROUPING
        report.groups = group_pages(report.detections, [p.image_path for p in report.pages])

        report.state = PipelineState.PROCESSING
        pool = GroupWorkerPool(
            lambda group: self.renderer.render_group(group, report.detections),
            worker_count=self.opts.concurrency,
            continue_on_error=self.opts.continue_on_error,
            paths=self.paths,
        )
        report.concurrency = pool.effective_concurrency(len(report.groups))
        try:
            report.processed_pages = await pool.run(report.groups, report.detections)
        except GroupPipelineFailure as e:
            report.processed_pages = list(e.results or [])
            report.error = str(e)
            e.report = self._finish(report, PipelineState.ABORTED)
            raise

        logger.info("Completed %d page(s); %d error(s)", report.successes, report.failures)

        if self.opts.merge_output:
            report.state = PipelineState.MERGING
            await self._merge(report)

            if not self.opts.keep_intermediates and report.merged_pdf_path:
                report.state = PipelineState.CLEANING_UP
                await self._cleanup()

        return self._finish(report, PipelineState.DONE)
