"""Bounded-concurrency processing of page groups.

Workers share one claim cursor and, in strict mode, one abort flag; nothing
else is shared. Each worker writes only the result slots of the group it
claimed, so results land in page order whatever order groups finish in.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from .errors import GroupPipelineFailure
from .job import JobPaths, record_error
from .types import Detection, Group, GroupOutcome, PageResult

logger = logging.getLogger(__name__)

GroupPipeline = Callable[[Group], Awaitable[GroupOutcome]]

ABORTED = "Aborted"


class WorkQueueCursor:
    """Shared index into the group list; claim() is an atomic fetch-and-increment."""

    def __init__(self, total: int):
        self.total = total
        self._next = 0
        self._lock = asyncio.Lock()

    async def claim(self) -> int | None:
        async with self._lock:
            if self._next >= self.total:
                return None
            index = self._next
            self._next += 1
            return index

    @property
    def claimed(self) -> int:
        return self._next


class GroupWorkerPool:
    def __init__(
        self,
        pipeline: GroupPipeline,
        *,
        worker_count: int = 2,
        continue_on_error: bool = False,
        paths: JobPaths | None = None,
    ):
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")
        self.pipeline = pipeline
        self.worker_count = worker_count
        self.continue_on_error = continue_on_error
        self.paths = paths

    def effective_concurrency(self, group_count: int) -> int:
        return min(self.worker_count, group_count)

    async def run(
        self,
        groups: Sequence[Group],
        detections: Sequence[Detection] | None = None,
    ) -> list[PageResult]:
        """Process every group; return one PageResult per page index.

        Strict mode raises GroupPipelineFailure for the first failed group once
        in-flight workers have drained; its `results` is the full slot list,
        with never-claimed groups marked as aborted.
        """
        page_count = sum(len(g.page_indices) for g in groups)
        slots: list[PageResult | None] = [None] * page_count
        if not groups:
            return []

        cursor = WorkQueueCursor(len(groups))
        abort = asyncio.Event()
        fatal: list[tuple[Group, Exception]] = []
        workers = self.effective_concurrency(len(groups))
        logger.info("Processing %d group(s) with %d worker(s) (requested %d)", len(groups), workers, self.worker_count)

        def fill(group: Group, make: Callable[[int, str, tuple[str, ...]], PageResult]) -> None:
            for local, (page_index, page) in enumerate(zip(group.page_indices, group.pages)):
                if slots[page_index] is not None:
                    raise RuntimeError(f"page {page_index} written twice (group {group.group_id})")
                companions = tuple(p for k, p in enumerate(group.pages) if k != local)
                slots[page_index] = make(page_index, page, companions)

        def heading(page_index: int) -> tuple[str | None, str | None]:
            if detections is None:
                return None, None
            d = detections[page_index]
            return d.room_name, d.room_name_raw

        def success(group: Group, outcome: GroupOutcome) -> None:
            fill(
                group,
                lambda i, page, companions: PageResult(
                    page_index=i,
                    page_image=page,
                    group_id=group.group_id,
                    grouped_with=companions,
                    room_name=heading(i)[0],
                    room_heading_raw=heading(i)[1],
                    render_path=outcome.render_path,
                    description=outcome.description,
                ),
            )

        def failure(group: Group, message: str, error_type: str) -> None:
            fill(
                group,
                lambda i, page, companions: PageResult(
                    page_index=i,
                    page_image=page,
                    group_id=group.group_id,
                    grouped_with=companions,
                    room_name=heading(i)[0],
                    room_heading_raw=heading(i)[1],
                    error=message,
                    error_type=error_type,
                ),
            )

        async def worker(worker_id: int) -> None:
            while not abort.is_set():
                index = await cursor.claim()
                if index is None:
                    return
                group = groups[index]
                label = group.room_label or group.normalized_name or "(room unidentified)"
                logger.info(
                    "[worker %d] group %d/%d: %s (%d page(s))",
                    worker_id, index + 1, len(groups), label, len(group.pages),
                )
                try:
                    outcome = await self.pipeline(group)
                except Exception as e:
                    message = str(e) or type(e).__name__
                    logger.error("[worker %d] group %d failed: %s", worker_id, group.group_id, message)
                    failure(group, message, type(e).__name__)
                    if self.paths is not None:
                        record_error(self.paths, page_id=f"group_{group.group_id}", stage="group", message=message)
                    if not self.continue_on_error:
                        fatal.append((group, e))
                        abort.set()
                    continue
                success(group, outcome)
                logger.info("[worker %d] group %d done: %s", worker_id, group.group_id, outcome.render_path)

        await asyncio.gather(*(worker(n + 1) for n in range(workers)))

        if fatal:
            group, error = fatal[0]
            skipped = [g for g in groups if any(slots[i] is None for i in g.page_indices)]
            for g in skipped:
                failure(g, f"not processed: run aborted after group {group.group_id} failed", ABORTED)
            logger.warning("Aborted after group %d; %d group(s) never claimed", group.group_id, len(skipped))
            raise GroupPipelineFailure(group.group_id, str(error) or type(error).__name__, results=list(slots)) from error

        missing = [i for i, r in enumerate(slots) if r is None]
        if missing:
            raise RuntimeError(f"pages without a result: {missing}")

        ok = sum(1 for r in slots if r is not None and r.ok)
        logger.info("Processed %d page(s): %d succeeded, %d failed", page_count, ok, page_count - ok)
        return list(slots)  # type: ignore[arg-type]
