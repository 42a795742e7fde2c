from __future__ import annotations

import asyncio

import pytest

from floorplan_engine.errors import GroupPipelineFailure
from floorplan_engine.types import Description, Group, GroupOutcome
from floorplan_engine.worker_pool import ABORTED, GroupWorkerPool, WorkQueueCursor


def _outcome(group: Group) -> GroupOutcome:
    return GroupOutcome(
        render_path=f"/out/group-{group.group_id}-render.png",
        description=Description(narrative=f"room {group.group_id}", geometry=None, raw=""),
        title=group.room_label,
    )


class RecordingPipeline:
    """Fake per-group pipeline with scripted delays and failures."""

    def __init__(self, *, fail=(), delays=None):
        self.fail = set(fail)
        self.delays = delays or {}
        self.started: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, group: Group) -> GroupOutcome:
        self.started.append(group.group_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(group.group_id, 0))
            if group.group_id in self.fail:
                raise RuntimeError(f"render failed for group {group.group_id}")
            return _outcome(group)
        finally:
            self.in_flight -= 1


class TestWorkQueueCursor:
    def test_claims_are_unique(self):
        cursor = WorkQueueCursor(50)

        async def claim_all():
            async def grab():
                got = []
                while (i := await cursor.claim()) is not None:
                    got.append(i)
                    await asyncio.sleep(0)
                return got

            return await asyncio.gather(*(grab() for _ in range(8)))

        results = asyncio.run(claim_all())
        flat = sorted(i for r in results for i in r)
        assert flat == list(range(50))
        assert cursor.claimed == 50

    def test_exhausted(self):
        cursor = WorkQueueCursor(0)
        assert asyncio.run(cursor.claim()) is None


class TestGroupWorkerPool:
    def test_rejects_zero_workers(self):
        with pytest.raises(ValueError):
            GroupWorkerPool(RecordingPipeline(), worker_count=0)

    def test_empty_groups(self):
        pool = GroupWorkerPool(RecordingPipeline())
        assert asyncio.run(pool.run([])) == []

    def test_effective_concurrency(self):
        pool = GroupWorkerPool(RecordingPipeline(), worker_count=8)
        assert pool.effective_concurrency(3) == 3
        assert pool.effective_concurrency(20) == 8

    def test_results_in_page_order(self, make_groups):
        groups = make_groups([2, 1, 3, 1])
        # Later groups finish first.
        pipeline = RecordingPipeline(delays={1: 0.04, 2: 0.03, 3: 0.02, 4: 0.0})
        results = asyncio.run(GroupWorkerPool(pipeline, worker_count=4).run(groups))

        assert [r.page_index for r in results] == list(range(7))
        assert [r.group_id for r in results] == [1, 1, 2, 3, 3, 3, 4]
        assert all(r.ok for r in results)
        assert results[0].render_path == results[1].render_path == "/out/group-1-render.png"

    def test_grouped_with_lists_companions(self, make_groups):
        groups = make_groups([3])
        results = asyncio.run(GroupWorkerPool(RecordingPipeline()).run(groups))

        assert results[0].grouped_with == ("page-2.png", "page-3.png")
        assert results[1].grouped_with == ("page-1.png", "page-3.png")

    def test_concurrency_bound(self, make_groups):
        groups = make_groups([1] * 9)
        pipeline = RecordingPipeline(delays={g.group_id: 0.01 for g in groups})
        asyncio.run(GroupWorkerPool(pipeline, worker_count=3).run(groups))

        assert pipeline.max_in_flight <= 3
        assert sorted(pipeline.started) == list(range(1, 10))

    def test_continue_isolates_failure(self, make_groups, job_paths, read_errors):
        groups = make_groups([1, 1, 1, 1])
        pipeline = RecordingPipeline(fail={3})
        pool = GroupWorkerPool(pipeline, worker_count=2, continue_on_error=True, paths=job_paths)

        results = asyncio.run(pool.run(groups))

        assert [r.ok for r in results] == [True, True, False, True]
        assert "render failed for group 3" in results[2].error
        assert results[2].error_type == "RuntimeError"
        assert results[2].render_path is None

        errors = read_errors()
        assert errors[0]["stage"] == "group"
        assert errors[0]["page_id"] == "group_3"

    def test_failed_group_fills_every_page(self, make_groups):
        groups = make_groups([1, 3, 1])
        results = asyncio.run(
            GroupWorkerPool(RecordingPipeline(fail={2}), continue_on_error=True).run(groups)
        )

        assert [r.ok for r in results] == [True, False, False, False, True]
        assert {r.error for r in results[1:4]} == {"render failed for group 2"}

    def test_strict_mode_stops_claiming(self, make_groups):
        groups = make_groups([1, 1, 1, 1, 1])
        pipeline = RecordingPipeline(fail={1}, delays={2: 0.02})
        pool = GroupWorkerPool(pipeline, worker_count=2, continue_on_error=False)

        with pytest.raises(GroupPipelineFailure) as exc_info:
            asyncio.run(pool.run(groups))

        err = exc_info.value
        assert err.group_id == 1
        assert isinstance(err.__cause__, RuntimeError)
        assert sorted(pipeline.started) == [1, 2]

        results = err.results
        assert len(results) == 5
        assert results[0].error_type == "RuntimeError"
        # The in-flight group drains and keeps its result.
        assert results[1].ok
        assert [r.error_type for r in results[2:]] == [ABORTED] * 3
