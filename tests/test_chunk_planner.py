"""Tests for frame-range partitioning."""

import math

import pytest

from render_orchestrator.services.chunk_planner import (
    MIN_FRAMES_PER_CHUNK,
    initial_worker_ceiling,
    plan_chunks,
)


class TestPlanChunks:
    """Tests for plan_chunks."""

    def test_splits_evenly_across_ceiling(self):
        plan = plan_chunks(total_frames=3600, worker_ceiling=8)

        assert plan.frames_per_chunk == 450
        assert plan.chunk_count == 8
        assert plan.worker_ceiling == 8

    def test_rounds_chunk_size_up(self):
        """Uneven splits never need more chunks than the ceiling."""
        plan = plan_chunks(total_frames=1001, worker_ceiling=10)

        assert plan.frames_per_chunk == 101
        assert plan.chunk_count == 10

    def test_single_worker_renders_everything(self):
        plan = plan_chunks(total_frames=3600, worker_ceiling=1)

        assert plan.frames_per_chunk == 3600
        assert plan.chunk_count == 1

    def test_minimum_chunk_size_on_short_timelines(self):
        """Floor kicks in and fewer chunks than the ceiling are used."""
        plan = plan_chunks(total_frames=90, worker_ceiling=200)

        assert plan.frames_per_chunk == MIN_FRAMES_PER_CHUNK
        assert plan.chunk_count == 5

    def test_zero_or_negative_ceiling_treated_as_one(self):
        assert plan_chunks(total_frames=500, worker_ceiling=0).frames_per_chunk == 500
        assert plan_chunks(total_frames=500, worker_ceiling=-3).worker_ceiling == 1

    def test_single_frame(self):
        plan = plan_chunks(total_frames=1, worker_ceiling=50)

        assert plan.frames_per_chunk == MIN_FRAMES_PER_CHUNK
        assert plan.chunk_count == 1

    def test_custom_minimum(self):
        plan = plan_chunks(total_frames=100, worker_ceiling=100, min_frames_per_chunk=50)

        assert plan.frames_per_chunk == 50
        assert plan.chunk_count == 2

    @pytest.mark.parametrize("total_frames", [1, 19, 20, 21, 299, 3600, 54_000, 100_003])
    @pytest.mark.parametrize("ceiling", [1, 2, 7, 8, 199, 200, 998])
    def test_chunk_count_bounded(self, total_frames, ceiling):
        plan = plan_chunks(total_frames, ceiling)

        assert plan.frames_per_chunk >= MIN_FRAMES_PER_CHUNK
        assert plan.chunk_count <= max(ceiling, math.ceil(total_frames / MIN_FRAMES_PER_CHUNK))
        assert plan.chunk_count * plan.frames_per_chunk >= total_frames


class TestInitialWorkerCeiling:
    """Tests for the first-attempt worker ceiling."""

    def test_keeps_two_workers_free(self):
        assert initial_worker_ceiling(account_concurrency=10, farm_hard_cap=200) == 8

    def test_never_below_one(self):
        assert initial_worker_ceiling(account_concurrency=3, farm_hard_cap=200) == 1
        assert initial_worker_ceiling(account_concurrency=1, farm_hard_cap=200) == 1

    def test_capped_by_farm(self):
        assert initial_worker_ceiling(account_concurrency=1000, farm_hard_cap=200) == 200
