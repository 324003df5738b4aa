"""Tests for render progress polling."""

import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import make_timeline_data
from render_orchestrator.exceptions import RenderFarmError
from render_orchestrator.models import RenderJob, TimelineRecord
from render_orchestrator.services.render_farm_client import RenderProgress
from render_orchestrator.services.render_progress import (
    RenderCompleted,
    RenderFailed,
    RenderRunning,
    poll,
)


@pytest_asyncio.fixture
async def rendering_job(test_db):
    timeline = TimelineRecord(
        name="t",
        timeline_data=make_timeline_data(),
        status="rendering",
        render_id="r-1",
        render_bucket="bucket-1",
    )
    test_db.add(timeline)
    await test_db.flush()
    job = RenderJob(
        timeline_id=timeline.id,
        render_id="r-1",
        bucket="bucket-1",
        frames_per_chunk=113,
        chunk_count=8,
        concurrency_limit=8,
        status="rendering",
    )
    test_db.add(job)
    await test_db.commit()
    return job


class TestPoll:
    """Tests for poll()."""

    @pytest.mark.asyncio
    async def test_running_is_not_persisted(self, test_db, mock_farm, settings, rendering_job):
        mock_farm.get_progress.return_value = RenderProgress(done=False, overall_progress=0.42)

        result = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)

        assert result == RenderRunning(fraction=0.42)
        assert rendering_job.status == "rendering"
        mock_farm.get_progress.assert_awaited_once_with("r-1", "bucket-1")

    @pytest.mark.asyncio
    async def test_completion_persists_output(self, test_db, mock_farm, settings, rendering_job):
        mock_farm.get_progress.return_value = RenderProgress(
            done=True,
            overall_progress=1.0,
            output_file="https://bucket.s3.amazonaws.com/renders/r-1/out.mp4",
            output_size=12_345_678,
        )

        result = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)
        await test_db.commit()

        assert result == RenderCompleted(
            output_url="https://bucket.s3.amazonaws.com/renders/r-1/out.mp4",
            size_bytes=12_345_678,
        )
        assert rendering_job.status == "rendered"
        assert rendering_job.output_size == 12_345_678
        assert rendering_job.completed_at is not None

        timeline = await test_db.get(TimelineRecord, rendering_job.timeline_id)
        assert timeline.status == "rendered"
        assert timeline.render_url.endswith("/out.mp4")

    @pytest.mark.asyncio
    async def test_done_without_output_keeps_running(self, test_db, mock_farm, settings, rendering_job):
        mock_farm.get_progress.return_value = RenderProgress(done=True, overall_progress=1.0)

        result = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)

        assert isinstance(result, RenderRunning)
        assert rendering_job.status == "rendering"

    @pytest.mark.asyncio
    async def test_fatal_error_truncated_and_persisted(self, test_db, mock_farm, settings, rendering_job):
        long_message = "Chunk 3 crashed: " + "x" * 500
        mock_farm.get_progress.return_value = RenderProgress(
            done=False,
            overall_progress=0.3,
            fatal_error=True,
            errors=[long_message, "second error"],
        )

        result = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)
        await test_db.commit()

        assert isinstance(result, RenderFailed)
        assert len(result.message) == 300
        assert result.message.startswith("Chunk 3 crashed")
        assert rendering_job.status == "failed"
        assert rendering_job.error_message == result.message

        timeline = await test_db.get(TimelineRecord, rendering_job.timeline_id)
        assert timeline.status == "failed"

    @pytest.mark.asyncio
    async def test_failed_render_stays_failed_without_contacting_farm(
        self, test_db, mock_farm, settings, rendering_job
    ):
        mock_farm.get_progress.return_value = RenderProgress(
            done=False, overall_progress=0.3, fatal_error=True, errors=["Out of memory"]
        )

        first = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)
        await test_db.commit()

        # Even if the farm later claims success, the stored outcome wins
        mock_farm.get_progress.return_value = RenderProgress(
            done=True, overall_progress=1.0, output_file="https://x/out.mp4"
        )
        second = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)

        assert first == second == RenderFailed(message="Out of memory")
        assert mock_farm.get_progress.await_count == 1
        job = (await test_db.execute(select(RenderJob))).scalar_one()
        assert job.status == "failed"

    @pytest.mark.asyncio
    async def test_fatal_error_without_messages(self, test_db, mock_farm, settings, rendering_job):
        mock_farm.get_progress.return_value = RenderProgress(
            done=False, overall_progress=0.0, fatal_error=True
        )

        result = await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)

        assert result == RenderFailed(message="Render failed")

    @pytest.mark.asyncio
    async def test_unknown_render_updates_timeline_only(self, test_db, mock_farm, settings):
        """Renders launched elsewhere still move the caller's timeline."""
        timeline = TimelineRecord(name="t", timeline_data=make_timeline_data(), status="rendering")
        test_db.add(timeline)
        await test_db.commit()
        mock_farm.get_progress.return_value = RenderProgress(
            done=True, overall_progress=1.0, output_file="https://x/out.mp4", output_size=10
        )

        result = await poll(test_db, mock_farm, "r-ext", "b", timeline_id=timeline.id, settings=settings)

        assert result == RenderCompleted(output_url="https://x/out.mp4", size_bytes=10)
        assert timeline.status == "rendered"
        assert timeline.render_url == "https://x/out.mp4"

    @pytest.mark.asyncio
    async def test_farm_errors_propagate_without_writes(self, test_db, mock_farm, settings, rendering_job):
        mock_farm.get_progress.side_effect = RenderFarmError("Render farm unreachable: timeout")

        with pytest.raises(RenderFarmError):
            await poll(test_db, mock_farm, "r-1", "bucket-1", settings=settings)

        assert rendering_job.status == "rendering"
