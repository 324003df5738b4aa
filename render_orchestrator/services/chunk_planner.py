"""Frame-range partitioning for distributed renders."""

import math
from dataclasses import dataclass

# Chunks smaller than this cost more in worker spin-up than they save
MIN_FRAMES_PER_CHUNK = 20


@dataclass(frozen=True)
class ChunkPlan:
    frames_per_chunk: int
    chunk_count: int
    worker_ceiling: int


def plan_chunks(
    total_frames: int,
    worker_ceiling: int,
    min_frames_per_chunk: int = MIN_FRAMES_PER_CHUNK,
) -> ChunkPlan:
    """Split ``total_frames`` so that at most ``worker_ceiling`` chunks are needed.

    ``chunk_count`` can come out below the ceiling on short timelines, once the
    minimum chunk size takes over. ``total_frames`` must be at least 1.
    """
    effective_ceiling = max(worker_ceiling, 1)
    frames_per_chunk = max(math.ceil(total_frames / effective_ceiling), min_frames_per_chunk)
    chunk_count = math.ceil(total_frames / frames_per_chunk)
    return ChunkPlan(
        frames_per_chunk=frames_per_chunk,
        chunk_count=chunk_count,
        worker_ceiling=effective_ceiling,
    )


def initial_worker_ceiling(account_concurrency: int, farm_hard_cap: int) -> int:
    """Worker ceiling for the first launch attempt.

    Two workers of the account-wide budget stay free for other renders
    running at the same time.
    """
    return min(max(account_concurrency - 2, 1), farm_hard_cap)
