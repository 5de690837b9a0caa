from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from herdwatch.schemas.analysis import FrameResult
from herdwatch.services.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

F = TypeVar("F")

DEFAULT_BATCH_SIZE = 3
DEFAULT_BATCH_DELAY_MS = 1000


class FrameAnalysisError(RuntimeError):
    """Raised when no frame of a job could be analyzed."""


@dataclass
class FrameOutcome:
    frame_index: int
    result: FrameResult | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.result is not None


@dataclass
class _Batch(Generic[F]):
    start: int
    frames: Sequence[F]


def partition(frames: Sequence[F], batch_size: int) -> list[_Batch[F]]:
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [_Batch(start=i, frames=frames[i : i + batch_size]) for i in range(0, len(frames), batch_size)]


async def analyze_frames(
    frames: Sequence[F],
    analyze: Callable[[int, F], Awaitable[FrameResult]],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    batch_delay_ms: int = DEFAULT_BATCH_DELAY_MS,
    retry: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> list[FrameOutcome]:
    """Analyze ``frames`` in sequential batches of concurrent, individually retried calls.

    A failing frame never aborts its siblings. Outcomes come back ordered by
    frame index. Raises FrameAnalysisError when every frame failed.
    """
    batches = partition(frames, batch_size)
    outcomes: list[FrameOutcome] = []

    for batch_no, batch in enumerate(batches):
        indices = [batch.start + offset for offset in range(len(batch.frames))]
        calls = [
            with_retry(
                _bind(analyze, idx, frame),
                retry.max_attempts,
                retry.base_delay_ms,
                label=f"frame {idx}",
                sleep=sleep,
            )
            for idx, frame in zip(indices, batch.frames)
        ]
        settled = await asyncio.gather(*calls, return_exceptions=True)

        for idx, value in zip(indices, settled):
            if isinstance(value, BaseException):
                logger.error("frame %d analysis failed after retries: %s", idx, value)
                outcomes.append(FrameOutcome(frame_index=idx, error=value))
            else:
                outcomes.append(FrameOutcome(frame_index=idx, result=value.model_copy(update={"frame_index": idx})))

        if batch_no < len(batches) - 1 and batch_delay_ms > 0:
            await sleep(batch_delay_ms / 1000.0)

    outcomes.sort(key=lambda o: o.frame_index)
    succeeded = sum(1 for o in outcomes if o.ok)
    logger.info("frame analysis finished: %d/%d succeeded", succeeded, len(outcomes))

    if outcomes and succeeded == 0:
        last = outcomes[-1].error
        raise FrameAnalysisError(f"all {len(outcomes)} frames failed: {last}") from last
    if not outcomes:
        raise FrameAnalysisError("no frames to analyze")
    return outcomes


def _bind(analyze: Callable[[int, F], Awaitable[FrameResult]], idx: int, frame: F) -> Callable[[], Awaitable[FrameResult]]:
    async def call() -> FrameResult:
        return await analyze(idx, frame)

    return call
