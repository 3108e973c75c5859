"""
Batch Scheduler
===============

Runs conversion jobs in consecutive groups bounded by a concurrency limit.
Each group is dispatched together and fully awaited before the next starts,
so at most ``concurrency`` render sessions are live at once.
"""

from typing import Any, List, Sequence

import asyncio

from html_to_image.config.logging import get_logger
from html_to_image.core.rendering.render_capture import RenderCapture
from html_to_image.models.schemas import BatchResult, ConversionJob, JobResult, JobState

logger = get_logger(__name__)


class BatchScheduler:
    """Group-wise concurrent execution of conversion jobs."""

    def __init__(self, capture: RenderCapture):
        self.capture = capture
        self.logger: Any = logger.bind(component="batch_scheduler")  # structlog.BoundLoggerBase

    async def run(self, jobs: Sequence[ConversionJob], concurrency: int) -> BatchResult:
        """
        Render every job.

        Args:
            jobs: Jobs to run, in order
            concurrency: Maximum jobs in flight

        Returns:
            One JobResult per job, in job order

        Raises:
            ValueError: If concurrency is below 1
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")

        results: List[JobResult] = []
        total_groups = (len(jobs) + concurrency - 1) // concurrency

        for index in range(0, len(jobs), concurrency):
            group = list(jobs[index : index + concurrency])
            self.logger.info(
                "Processing group",
                group=index // concurrency + 1,
                total_groups=total_groups,
                size=len(group),
            )

            outcomes = await asyncio.gather(
                *(self.capture.render(job) for job in group), return_exceptions=True
            )

            for job, outcome in zip(group, outcomes):
                if isinstance(outcome, BaseException):
                    if not isinstance(outcome, Exception):
                        raise outcome
                    self.logger.error(
                        "Unexpected job failure", document=str(job.source_path), error=str(outcome)
                    )
                    outcome = JobResult(
                        success=False,
                        input_path=job.source_path,
                        error=str(outcome) or type(outcome).__name__,
                        state=JobState.FAILED,
                    )
                results.append(outcome)

        return results
