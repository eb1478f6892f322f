"""
Encode Orchestrator

Runs one encode job per planned rendition concurrently and aggregates the
outcomes with settle-all semantics:
- All jobs are submitted at once (fan-out) in deterministic order
- The batch waits for every job, a failing job never cancels its siblings
- Failures are captured as outcomes, never raised mid-batch
- A batch with any failure is reported as failed as a whole

Thread workers are used because each job blocks on an external FFmpeg
process rather than on Python code.

The pool is capped by max_workers (ENCODE_WORKERS, default 4). With a
longer ladder every job is still submitted up front, but only that many
FFmpeg processes run at once and the rest start as slots free up. Leave
max_workers unset to run the whole ladder simultaneously.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from ..errors import BatchConversionFailed, EncodeJobFailed, NoRenditionsPlanned
from ..schemas.media import EncodeFailure, EncodeJob, EncodeOutcome, EncodeSuccess


class TranscodingEngine(Protocol):
    """External collaborator that performs one encode job."""

    def encode(self, job: EncodeJob) -> Tuple[str, int]:
        """Return (variant manifest relative path, bandwidth in bps)."""
        ...


@dataclass
class BatchResult:
    """Settled outcomes of one conversion batch, in job submission order."""

    successes: List[EncodeSuccess] = field(default_factory=list)
    failures: List[EncodeFailure] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    @property
    def outcomes(self) -> List[EncodeOutcome]:
        return [*self.successes, *self.failures]

    def raise_for_failures(self) -> None:
        """
        Escalate a partially or totally failed batch.

        Raises:
            BatchConversionFailed: If any job failed
        """
        if self.failures:
            raise BatchConversionFailed(len(self.failures), self.successes, self.failures)


class EncodeOrchestrator:
    """
    Fan-out/fan-in runner for encode jobs.

    Args:
        engine: Transcoding engine used for every job
        max_workers: Upper bound on concurrently running jobs
        logger: Optional logger, defaults to the module logger
    """

    def __init__(
        self,
        engine: TranscodingEngine,
        max_workers: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.engine = engine
        self.max_workers = max_workers
        self.logger = logger or logging.getLogger(__name__)

    def run(self, jobs: Sequence[EncodeJob]) -> BatchResult:
        """
        Run all jobs and wait until every one has settled.

        Args:
            jobs: Encode jobs in submission order

        Returns:
            BatchResult with successes and failures (check `failed`)

        Raises:
            NoRenditionsPlanned: If `jobs` is empty
        """
        if not jobs:
            raise NoRenditionsPlanned()

        workers = min(self.max_workers or len(jobs), len(jobs))
        self.logger.info(f"Submitting {len(jobs)} encode job(s) with {workers} worker(s)")

        settled: Dict[int, EncodeOutcome] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="encode") as executor:
            futures: Dict[Future, int] = {
                executor.submit(self._run_one, job): index for index, job in enumerate(jobs)
            }
            for future in as_completed(futures):
                index = futures[future]
                settled[index] = future.result()

        result = BatchResult()
        for index in range(len(jobs)):
            outcome = settled[index]
            if isinstance(outcome, EncodeSuccess):
                result.successes.append(outcome)
            else:
                result.failures.append(outcome)

        if result.failed:
            self.logger.error(
                f"Encode batch failed: {len(result.failures)} of {len(jobs)} rendition(s) failed"
            )
        else:
            self.logger.info(f"Encode batch complete: {len(result.successes)} rendition(s)")
        return result

    def _run_one(self, job: EncodeJob) -> EncodeOutcome:
        """Run a single job, turning any exception into a Failure outcome."""
        rendition = job.rendition
        try:
            relative_path, bandwidth = self.engine.encode(job)
        except EncodeJobFailed as e:
            self.logger.error(f"Rendition {rendition.name} failed: {e}")
            return EncodeFailure(rendition=rendition, cause=e)
        except Exception as e:
            self.logger.error(f"Rendition {rendition.name} failed: {e}", exc_info=True)
            return EncodeFailure(rendition=rendition, cause=EncodeJobFailed(rendition, e))

        self.logger.info(f"Rendition {rendition.name} finished ({bandwidth} bps)")
        return EncodeSuccess(
            rendition=rendition,
            bandwidth_bps=bandwidth,
            variant_manifest_relative_path=relative_path,
        )
