"""
Unit tests for the encode orchestrator.

Tests:
- Settle-all: a failing job never aborts its siblings
- Batch reported failed when any job fails
- Outcomes kept in submission order regardless of completion order
- Empty batch rejected
- Concurrency capped by max_workers
"""

import threading
import time

import pytest

from hlsforge.errors import BatchConversionFailed, EncodeJobFailed, NoRenditionsPlanned
from hlsforge.schemas.media import EncodeFailure, EncodeJob, EncodeSuccess, Rendition
from hlsforge.services.orchestrator import EncodeOrchestrator


def make_jobs(renditions):
    return [EncodeJob(r, "/videos/intro.mp4", "/out/intro") for r in renditions]


class TestSettleAll:
    """Tests for settle-all execution."""

    def test_one_failure_among_three(self, ladder, make_engine):
        """Job #2 fails, #1 and #3 still succeed and the batch is failed."""
        engine = make_engine(fail={"480p"})
        orchestrator = EncodeOrchestrator(engine, max_workers=3)

        result = orchestrator.run(make_jobs(ladder))

        assert len(result.successes) == 2
        assert len(result.failures) == 1
        assert result.failed is True
        assert sorted(engine.calls) == ["360p", "480p", "720p"]

    def test_failure_captures_cause(self, ladder, make_engine):
        orchestrator = EncodeOrchestrator(make_engine(fail={"720p"}))

        failure = orchestrator.run(make_jobs(ladder)).failures[0]

        assert isinstance(failure, EncodeFailure)
        assert failure.ok is False
        assert failure.rendition.name == "720p"
        assert isinstance(failure.cause, EncodeJobFailed)
        assert isinstance(failure.cause.cause, RuntimeError)
        assert "720p" in str(failure.cause)

    def test_engine_raising_encode_job_failed_is_kept_as_is(self, ladder):
        class FailingEngine:
            def encode(self, job):
                raise EncodeJobFailed(job.rendition, TimeoutError("too slow"))

        result = EncodeOrchestrator(FailingEngine()).run(make_jobs(ladder[:1]))

        cause = result.failures[0].cause
        assert isinstance(cause, EncodeJobFailed)
        assert isinstance(cause.cause, TimeoutError)

    def test_slow_failure_does_not_cancel_fast_successes(self, ladder, make_engine):
        engine = make_engine(fail={"360p"}, delays={"360p": 0.2})

        result = EncodeOrchestrator(engine, max_workers=3).run(make_jobs(ladder))

        assert [s.rendition.name for s in result.successes] == ["480p", "720p"]
        assert [f.rendition.name for f in result.failures] == ["360p"]

    def test_all_succeed(self, ladder, make_engine):
        result = EncodeOrchestrator(make_engine()).run(make_jobs(ladder))

        assert result.failed is False
        assert all(isinstance(s, EncodeSuccess) and s.ok for s in result.successes)
        assert [s.bandwidth_bps for s in result.successes] == [800000, 1200000, 1500000]
        assert [s.variant_manifest_relative_path for s in result.successes] == [
            "360p/playlist.m3u8",
            "480p/playlist.m3u8",
            "720p/playlist.m3u8",
        ]
        result.raise_for_failures()


class TestOrdering:
    """Completion order never leaks into the result."""

    def test_results_in_submission_order(self, ladder, make_engine):
        engine = make_engine(delays={"360p": 0.15, "480p": 0.05})

        result = EncodeOrchestrator(engine, max_workers=3).run(make_jobs(ladder))

        assert [s.rendition.name for s in result.successes] == ["360p", "480p", "720p"]

    def test_outcomes_lists_successes_then_failures(self, ladder, make_engine):
        result = EncodeOrchestrator(make_engine(fail={"360p"})).run(make_jobs(ladder))

        assert [o.ok for o in result.outcomes] == [True, True, False]


class TestBatchFailure:
    """Tests for BatchResult.raise_for_failures()."""

    def test_raises_with_count(self, ladder, make_engine):
        result = EncodeOrchestrator(make_engine(fail={"360p", "720p"})).run(make_jobs(ladder))

        with pytest.raises(BatchConversionFailed) as exc_info:
            result.raise_for_failures()

        error = exc_info.value
        assert error.count == 2
        assert [s.rendition.name for s in error.successes] == ["480p"]
        assert "2 rendition(s)" in str(error)


class TestEmptyBatch:
    def test_no_jobs(self, make_engine):
        with pytest.raises(NoRenditionsPlanned):
            EncodeOrchestrator(make_engine()).run([])


class TestWorkerCap:
    """max_workers bounds how many FFmpeg processes run at once."""

    def test_ladder_longer_than_cap(self, ladder, make_engine):
        lock = threading.Lock()
        running = []
        peak = []
        engine = make_engine()
        encode = engine.encode

        def counting_encode(job):
            with lock:
                running.append(job.rendition.name)
                peak.append(len(running))
            try:
                time.sleep(0.05)
                return encode(job)
            finally:
                with lock:
                    running.remove(job.rendition.name)

        engine.encode = counting_encode
        renditions = ladder + [Rendition("1080p", "1920x1080", "3000k")]

        result = EncodeOrchestrator(engine, max_workers=2).run(make_jobs(renditions))

        assert [s.rendition.name for s in result.successes] == ["360p", "480p", "720p", "1080p"]
        assert max(peak) <= 2
