"""
Tests for the background job client.
"""

import pytest
import asyncio
import threading
import time
import numpy as np
import pandas as pd
import sys
import os

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from omicsmath.components.config import Config
from omicsmath.jobs import (
    JobClient, JobKind, JobStatus, JobCancelledError, JobFailedError,
    UnknownJobKindError
)
from omicsmath.jobs.protocol import snapshot_payload
from omicsmath.math.pca import pca

TIMEOUT = 10


@pytest.fixture
def config():
    return Config({'jobs': {'poll-interval': 0.05, 'join-timeout': 2.0}})


@pytest.fixture
def client(config):
    client = JobClient(config)
    yield client
    client.shutdown()


def make_matrix(n_rows=30, seed=4):
    rng = np.random.default_rng(seed)
    base = rng.normal(size=n_rows)
    return np.column_stack([base, 2 * base, rng.normal(size=n_rows)])


class TestSubmission:
    """Tests for dispatching jobs."""

    def test_unknown_kind(self, client):
        """Test that an unknown kind is rejected before anything is dispatched."""
        with pytest.raises(UnknownJobKindError) as excinfo:
            client.submit('bogus', {})

        assert excinfo.value.kind == 'bogus'
        assert isinstance(excinfo.value, ValueError)
        assert client.active_kinds == []
        assert client.pending_count == 0

    def test_kind_without_handler(self, config):
        """Test that a known kind without a handler is rejected."""
        with JobClient(config, handlers={JobKind.CORR: lambda p, progress, checkpoint: p}) as client:
            with pytest.raises(UnknownJobKindError):
                client.submit('pca', {'matrix': []})

    def test_job_ids(self, client):
        """Test that every job gets a distinct id prefixed by its kind."""
        first = client.submit('pca', {'matrix': [[1, 2], [3, 4]]})
        second = client.submit(JobKind.PCA, {'matrix': [[1, 2], [3, 4]]})

        assert first.id.startswith('pca_')
        assert first.id != second.id
        assert first.kind == JobKind.PCA
        first.result(timeout=TIMEOUT)
        second.result(timeout=TIMEOUT)

    def test_context_reused(self, client):
        """Test that one context is created per kind."""
        client.submit('pca', {'matrix': [[1, 2], [3, 4]]}).result(timeout=TIMEOUT)
        client.submit('pca', {'matrix': [[1, 2], [3, 5]]}).result(timeout=TIMEOUT)
        assert client.active_kinds == [JobKind.PCA]

    def test_submit_after_shutdown(self, config):
        """Test that a closed client refuses new jobs."""
        client = JobClient(config)
        client.shutdown()
        with pytest.raises(RuntimeError):
            client.submit('pca', {'matrix': []})


class TestEngines:
    """Tests for the PCA and correlation jobs."""

    def test_pca_job(self, client):
        """Test running a PCA job."""
        handle = client.submit('pca', {'matrix': make_matrix(), 'options': {'k': 2}})
        result = handle.result(timeout=TIMEOUT)

        assert len(result['scores']) == 30
        assert len(result['scores'][0]) == 2
        assert len(result['components']) == 2
        assert len(result['eigenvalues']) == 2
        assert result['eigenvalues'][0] >= result['eigenvalues'][1]
        assert handle.status == JobStatus.COMPLETED
        assert handle.done()
        assert handle.progress == 1.0

    def test_pca_job_default_options(self, client):
        """Test that options may be omitted."""
        result = client.submit('pca', {'matrix': make_matrix()}).result(timeout=TIMEOUT)
        assert len(result['components']) == 2

    def test_pca_job_dataframe(self, client):
        """Test that a DataFrame matrix gives the same result as a direct call."""
        df = pd.DataFrame(make_matrix(20), columns=['a', 'b', 'c'])
        result = client.submit('pca', {'matrix': df, 'options': {'k': 2}}).result(timeout=TIMEOUT)
        expected = pca(df, k=2)

        assert len(result['scores']) == 20
        assert len(result['scores'][0]) == 2
        assert np.allclose(result['scores'], expected['scores'])
        assert np.allclose(result['eigenvalues'], expected['eigenvalues'])

    def test_corr_job(self, client):
        """Test running a correlation job."""
        rows = [{'a': float(i), 'b': 2.0 * i, 'c': -float(i)} for i in range(10)]
        handle = client.submit('corr', {'rows': rows, 'keys': ['a', 'b', 'c'], 'method': 'spearman'})
        result = handle.result(timeout=TIMEOUT)

        assert result['keys'] == ['a', 'b', 'c']
        assert result['matrix'] == [[1.0, 1.0, -1.0], [1.0, 1.0, -1.0], [-1.0, -1.0, 1.0]]
        assert len(result['cells']) == 9

    def test_progress(self, client):
        """Test that progress is reported before the result."""
        fractions = []
        handle = client.submit('pca', {'matrix': make_matrix(), 'options': {'k': 3}},
                               on_progress=fractions.append)
        handle.result(timeout=TIMEOUT)

        assert fractions
        assert fractions == sorted(fractions)
        assert all(0.0 <= f <= 1.0 for f in fractions)

    def test_progress_callback_errors_are_contained(self, client):
        """Test that a failing progress listener does not break the job."""
        def listener(fraction):
            raise RuntimeError("listener failed")

        handle = client.submit('pca', {'matrix': make_matrix()}, on_progress=listener)
        assert len(handle.result(timeout=TIMEOUT)['scores']) == 30

    def test_malformed_payload(self, client):
        """Test that a validation error becomes a failed outcome."""
        handle = client.submit('pca', {'options': {'k': 2}})

        with pytest.raises(JobFailedError) as excinfo:
            handle.result(timeout=TIMEOUT)

        assert excinfo.value.message
        assert handle.status == JobStatus.FAILED

    def test_invalid_method(self, client):
        """Test that an unknown correlation method fails the job."""
        handle = client.submit('corr', {'rows': [], 'keys': [], 'method': 'kendall'})
        with pytest.raises(JobFailedError):
            handle.result(timeout=TIMEOUT)

    def test_context_survives_failures(self, client):
        """Test that a context keeps running after a failed job."""
        failed = client.submit('pca', {})
        with pytest.raises(JobFailedError):
            failed.result(timeout=TIMEOUT)

        result = client.submit('pca', {'matrix': make_matrix()}).result(timeout=TIMEOUT)
        assert len(result['scores']) == 30


class TestExecution:
    """Tests for ordering, failure and cancellation semantics."""

    def test_error_message(self, config):
        """Test that the error message of the computation reaches the caller."""
        def handler(payload, progress, checkpoint):
            raise ValueError("matrix is singular")

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            with pytest.raises(JobFailedError, match="matrix is singular"):
                client.submit('pca', {}).result(timeout=TIMEOUT)

    def test_fifo_order(self, config):
        """Test that jobs of one kind run in submission order."""
        order = []

        def handler(payload, progress, checkpoint):
            order.append(payload['n'])
            return payload['n']

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            handles = [client.submit('pca', {'n': n}) for n in range(8)]
            results = [h.result(timeout=TIMEOUT) for h in handles]

        assert results == list(range(8))
        assert order == list(range(8))

    def test_kinds_run_in_parallel(self, config):
        """Test that a long job of one kind does not block another kind."""
        corr_done = threading.Event()

        def slow_pca(payload, progress, checkpoint):
            return corr_done.wait(TIMEOUT)

        def corr(payload, progress, checkpoint):
            corr_done.set()
            return 'done'

        with JobClient(config, handlers={JobKind.PCA: slow_pca, JobKind.CORR: corr}) as client:
            pca_handle = client.submit('pca', {})
            corr_handle = client.submit('corr', {})

            assert corr_handle.result(timeout=TIMEOUT) == 'done'
            assert pca_handle.result(timeout=TIMEOUT) is True

    def test_payload_is_copied(self, config):
        """Test that the caller may mutate the payload after submitting."""
        gate = threading.Event()

        def handler(payload, progress, checkpoint):
            gate.wait(TIMEOUT)
            return payload['values']

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            values = [1, 2, 3]
            handle = client.submit('pca', {'values': values})
            values.append(4)
            gate.set()

            assert handle.result(timeout=TIMEOUT) == [1, 2, 3]

    def test_cancel_running_job(self, config):
        """Test cancelling a job at its next checkpoint."""
        started = threading.Event()
        stopped = threading.Event()
        completed = []

        def handler(payload, progress, checkpoint):
            started.set()
            try:
                for _ in range(1000):
                    checkpoint()
                    time.sleep(0.01)
                completed.append(True)
                return 'finished'
            finally:
                stopped.set()

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            handle = client.submit('pca', {})
            assert started.wait(TIMEOUT)

            assert handle.cancel() is True
            with pytest.raises(JobCancelledError):
                handle.result(timeout=TIMEOUT)

            assert stopped.wait(TIMEOUT)
            assert completed == []
            assert handle.status == JobStatus.CANCELLED
            assert handle.cancelled()
            assert client.pending_count == 0

    def test_cancel_queued_job(self, config):
        """Test that a cancelled job waiting in the queue never runs."""
        gate = threading.Event()
        ran = []

        def handler(payload, progress, checkpoint):
            ran.append(payload['n'])
            if payload['n'] == 0:
                gate.wait(TIMEOUT)
            return payload['n']

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            first = client.submit('pca', {'n': 0})
            second = client.submit('pca', {'n': 1})
            second.cancel()
            gate.set()

            assert first.result(timeout=TIMEOUT) == 0
            third = client.submit('pca', {'n': 2})
            assert third.result(timeout=TIMEOUT) == 2

            with pytest.raises(JobCancelledError):
                second.result(timeout=0)

        assert ran == [0, 2]

    def test_cancel_after_completion(self, client):
        """Test that cancelling a finished job has no effect."""
        handle = client.submit('pca', {'matrix': make_matrix()})
        result = handle.result(timeout=TIMEOUT)

        assert handle.cancel() is False
        assert handle.result() == result
        assert handle.status == JobStatus.COMPLETED

    def test_shutdown_cancels_pending(self, config):
        """Test that shutdown resolves every pending job as cancelled."""
        gate = threading.Event()

        def handler(payload, progress, checkpoint):
            while not gate.wait(0.01):
                checkpoint()

        client = JobClient(config, handlers={JobKind.PCA: handler})
        handles = [client.submit('pca', {}) for _ in range(3)]
        client.shutdown()

        for handle in handles:
            with pytest.raises(JobCancelledError):
                handle.result(timeout=0)
        assert client.pending_count == 0
        assert client.active_kinds == []

    def test_progress_after_cancel_is_ignored(self, config):
        """Test that a progress report racing a cancel leaves the handle cancelled."""
        gate = threading.Event()
        fractions = []

        def handler(payload, progress, checkpoint):
            gate.wait(TIMEOUT)

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            handle = client.submit('pca', {}, on_progress=fractions.append)
            assert handle.cancel() is True

            # Report delivered after the handle was looked up for it
            handle._emit_progress(0.5)
            handle._resolve(JobStatus.COMPLETED, result='late')
            gate.set()

            with pytest.raises(JobCancelledError):
                handle.result(timeout=TIMEOUT)
            assert handle.status == JobStatus.CANCELLED
            assert handle.cancelled()
            assert fractions == []
            assert handle.progress == 0.0

    def test_progress_marks_running(self, config):
        """Test that the first progress report moves the handle to running."""
        reported = threading.Event()
        gate = threading.Event()

        def handler(payload, progress, checkpoint):
            progress(0.25)
            gate.wait(TIMEOUT)
            return 'done'

        with JobClient(config, handlers={JobKind.PCA: handler}) as client:
            handle = client.submit('pca', {}, on_progress=lambda f: reported.set())
            assert handle.status in (JobStatus.DISPATCHED, JobStatus.RUNNING)

            assert reported.wait(TIMEOUT)
            assert handle.status == JobStatus.RUNNING
            assert handle.progress == 0.25

            gate.set()
            assert handle.result(timeout=TIMEOUT) == 'done'
            assert handle.status == JobStatus.COMPLETED

    def test_await(self, client):
        """Test awaiting a handle from a coroutine."""
        async def run():
            return await client.submit('pca', {'matrix': make_matrix(), 'options': {'k': 1}})

        result = asyncio.run(run())
        assert len(result['components']) == 1


class TestSnapshot:
    """Tests for payload snapshots."""

    def test_snapshot_payload(self):
        """Test converting arrays and nested containers."""
        array = np.array([[1.0, 2.0], [3.0, 4.0]])
        payload = {'matrix': array, 'rows': pd.DataFrame({'a': [1, 2]}), 'keys': ('a',)}
        snapshot = snapshot_payload(payload)

        assert snapshot['matrix'] == [[1.0, 2.0], [3.0, 4.0]]
        assert snapshot['rows'] == [{'a': 1}, {'a': 2}]
        assert snapshot['keys'] == ['a']

        array[0, 0] = 99.0
        assert snapshot['matrix'][0][0] == 1.0
