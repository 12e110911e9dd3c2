"""
Job client for running PCA and correlation jobs in the background.

The client owns one background context per job kind, created lazily on
the first submission of that kind and reused afterwards. Every submitted
job gets a handle whose outcome is resolved exactly once: with the
result, with a JobFailedError carrying the error message, or with a
JobCancelledError when the caller cancels first.
"""

import asyncio
import logging
import threading
import uuid
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from omicsmath.components.config import Config, ConfigManager
from omicsmath.jobs.context import BackgroundContext
from omicsmath.jobs.handlers import DEFAULT_HANDLERS, Handler
from omicsmath.jobs.protocol import (
    JobCancelledError, JobFailedError, JobKind, JobMessage, JobRequest, JobStatus,
    MessageType, UnknownJobKindError, snapshot_payload,
)

# Set up logging
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]


class JobHandle:
    """
    Caller-side handle of a submitted job.
    """

    def __init__(self, client: 'JobClient', job_id: str, kind: JobKind):
        self.id = job_id
        self.kind = kind
        self.future: Future = Future()
        self.progress = 0.0
        self._client = client
        self._status = JobStatus.DISPATCHED
        self._callbacks: List[ProgressCallback] = []
        self._lock = threading.Lock()

    @property
    def status(self) -> JobStatus:
        return self._status

    def on_progress(self, callback: ProgressCallback) -> 'JobHandle':
        """
        Register a progress listener.

        Progress is coarse and best-effort: fast jobs may complete without
        reporting any.

        Args:
            callback: Receives a fraction in [0, 1]

        Returns:
            The handle, for chaining
        """
        with self._lock:
            self._callbacks.append(callback)
        return self

    def cancel(self) -> bool:
        """
        Cancel the job.

        The caller is detached immediately and observes a JobCancelledError;
        the context skips the job if it has not started, or stops it at its
        next checkpoint.

        Returns:
            True if the job was still pending, False if it already had an outcome
        """
        return self._client._cancel(self.id)

    def done(self) -> bool:
        return self.future.done()

    def cancelled(self) -> bool:
        return self._status == JobStatus.CANCELLED

    def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the outcome of the job.

        Args:
            timeout: Seconds to wait (None waits forever)

        Returns:
            Job result

        Raises:
            JobFailedError: The computation raised
            JobCancelledError: The job was cancelled
            concurrent.futures.TimeoutError: No outcome within timeout
        """
        return self.future.result(timeout=timeout)

    def __await__(self):
        return asyncio.wrap_future(self.future).__await__()

    def _emit_progress(self, fraction: float) -> None:
        with self._lock:
            if self._status not in (JobStatus.DISPATCHED, JobStatus.RUNNING):
                return
            self.progress = fraction
            if self._status == JobStatus.DISPATCHED:
                self._status = JobStatus.RUNNING
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(fraction)
            except Exception as e:
                logger.error(f"Error in progress callback of job {self.id}: {e}")

    def _resolve(self, status: JobStatus, result: Any = None, error: Optional[Exception] = None) -> None:
        with self._lock:
            if self._status not in (JobStatus.DISPATCHED, JobStatus.RUNNING):
                return
            self._status = status
            if error is None:
                self.progress = 1.0

        # Outside the lock: done callbacks may call back into the handle
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)

    def __repr__(self) -> str:
        return f"JobHandle(id={self.id!r}, kind={self.kind.value!r}, status={self._status.value!r})"


class JobClient:
    """
    Registry of background contexts and pending jobs.
    """

    def __init__(self,
                 config: Optional[Config] = None,
                 handlers: Optional[Dict[JobKind, Handler]] = None):
        """
        Initialize a job client.

        Args:
            config: Configuration (jobs.poll-interval, jobs.join-timeout)
            handlers: Job body per kind; defaults to the PCA and
                correlation handlers
        """
        self.config = config or ConfigManager.get_config()
        self._handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        self._contexts: Dict[JobKind, BackgroundContext] = {}
        self._pending: Dict[str, JobHandle] = {}
        self._lock = threading.RLock()
        self._closed = False

    def __enter__(self) -> 'JobClient':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.shutdown()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def active_kinds(self) -> List[JobKind]:
        """Kinds whose context has been created."""
        with self._lock:
            return list(self._contexts)

    def _resolve_kind(self, kind: Any) -> JobKind:
        try:
            job_kind = JobKind(kind)
        except ValueError:
            raise UnknownJobKindError(kind) from None

        if job_kind not in self._handlers:
            raise UnknownJobKindError(kind)
        return job_kind

    def submit(self,
               kind: Any,
               payload: Any,
               on_progress: Optional[ProgressCallback] = None) -> JobHandle:
        """
        Submit a job.

        The payload is copied before it is posted, so the caller may reuse
        or mutate it afterwards.

        Args:
            kind: 'pca' or 'corr'
            payload: Job payload
            on_progress: Optional progress listener

        Returns:
            Handle of the job

        Raises:
            UnknownJobKindError: Unknown kind; nothing is dispatched
            RuntimeError: The client has been shut down
        """
        job_kind = self._resolve_kind(kind)

        with self._lock:
            if self._closed:
                raise RuntimeError("Job client has been shut down")

            job_id = f"{job_kind.value}_{uuid.uuid4().hex[:12]}"
            handle = JobHandle(self, job_id, job_kind)
            if on_progress is not None:
                handle.on_progress(on_progress)

            self._pending[job_id] = handle
            context = self._get_context(job_kind)

        context.post(JobRequest(id=job_id, kind=job_kind, payload=snapshot_payload(payload)))

        logger.debug(f"Dispatched job {job_id}")
        return handle

    def _get_context(self, kind: JobKind) -> BackgroundContext:
        """
        Get the context of a job kind, creating it on first use.
        """
        with self._lock:
            context = self._contexts.get(kind)
            if context is None:
                context = BackgroundContext(
                    kind,
                    self._handlers[kind],
                    self._on_message,
                    poll_interval=self.config.get('jobs.poll-interval', 0.5),
                )
                context.start()
                self._contexts[kind] = context
            return context

    def _on_message(self, message: JobMessage) -> None:
        """
        Route a message from a context to the handle of its job.

        Messages for jobs that already have an outcome are dropped.

        Args:
            message: Message posted by a context
        """
        with self._lock:
            handle = self._pending.get(message.id)
            if handle is not None and message.type != MessageType.PROGRESS:
                del self._pending[message.id]

        if handle is None:
            logger.debug(f"Dropping {message.type.value} message for detached job {message.id}")
            return

        if message.type == MessageType.PROGRESS:
            handle._emit_progress(message.progress or 0.0)
        elif message.type == MessageType.RESULT:
            handle._resolve(JobStatus.COMPLETED, result=message.result)
        else:
            handle._resolve(JobStatus.FAILED, error=JobFailedError(message.error or "Job failed"))
            logger.warning(f"Job {message.id} failed: {message.error}")

    def _cancel(self, job_id: str) -> bool:
        with self._lock:
            handle = self._pending.pop(job_id, None)
            context = self._contexts.get(handle.kind) if handle is not None else None

        if handle is None:
            return False

        handle._resolve(JobStatus.CANCELLED, error=JobCancelledError())
        if context is not None:
            context.cancel(job_id)

        logger.info(f"Cancelled job {job_id}")
        return True

    def cancel_all(self) -> int:
        """
        Cancel every pending job.

        Returns:
            Number of jobs cancelled
        """
        with self._lock:
            job_ids = list(self._pending)
        return sum(1 for job_id in job_ids if self._cancel(job_id))

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Cancel pending jobs and stop every context.

        Args:
            timeout: Seconds to wait for each context (defaults to jobs.join-timeout)
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self.cancel_all()

        if timeout is None:
            timeout = self.config.get('jobs.join-timeout', 5.0)

        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()

        for context in contexts:
            context.stop(timeout=timeout)

        logger.info("Job client shut down")
