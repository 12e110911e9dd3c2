"""
Background execution contexts for omicsmath jobs.

A context is a long-lived worker thread that owns a FIFO inbox of job
requests and runs them one at a time, to completion, posting progress,
result and error messages back through a reply callback.
"""

import logging
import queue
import threading
from typing import Callable, Optional, Set

from omicsmath.jobs.handlers import Handler
from omicsmath.jobs.protocol import JobCancelledError, JobKind, JobMessage, JobRequest, MessageType

# Set up logging
logger = logging.getLogger(__name__)


class BackgroundContext:
    """
    Runs jobs of one kind on a dedicated thread.
    """

    def __init__(self,
                 kind: JobKind,
                 handler: Handler,
                 reply: Callable[[JobMessage], None],
                 poll_interval: float = 0.5):
        """
        Initialize a background context.

        Args:
            kind: Kind of job this context runs
            handler: Job body, called as handler(payload, progress, checkpoint)
            reply: Receives every message posted by the context
            poll_interval: Seconds between checks of the stop flag while idle
        """
        self.kind = kind
        self._handler = handler
        self._reply = reply
        self._poll_interval = poll_interval

        self._inbox: "queue.Queue[JobRequest]" = queue.Queue()
        self._queued: Set[str] = set()
        self._cancelled: Set[str] = set()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """
        Start the context thread.
        """
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._processing_loop, name=f"{self.kind.value}-context"
        )
        self._thread.daemon = True
        self._thread.start()

        logger.info(f"Background context for {self.kind.value} jobs started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Stop the context thread.

        The job being executed, if any, runs to completion (or to its next
        checkpoint if it was cancelled); queued jobs are discarded.

        Args:
            timeout: Seconds to wait for the thread to finish
        """
        if not self.running:
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"Background context for {self.kind.value} jobs did not stop "
                           f"within {timeout}s")
        self._thread = None

        logger.info(f"Background context for {self.kind.value} jobs stopped")

    def post(self, request: JobRequest) -> None:
        """
        Queue a job request.

        Args:
            request: Request to run; requests run in posting order
        """
        with self._lock:
            self._queued.add(request.id)
        self._inbox.put(request)

    def cancel(self, job_id: str) -> None:
        """
        Flag a job as cancelled.

        A queued job is skipped; a running job stops at its next checkpoint.

        Args:
            job_id: Job ID
        """
        with self._lock:
            if job_id in self._queued:
                self._cancelled.add(job_id)

    def _is_cancelled(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancelled

    def _processing_loop(self) -> None:
        """
        Main loop for processing job requests.
        """
        while not self._stop_event.is_set():
            try:
                request = self._inbox.get(timeout=self._poll_interval)
            except queue.Empty:
                continue

            try:
                self._process(request)
            except Exception as e:
                logger.error(f"Error in {self.kind.value} processing loop: {e}")
            finally:
                self._inbox.task_done()

    def _process(self, request: JobRequest) -> None:
        """
        Run one job request and post its outcome.

        Args:
            request: Request to run
        """
        job_id = request.id

        if self._is_cancelled(job_id):
            logger.debug(f"Skipping cancelled job {job_id}")
            self._forget(job_id)
            return

        def progress(fraction: float) -> None:
            self._reply(JobMessage(id=job_id, type=MessageType.PROGRESS, progress=float(fraction)))

        def checkpoint() -> None:
            if self._is_cancelled(job_id):
                raise JobCancelledError()

        try:
            result = self._handler(request.payload, progress, checkpoint)
        except JobCancelledError:
            logger.debug(f"Job {job_id} stopped after cancellation")
        except Exception as e:
            logger.exception(f"Error running job {job_id}")
            self._reply(JobMessage(id=job_id, type=MessageType.ERROR, error=str(e) or type(e).__name__))
        else:
            self._reply(JobMessage(id=job_id, type=MessageType.RESULT, result=result))
        finally:
            self._forget(job_id)

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._queued.discard(job_id)
            self._cancelled.discard(job_id)
