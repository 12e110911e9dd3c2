"""
Background job execution for omicsmath.

PCA and correlation jobs run on one long-lived background context per
job kind and are exposed to callers as cancellable handles.
"""

from omicsmath.jobs.protocol import (
    JobKind, JobStatus, JobError, UnknownJobKindError, JobFailedError, JobCancelledError,
)
from omicsmath.jobs.client import JobClient, JobHandle
