"""
Message protocol between job callers and background contexts.

This module defines the job kinds and statuses, the messages exchanged
across the context boundary, the job exceptions, and the payload models
validated on the context side.
"""

import copy
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Literal, Optional

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field


class JobKind(str, Enum):
    """Kind of background job; each kind has its own context."""

    PCA = "pca"
    CORR = "corr"


class JobStatus(str, Enum):
    """Status of a job as seen by its caller."""

    DISPATCHED = "dispatched"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MessageType(str, Enum):
    """Type of a message sent back by a background context."""

    PROGRESS = "progress"
    RESULT = "result"
    ERROR = "error"


@dataclass(frozen=True)
class JobRequest:
    """Work message posted to a background context."""

    id: str
    kind: JobKind
    payload: Any


@dataclass(frozen=True)
class JobMessage:
    """Reply message posted by a background context."""

    id: str
    type: MessageType
    progress: Optional[float] = None
    result: Any = None
    error: Optional[str] = None


class JobError(Exception):
    """Base class for job errors."""


class UnknownJobKindError(JobError, ValueError):
    """Raised synchronously when submitting a job of an unknown kind."""

    def __init__(self, kind: Any):
        super().__init__(f"Unknown job kind: {kind}")
        self.kind = kind


class JobFailedError(JobError):
    """Outcome of a job whose computation raised."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class JobCancelledError(JobError):
    """Outcome of a job cancelled by its caller."""

    def __init__(self, message: str = "Job cancelled"):
        super().__init__(message)
        self.message = message


class PCAOptions(BaseModel):
    """Options of a PCA job."""

    k: int = Field(2, ge=0)
    standardize: bool = True
    max_iter: int = Field(300, ge=1)
    tol: float = Field(1e-8, ge=0)
    seed: int = 0


class PCAPayload(BaseModel):
    """Payload of a PCA job."""

    matrix: List[Any]
    options: PCAOptions = Field(default_factory=PCAOptions)


class CorrPayload(BaseModel):
    """Payload of a correlation job."""

    rows: List[Any]
    keys: List[Any]
    method: Literal['pearson', 'spearman', 'robust'] = 'pearson'
    transform: Literal['none', 'log1p', 'clr'] = 'none'
    impute: Literal['drop', 'zero', 'pseudocount', 'median'] = 'drop'
    precision: int = Field(3, ge=0)
    winsor: float = Field(0.05, ge=0, le=0.5)


def snapshot_payload(payload: Any) -> Any:
    """
    Deep-copy a payload into plain Python containers.

    Arrays become nested lists and DataFrames become lists of records, so
    nothing mutable is shared between the caller and the context.

    Args:
        payload: Payload as given by the caller

    Returns:
        Independent copy of the payload
    """
    if isinstance(payload, np.ndarray):
        return payload.tolist()
    if isinstance(payload, pd.DataFrame):
        return payload.to_dict(orient='records')
    if isinstance(payload, dict):
        return {key: snapshot_payload(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [snapshot_payload(value) for value in payload]
    return copy.deepcopy(payload)
