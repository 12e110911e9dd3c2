"""
Job bodies executed inside the background contexts.

Each handler receives the copied payload, a progress callback and a
checkpoint callback (which raises once the job has been cancelled), runs
its engine synchronously and returns a result made of plain lists so it
can be handed back to the caller without sharing state.
"""

import logging
from typing import Any, Callable, Dict

from omicsmath.jobs.protocol import CorrPayload, JobKind, PCAPayload
from omicsmath.math.corr import compute_correlation
from omicsmath.math.pca import pca

# Set up logging
logger = logging.getLogger(__name__)

ProgressFn = Callable[[float], None]
CheckpointFn = Callable[[], None]
Handler = Callable[[Any, ProgressFn, CheckpointFn], Any]


def run_pca_job(payload: Any, progress: ProgressFn, checkpoint: CheckpointFn) -> Dict[str, Any]:
    """
    Run a PCA job.

    Args:
        payload: {'matrix': [...], 'options': {...}}
        progress: Progress callback
        checkpoint: Cancellation checkpoint

    Returns:
        Dictionary with scores, components, eigenvalues and
        explained_variance_ratio as nested lists
    """
    request = PCAPayload(**payload)
    options = request.options
    logger.debug(f"PCA job: {len(request.matrix)} rows, k={options.k}")

    progress(0.1)
    result = pca(
        request.matrix,
        k=options.k,
        standardize=options.standardize,
        max_iter=options.max_iter,
        tol=options.tol,
        seed=options.seed,
        on_progress=lambda fraction: progress(0.1 + 0.8 * fraction),
        checkpoint=checkpoint,
    )
    progress(0.9)

    return {key: value.tolist() for key, value in result.items()}


def run_corr_job(payload: Any, progress: ProgressFn, checkpoint: CheckpointFn) -> Dict[str, Any]:
    """
    Run a correlation matrix job.

    Args:
        payload: {'rows', 'keys', 'method', 'transform', 'impute', ...}
        progress: Progress callback
        checkpoint: Cancellation checkpoint

    Returns:
        Dictionary with keys, matrix and heatmap cells
    """
    request = CorrPayload(**payload)
    logger.debug(f"Correlation job: {len(request.keys)} columns, method={request.method}")

    return compute_correlation(
        request.rows,
        request.keys,
        method=request.method,
        transform=request.transform,
        impute=request.impute,
        precision=request.precision,
        winsor=request.winsor,
        on_progress=progress,
        checkpoint=checkpoint,
    )


DEFAULT_HANDLERS: Dict[JobKind, Handler] = {
    JobKind.PCA: run_pca_job,
    JobKind.CORR: run_corr_job,
}
