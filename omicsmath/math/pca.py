"""
PCA (Principal Component Analysis) implementation for omicsmath.

This module provides a deterministic PCA using power iteration on the
covariance matrix, extracting the top-k components one at a time and
deflating the covariance matrix after each one.

Deflation is adequate for the small k used by the dashboard (2-3
components). For large k a symmetric eigensolver is the better tool.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

from omicsmath.math.stats import as_numeric_matrix, zscore_matrix
from omicsmath.utils.general import make_rng

# Set up logging
logger = logging.getLogger(__name__)

# Offset between the seeds of successive components
COMPONENT_SEED_STRIDE = 97


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector to unit length.

    Args:
        v: Vector to normalize

    Returns:
        Normalized vector (the input itself if its norm is zero)
    """
    norm = np.linalg.norm(v)
    if norm == 0:
        return v
    return v / norm


def vector_length(v: np.ndarray) -> float:
    """
    Calculate the length (norm) of a vector.
    """
    return float(np.linalg.norm(v))


def covariance_matrix(X: np.ndarray) -> np.ndarray:
    """
    Compute X^T * X / max(1, m - 1).

    X is expected to be centered already (standardized data); missing
    cells count as 0.

    Args:
        X: Data matrix (m rows, n columns)

    Returns:
        Symmetric n x n matrix
    """
    X = np.nan_to_num(np.asarray(X, dtype=float), nan=0.0)
    m = X.shape[0]
    C = X.T @ X / max(1, m - 1)
    # Exact symmetry, independent of the summation order of the product
    return (C + C.T) / 2


def power_iteration(C: np.ndarray,
                    max_iter: int = 300,
                    tol: float = 1e-8,
                    seed: int = 0,
                    checkpoint: Optional[Callable[[], None]] = None) -> Tuple[np.ndarray, float]:
    """
    Find the dominant eigenvector/eigenvalue pair of a symmetric matrix.

    Starts from a seeded pseudo-random unit vector, then repeatedly
    multiplies by C and renormalizes. The eigenvalue estimate is the
    Rayleigh quotient of the current vector; iteration stops once it
    changes by less than tol, after max_iter rounds, or as soon as the
    product vector vanishes (the current estimate is returned then).

    Args:
        C: Symmetric matrix
        max_iter: Maximum number of iterations
        tol: Convergence threshold on the eigenvalue estimate
        seed: Seed of the starting vector
        checkpoint: Called between rounds; may raise to abort

    Returns:
        Tuple of (unit eigenvector, eigenvalue)
    """
    n = C.shape[0]
    if n == 0:
        return np.zeros(0), 0.0

    rng = make_rng(seed)
    v = rng.random(n) - 0.5
    if vector_length(v) == 0:
        v = np.zeros(n)
        v[0] = 1.0
    else:
        v = normalize_vector(v)

    eigval = 0.0
    for _ in range(max(0, int(max_iter))):
        if checkpoint is not None:
            checkpoint()

        product = C @ v
        length = vector_length(product)
        if length == 0:
            break

        v_new = product / length
        eigval_new = float(v_new @ (C @ v_new))

        diff = abs(eigval_new - eigval)
        v = v_new
        eigval = eigval_new
        if diff < tol:
            break

    return v, eigval


def deflate(C: np.ndarray, vector: np.ndarray, eigval: float) -> np.ndarray:
    """
    Remove an extracted direction from C in place: C -= eigval * v v^T.

    The subtracted term is symmetric, so C stays symmetric.

    Returns:
        The deflated matrix (same object as C)
    """
    C -= eigval * np.outer(vector, vector)
    return C


def project_scores(X: np.ndarray, components: np.ndarray) -> np.ndarray:
    """
    Project each observation onto the components.

    Args:
        X: Data matrix (m x n)
        components: Components as rows (k x n)

    Returns:
        Scores (m x k), columns in component order
    """
    if components.shape[0] == 0:
        return np.zeros((X.shape[0], 0))
    return np.nan_to_num(X, nan=0.0) @ components.T


def _empty_result() -> Dict[str, np.ndarray]:
    return {
        'scores': np.zeros((0, 0)),
        'components': np.zeros((0, 0)),
        'eigenvalues': np.zeros(0),
        'explained_variance_ratio': np.zeros(0),
    }


def pca(matrix: Any,
        k: int = 2,
        standardize: bool = True,
        max_iter: int = 300,
        tol: float = 1e-8,
        seed: int = 0,
        on_progress: Optional[Callable[[float], None]] = None,
        checkpoint: Optional[Callable[[], None]] = None) -> Dict[str, np.ndarray]:
    """
    Principal component analysis of a matrix.

    k is not capped to the number of columns: components requested beyond
    the rank of the data come out with eigenvalues close to 0.

    Without standardization the matrix is used as-is (not centered) and
    missing cells count as 0.

    Args:
        matrix: Matrix-like input (rows = observations, columns = features)
        k: Number of components to extract
        standardize: Z-score the columns first
        max_iter: Maximum power iterations per component
        tol: Convergence threshold on each eigenvalue
        seed: Base seed; component i uses seed + 97 * i
        on_progress: Receives the fraction of components extracted
        checkpoint: Called between power-iteration rounds; may raise to abort

    Returns:
        Dictionary with 'scores' (m x k), 'components' (k x n),
        'eigenvalues' (k) and 'explained_variance_ratio' (k)
    """
    if standardize:
        X = zscore_matrix(matrix)['matrix']
    else:
        X = np.nan_to_num(as_numeric_matrix(matrix), nan=0.0)

    if X.shape[0] == 0 or X.shape[1] == 0:
        return _empty_result()

    C = covariance_matrix(X)

    total_variance = float(np.trace(C))
    if total_variance == 0:
        total_variance = 1.0

    n_comps = max(0, int(k))
    components = np.zeros((n_comps, X.shape[1]))
    eigenvalues = np.zeros(n_comps)

    for i in range(n_comps):
        vector, eigval = power_iteration(
            C,
            max_iter=max_iter,
            tol=tol,
            seed=int(seed) + i * COMPONENT_SEED_STRIDE,
            checkpoint=checkpoint,
        )
        components[i] = vector
        eigenvalues[i] = eigval
        deflate(C, vector, eigval)

        if on_progress is not None:
            on_progress((i + 1) / n_comps)

    scores = project_scores(X, components)
    explained_variance_ratio = np.maximum(eigenvalues, 0.0) / total_variance

    logger.debug(f"PCA on {X.shape[0]}x{X.shape[1]} matrix: eigenvalues {eigenvalues.tolist()}")

    return {
        'scores': scores,
        'components': components,
        'eigenvalues': eigenvalues,
        'explained_variance_ratio': explained_variance_ratio,
    }
