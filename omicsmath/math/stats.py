"""
Statistical primitives for the omicsmath compute engine.

This module provides the descriptive statistics, correlation measures,
compositional transforms and matrix helpers used by the PCA and
correlation engines and by the chart builders of the dashboard.

None of these functions raise on malformed input: empty, missing or
non-numeric values are dropped or reported as None / zero so that the
rendering layer can detect "no data" instead of crashing.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from omicsmath.utils.general import clean_numbers, to_number

# Set up logging
logger = logging.getLogger(__name__)


def _raw_values(values: Any) -> List[Any]:
    """Materialize a vector-like input as a list, or [] if it is not one."""
    if values is None or isinstance(values, (str, bytes, Mapping)):
        return []
    if isinstance(values, np.ndarray):
        return values.ravel().tolist()
    try:
        return list(values)
    except TypeError:
        return []


def mean(values: Any) -> Optional[float]:
    """
    Arithmetic mean of the finite values.

    Args:
        values: Sequence of values

    Returns:
        Mean, or None if there are no finite values
    """
    v = clean_numbers(values)
    if not v:
        return None
    return float(np.mean(v))


def variance(values: Any, sample: bool = True) -> Optional[float]:
    """
    Variance of the finite values.

    Args:
        values: Sequence of values
        sample: Divide by n-1 (sample variance) instead of n

    Returns:
        Variance, or None if there are not enough points
    """
    v = clean_numbers(values)
    if len(v) < (2 if sample else 1):
        return None
    return float(np.var(v, ddof=1 if sample else 0))


def std(values: Any, sample: bool = True) -> Optional[float]:
    """
    Standard deviation of the finite values.
    """
    var = variance(values, sample=sample)
    if var is None:
        return None
    return math.sqrt(var)


def quantile(values: Any, q: Any) -> Optional[float]:
    """
    Quantile with linear interpolation between closest ranks.

    The input does not need to be sorted. q is clamped to [0, 1].

    Args:
        values: Sequence of values
        q: Quantile level

    Returns:
        Quantile value, or None for empty input or a non-numeric q
    """
    qq = to_number(q)
    if qq is None:
        return None
    v = clean_numbers(values)
    if not v:
        return None
    if len(v) == 1:
        return v[0]
    qq = min(1.0, max(0.0, qq))
    return float(np.quantile(v, qq))


def median(values: Any) -> Optional[float]:
    """
    Median of the finite values.
    """
    return quantile(values, 0.5)


def boxplot_stats(values: Any, whisker_coef: float = 1.5) -> Dict[str, Any]:
    """
    Boxplot statistics using the Tukey definition of whiskers.

    Whiskers are the most extreme values that still lie inside the fences
    Q1 - c*IQR and Q3 + c*IQR; every value beyond them is an outlier.

    Args:
        values: Sequence of values
        whisker_coef: Fence coefficient c

    Returns:
        Dictionary with count, min, q1, median, q3, max, mean, iqr,
        whisker_low, whisker_high and the sorted outliers
    """
    v = clean_numbers(values)
    if not v:
        return {
            'count': 0,
            'min': None,
            'q1': None,
            'median': None,
            'q3': None,
            'max': None,
            'mean': None,
            'iqr': None,
            'whisker_low': None,
            'whisker_high': None,
            'outliers': [],
        }

    coef = to_number(whisker_coef, 1.5)
    ordered = sorted(v)
    q1 = quantile(ordered, 0.25)
    med = quantile(ordered, 0.5)
    q3 = quantile(ordered, 0.75)
    iqr = q3 - q1

    low_fence = q1 - coef * iqr
    high_fence = q3 + coef * iqr

    whisker_low = next((x for x in ordered if x >= low_fence), ordered[0])
    whisker_high = next((x for x in reversed(ordered) if x <= high_fence), ordered[-1])
    outliers = [x for x in ordered if x < whisker_low or x > whisker_high]

    return {
        'count': len(v),
        'min': ordered[0],
        'q1': q1,
        'median': med,
        'q3': q3,
        'max': ordered[-1],
        'mean': mean(v),
        'iqr': iqr,
        'whisker_low': whisker_low,
        'whisker_high': whisker_high,
        'outliers': outliers,
    }


def _paired_prefix(x: Any, y: Any):
    """Clean both sequences and cut them to their common length."""
    cx = clean_numbers(x)
    cy = clean_numbers(y)
    n = min(len(cx), len(cy))
    return np.asarray(cx[:n], dtype=float), np.asarray(cy[:n], dtype=float)


def pearson(x: Any, y: Any) -> Optional[float]:
    """
    Pearson product-moment correlation.

    Each sequence is cleaned of non-finite values independently and the
    two are compared over their overlapping prefix.

    Args:
        x: First sequence
        y: Second sequence

    Returns:
        Correlation in [-1, 1], or None if fewer than 2 paired points or
        if either sequence has zero variance
    """
    xs, ys = _paired_prefix(x, y)
    if len(xs) < 2:
        return None

    a = xs - xs.mean()
    b = ys - ys.mean()
    num = float(np.dot(a, b))
    den = math.sqrt(float(np.dot(a, a)) * float(np.dot(b, b)))
    if den == 0:
        return None
    return min(1.0, max(-1.0, num / den))


def _ranks(values: np.ndarray) -> np.ndarray:
    # Ties are not averaged: rank is the position in a stable ascending sort.
    return rankdata(values, method='ordinal').astype(float)


def spearman_corr(x: Any, y: Any) -> Optional[float]:
    """
    Spearman rank correlation without tie averaging.

    Tied values receive consecutive ranks in input order, which slightly
    overstates the correlation of heavily tied data. This is adequate for
    visualization but is not the textbook estimator.

    Args:
        x: First sequence
        y: Second sequence

    Returns:
        Correlation, or None when undefined
    """
    xs, ys = _paired_prefix(x, y)
    if len(xs) < 2:
        return None
    return pearson(_ranks(xs), _ranks(ys))


def _winsorize(values: np.ndarray, p: float) -> np.ndarray:
    if len(values) == 0:
        return values
    lo = quantile(values, p)
    hi = quantile(values, 1 - p)
    return np.clip(values, lo, hi)


def robust_corr(x: Any, y: Any, winsor: float = 0.05) -> Optional[float]:
    """
    Pearson correlation after winsorizing each sequence.

    Args:
        x: First sequence
        y: Second sequence
        winsor: Lower/upper quantile at which each sequence is clipped

    Returns:
        Correlation, or None when undefined
    """
    xs, ys = _paired_prefix(x, y)
    if len(xs) < 2:
        return None
    p = to_number(winsor, 0.05)
    return pearson(_winsorize(xs, p), _winsorize(ys, p))


def _shifted_positive(vector: Any, pseudocount: Any) -> np.ndarray:
    pc = to_number(pseudocount, 1.0)
    raw = _raw_values(vector)
    return np.array([max(0.0, to_number(v, 0.0)) + pc for v in raw], dtype=float)


def clr_transform(vector: Any, pseudocount: float = 1) -> List[float]:
    """
    Centered log-ratio transform.

    Negative or missing parts are treated as 0 before the pseudocount is
    added.

    Args:
        vector: Composition
        pseudocount: Value added to every part before taking logs

    Returns:
        log(part) minus the mean of the logs, for every part
    """
    v = _shifted_positive(vector, pseudocount)
    if len(v) == 0:
        return []
    with np.errstate(divide='ignore', invalid='ignore'):
        logv = np.log(v)
        return (logv - logv.mean()).tolist()


def alr_transform(vector: Any, ref_index: int = 0, pseudocount: float = 1) -> List[float]:
    """
    Additive log-ratio transform against a reference part.

    Args:
        vector: Composition
        ref_index: Index of the reference part; out of range means no reference
        pseudocount: Value added to every part before taking logs

    Returns:
        log(part / reference) for every part
    """
    v = _shifted_positive(vector, pseudocount)
    if len(v) == 0:
        return []
    denom = v[ref_index] if isinstance(ref_index, int) and 0 <= ref_index < len(v) else 1.0
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.log(v / denom).tolist()


def aitchison_distance(x: Any, y: Any, pseudocount: float = 1) -> Optional[float]:
    """
    Aitchison distance: Euclidean distance between CLR transforms.

    Args:
        x: First composition
        y: Second composition
        pseudocount: Pseudocount for both CLR transforms

    Returns:
        Distance over the common parts, or None if either is empty
    """
    cx = clr_transform(x, pseudocount)
    cy = clr_transform(y, pseudocount)
    n = min(len(cx), len(cy))
    if n == 0:
        return None
    d = np.asarray(cx[:n]) - np.asarray(cy[:n])
    return float(np.sqrt(np.dot(d, d)))


def zscore(values: Any) -> List[float]:
    """
    Standardize the finite values of a sequence.

    A constant sequence standardizes to all zeros.
    """
    v = clean_numbers(values)
    if not v:
        return []
    s = std(v)
    if not s or min(v) == max(v):
        return [0.0] * len(v)
    m = mean(v)
    return [(x - m) / s for x in v]


def _is_row(row: Any) -> bool:
    return isinstance(row, (list, tuple, np.ndarray, pd.Series, Mapping))


def as_numeric_matrix(matrix: Any) -> np.ndarray:
    """
    Coerce a matrix-like input to a float array with NaN for missing cells.

    Accepts 2-D numpy arrays, DataFrames, sequences of row sequences and
    sequences of records (columns in the key order of the first record).
    Rows may be ragged: the width is taken from the first row, longer rows
    are truncated and shorter or non-sequence rows are padded with NaN.

    Args:
        matrix: Matrix-like input

    Returns:
        Array of shape (m, n); non-finite cells are NaN
    """
    if isinstance(matrix, pd.DataFrame):
        out = matrix.apply(pd.to_numeric, errors='coerce').to_numpy(dtype=float, copy=True)
    elif isinstance(matrix, np.ndarray) and matrix.ndim == 2 and matrix.dtype.kind in 'fiub':
        out = matrix.astype(float)
    else:
        rows = _raw_values(matrix) if not isinstance(matrix, np.ndarray) else list(matrix)
        if not rows:
            return np.empty((0, 0))

        try:
            out = np.array(rows, dtype=float)
        except (TypeError, ValueError):
            out = None

        if out is None or out.ndim != 2:
            first = rows[0]
            keys = list(first) if isinstance(first, Mapping) else None
            n = len(first) if _is_row(first) else 0
            out = np.full((len(rows), n), np.nan)
            for i, row in enumerate(rows):
                if not _is_row(row):
                    continue
                if isinstance(row, Mapping):
                    cells = [row.get(key) for key in keys] if keys is not None else []
                else:
                    cells = list(row)[:n]
                for j, value in enumerate(cells):
                    number = to_number(value)
                    if number is not None:
                        out[i, j] = number

    out[~np.isfinite(out)] = np.nan
    return out


def _column_moments(X: np.ndarray):
    """Per-column finite counts, means and sample variances."""
    finite = np.isfinite(X)
    counts = finite.sum(axis=0)
    filled = np.where(finite, X, 0.0)

    means = np.zeros(X.shape[1])
    has_values = counts > 0
    means[has_values] = filled.sum(axis=0)[has_values] / counts[has_values]

    deviations = np.where(finite, X - means, 0.0)
    variances = np.zeros(X.shape[1])
    enough = counts > 1
    variances[enough] = (deviations ** 2).sum(axis=0)[enough] / (counts[enough] - 1)

    # Constant columns get exactly zero variance, not rounding noise
    col_min = np.where(finite, X, np.inf).min(axis=0)
    col_max = np.where(finite, X, -np.inf).max(axis=0)
    variances[col_min == col_max] = 0.0

    return counts, means, variances


def column_variance(matrix: Any) -> List[float]:
    """
    Sample variance of each column over its finite cells.

    Columns with fewer than 2 finite cells report 0.

    Args:
        matrix: Matrix-like input (rows x columns)

    Returns:
        One variance per column
    """
    X = as_numeric_matrix(matrix)
    if X.shape[0] == 0:
        return []
    _, _, variances = _column_moments(X)
    return variances.tolist()


def zscore_matrix(matrix: Any) -> Dict[str, Any]:
    """
    Z-score each column of a matrix.

    Missing cells and every cell of a zero-variance column standardize
    to 0. The returned matrix is a new array with the same shape as the
    (coerced) input.

    Args:
        matrix: Matrix-like input (rows x columns)

    Returns:
        Dictionary with 'matrix' (standardized array), 'means' and 'stds'
    """
    X = as_numeric_matrix(matrix)
    if X.shape[0] == 0:
        return {'matrix': np.empty((0, 0)), 'means': [], 'stds': []}

    _, means, variances = _column_moments(X)
    stds = np.sqrt(variances)

    scale = np.where(stds > 0, stds, 1.0)
    Z = (X - means) / scale
    Z[:, stds == 0] = 0.0
    Z[~np.isfinite(Z)] = 0.0

    return {'matrix': Z, 'means': means.tolist(), 'stds': stds.tolist()}


def log1p_matrix(matrix: Any) -> np.ndarray:
    """
    Apply log(1 + x) cell-wise, treating missing and negative cells as 0.
    """
    X = as_numeric_matrix(matrix)
    return np.log1p(np.maximum(0.0, np.nan_to_num(X, nan=0.0)))


def impute_matrix(matrix: Any, strategy: str = 'drop', pseudocount: float = 1) -> Dict[str, Any]:
    """
    Handle missing cells of a matrix.

    Strategies:
        drop: remove every row containing a missing cell
        zero: replace missing cells with 0
        pseudocount: replace missing cells with the pseudocount
        median: replace missing cells with their column median

    An unrecognized strategy leaves the matrix untouched.

    Args:
        matrix: Matrix-like input (rows x columns)
        strategy: Imputation strategy
        pseudocount: Fill value for the pseudocount strategy

    Returns:
        Dictionary with 'matrix' (new array) and 'dropped' (row count)
    """
    X = as_numeric_matrix(matrix)
    missing = ~np.isfinite(X)

    if strategy == 'drop':
        keep = ~missing.any(axis=1)
        return {'matrix': X[keep], 'dropped': int((~keep).sum())}

    if strategy == 'zero':
        return {'matrix': np.where(missing, 0.0, X), 'dropped': 0}

    if strategy == 'pseudocount':
        return {'matrix': np.where(missing, to_number(pseudocount, 1.0), X), 'dropped': 0}

    if strategy == 'median':
        medians = [median(X[:, j]) for j in range(X.shape[1])]
        fill = np.array([0.0 if m is None else m for m in medians])
        return {'matrix': np.where(missing, fill, X), 'dropped': 0}

    logger.debug(f"Unknown imputation strategy {strategy!r}; matrix left unchanged")
    return {'matrix': X, 'dropped': 0}
