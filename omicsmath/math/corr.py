"""
Correlation matrix implementation for omicsmath.

This module computes dense pairwise correlation matrices between the
columns of a table, under a selected correlation method, value transform
and imputation strategy, and converts them to the heatmap cell layout
used by the dashboard.
"""

import logging
import numbers
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from omicsmath.math.stats import clr_transform, median, pearson, robust_corr, spearman_corr
from omicsmath.utils.general import round_to, to_number

# Set up logging
logger = logging.getLogger(__name__)

METHODS = ('pearson', 'spearman', 'robust')
TRANSFORMS = ('none', 'log1p', 'clr')

# Rows of the matrix between two progress reports
PROGRESS_EVERY = 4


def extract_column(rows: Any, key: Any) -> List[Any]:
    """
    Extract the raw values of one column.

    Args:
        rows: DataFrame, sequence of mappings (records) or sequence of
            row sequences
        key: Column name, or column index for row sequences

    Returns:
        One raw value per row (None where the row has no such column)
    """
    if isinstance(rows, pd.DataFrame):
        if key not in rows.columns:
            return [None] * len(rows)
        return rows[key].tolist()

    values = []
    for row in rows:
        if isinstance(row, Mapping):
            values.append(row.get(key))
        elif isinstance(row, (list, tuple, np.ndarray)) and isinstance(key, numbers.Integral) and -len(row) <= key < len(row):
            values.append(row[key])
        else:
            values.append(None)
    return values


def prepare_series(values: Sequence[Any], impute: str = 'drop') -> np.ndarray:
    """
    Apply an imputation strategy to the raw values of one column.

    Args:
        values: Raw column values
        impute: 'drop', 'zero', 'pseudocount' or 'median'

    Returns:
        Float array; 'drop' removes missing values, the other strategies
        fill them (an unknown strategy keeps them as NaN)
    """
    numbers = [to_number(v) for v in values]
    arr = np.array([np.nan if n is None else n for n in numbers], dtype=float)
    missing = np.isnan(arr)

    if impute == 'drop':
        return arr[~missing]
    if impute == 'zero':
        return np.where(missing, 0.0, arr)
    if impute == 'pseudocount':
        return np.where(missing, 1.0, arr)
    if impute == 'median':
        med = median(arr) or 0.0
        return np.where(missing, med, arr)
    return arr


def transform_series(values: np.ndarray, transform: str = 'none') -> np.ndarray:
    """
    Apply a value transform to a prepared column.

    Args:
        values: Prepared column values
        transform: 'none', 'log1p' or 'clr'

    Returns:
        Transformed values
    """
    if transform == 'none':
        return values
    if transform == 'log1p':
        return np.log1p(np.maximum(0.0, values))
    if transform == 'clr':
        return np.asarray(clr_transform(values, 1), dtype=float)
    raise ValueError(f"Unknown transform: {transform}")


def correlation_matrix(rows: Any,
                       keys: Sequence[Any],
                       method: str = 'pearson',
                       transform: str = 'none',
                       impute: str = 'drop',
                       precision: int = 3,
                       winsor: float = 0.05,
                       on_progress: Optional[Callable[[float], None]] = None,
                       checkpoint: Optional[Callable[[], None]] = None) -> np.ndarray:
    """
    Compute the pairwise correlation matrix of the given columns.

    Cell (i, j) is method(transform(impute(column_i)), transform(impute(column_j)))
    rounded to `precision` decimals; undefined correlations are 0. Each
    unordered pair is computed once, so the matrix is exactly symmetric.

    With the 'drop' strategy the columns can end up with different
    lengths; pairs are then compared over their common prefix.

    Args:
        rows: Table (see extract_column)
        keys: Ordered column identifiers
        method: 'pearson', 'spearman' or 'robust'
        transform: 'none', 'log1p' or 'clr'
        impute: 'drop', 'zero', 'pseudocount' or 'median'
        precision: Decimal places kept
        winsor: Winsorizing quantile for the robust method
        on_progress: Receives a coarse completion fraction (at most 0.9)
        checkpoint: Called between rows; may raise to abort

    Returns:
        n x n array
    """
    if method not in METHODS:
        raise ValueError(f"Unknown correlation method: {method}")
    if transform not in TRANSFORMS:
        raise ValueError(f"Unknown transform: {transform}")

    if method == 'pearson':
        calc = pearson
    elif method == 'spearman':
        calc = spearman_corr
    else:
        def calc(x, y):
            return robust_corr(x, y, winsor=winsor)

    keys = list(keys)
    n = len(keys)
    series = [transform_series(prepare_series(extract_column(rows, key), impute), transform)
              for key in keys]

    corr = np.zeros((n, n))
    for i in range(n):
        if checkpoint is not None:
            checkpoint()

        for j in range(i, n):
            value = calc(series[i], series[j])
            corr[i, j] = corr[j, i] = 0.0 if value is None else round_to(value, precision)

        if on_progress is not None and i % PROGRESS_EVERY == 0:
            on_progress(min(0.9, i / n))

    return corr


def heatmap_cells(corr: np.ndarray) -> List[List[float]]:
    """
    Convert a correlation matrix to heatmap cells.

    Args:
        corr: n x n matrix

    Returns:
        [column index, row index, value] triples in row-major order
    """
    n = corr.shape[0]
    return [[j, i, float(corr[i, j])] for i in range(n) for j in range(n)]


def compute_correlation(rows: Any,
                        keys: Sequence[Any],
                        method: str = 'pearson',
                        transform: str = 'none',
                        impute: str = 'drop',
                        precision: int = 3,
                        winsor: float = 0.05,
                        on_progress: Optional[Callable[[float], None]] = None,
                        checkpoint: Optional[Callable[[], None]] = None) -> Dict[str, Any]:
    """
    Compute a correlation matrix and its heatmap cells.

    Returns:
        Dictionary with 'keys', 'matrix' (nested lists) and 'cells'
    """
    keys = list(keys)
    corr = correlation_matrix(
        rows, keys,
        method=method,
        transform=transform,
        impute=impute,
        precision=precision,
        winsor=winsor,
        on_progress=on_progress,
        checkpoint=checkpoint,
    )

    logger.debug(f"Computed {method} correlation of {len(keys)} columns "
                 f"(transform={transform}, impute={impute})")

    return {
        'keys': list(keys),
        'matrix': corr.tolist(),
        'cells': heatmap_cells(corr),
    }
