"""
Level-of-detail sampling for chart payloads.

Bounds the number of scatter points and heatmap cells handed to the
charting layer. Both samplers are deterministic for a given input and
seed, never modify their input, and return the input unchanged when it
is already within budget.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from omicsmath.utils.general import make_rng, to_number

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_MAX_POINTS = 50000
DEFAULT_MAX_CELLS = 40000
DEFAULT_SEED = 42

# Smallest grid side used by grid sampling
MIN_GRID_SIZE = 8


def lod_info(enabled: bool, original_count: int, sampled_count: int, strategy: str) -> Dict[str, Any]:
    """Build the metadata describing whether and how a series was reduced."""
    return {
        'enabled': enabled,
        'original_count': original_count,
        'sampled_count': sampled_count,
        'strategy': strategy,
    }


def _as_sequence(items: Any) -> Sequence[Any]:
    if items is None or isinstance(items, (str, bytes, Mapping)):
        return []
    if isinstance(items, (list, tuple, np.ndarray)):
        return items
    try:
        return list(items)
    except TypeError:
        return []


def _take(items: Sequence[Any], indices: np.ndarray) -> Any:
    if isinstance(items, np.ndarray):
        return items[indices]
    return [items[i] for i in indices]


def point_xy(point: Any) -> Tuple[float, float]:
    """
    Read the coordinates of a point.

    Points are [x, y, ...] sequences or mappings with 'x' and 'y' keys.
    Missing or non-numeric coordinates are NaN.
    """
    if isinstance(point, Mapping):
        x, y = point.get('x'), point.get('y')
    elif isinstance(point, (list, tuple, np.ndarray)) and len(point) >= 2:
        x, y = point[0], point[1]
    else:
        return math.nan, math.nan
    return to_number(x, math.nan), to_number(y, math.nan)


def _grid_indices(points: Sequence[Any], max_points: int) -> np.ndarray:
    """Index of the first point falling in each occupied grid cell."""
    coords = np.array([point_xy(p) for p in points], dtype=float).reshape(-1, 2)
    xs, ys = coords[:, 0], coords[:, 1]
    finite = np.isfinite(xs) & np.isfinite(ys)

    grid_size = max(MIN_GRID_SIZE, int(math.floor(math.sqrt(max_points))))

    if finite.any():
        xmin, xmax = xs[finite].min(), xs[finite].max()
        ymin, ymax = ys[finite].min(), ys[finite].max()
    else:
        xmin = xmax = ymin = ymax = 0.0
    x_step = (xmax - xmin) / grid_size or 1.0
    y_step = (ymax - ymin) / grid_size or 1.0

    with np.errstate(invalid='ignore'):
        xi = np.clip(np.floor((xs - xmin) / x_step), 0, grid_size - 1)
        yi = np.clip(np.floor((ys - ymin) / y_step), 0, grid_size - 1)

    # Points with a non-finite coordinate all share one extra cell
    cells = np.where(finite, xi * grid_size + yi, grid_size * grid_size).astype(np.int64)

    _, first = np.unique(cells, return_index=True)
    return np.sort(first)


def sample_scatter_points(points: Any,
                          max_points: int = DEFAULT_MAX_POINTS,
                          strategy: str = 'grid',
                          seed: int = DEFAULT_SEED) -> Dict[str, Any]:
    """
    Reduce a scatter series to at most max_points points.

    Strategies:
        grid: split the bounding box into a regular grid and keep the first
            point (in input order) of every occupied cell. This keeps the
            envelope of the distribution instead of favouring dense regions,
            but depends on the input order.
        random: keep each point with probability max_points / n (seeded),
            then truncate to max_points.

    Any other strategy name is treated as grid.

    Args:
        points: Sequence of [x, y, ...] points or {'x', 'y'} mappings
        max_points: Maximum number of points returned
        strategy: 'grid' or 'random'
        seed: Seed of the random strategy

    Returns:
        Dictionary with 'points' (input order preserved) and 'lod' metadata
    """
    items = _as_sequence(points)
    n = len(items)
    budget = max(0, int(to_number(max_points, DEFAULT_MAX_POINTS)))
    strategy = 'random' if strategy == 'random' else 'grid'

    if n <= budget:
        return {'points': items, 'lod': lod_info(False, n, n, strategy)}

    if strategy == 'random':
        rng = make_rng(seed)
        keep = rng.random(n) < budget / n
        indices = np.flatnonzero(keep)[:budget]
    else:
        indices = _grid_indices(items, budget)[:budget]

    logger.debug(f"Scatter LOD ({strategy}): {n} -> {len(indices)} points")

    return {
        'points': _take(items, indices),
        'lod': lod_info(True, n, len(indices), strategy),
    }


def sample_heatmap_values(values: Any,
                          max_cells: int = DEFAULT_MAX_CELLS,
                          seed: int = DEFAULT_SEED,
                          strategy: str = 'slice') -> Dict[str, Any]:
    """
    Reduce a heatmap series to at most max_cells cells.

    The default 'slice' strategy keeps a cell when its index is a multiple
    of floor(n / max_cells) or when it passes a seeded draw with
    probability max_cells / n, then truncates to max_cells. This is an
    approximate reduction: it is not a uniform sample and leans towards
    the start of the series. 'reservoir' draws an exact uniform sample of
    max_cells indices without replacement instead.

    Args:
        values: Sequence of cells
        max_cells: Maximum number of cells returned
        seed: Seed of the random draws
        strategy: 'slice' or 'reservoir'

    Returns:
        Dictionary with 'values' (input order preserved) and 'lod' metadata
    """
    items = _as_sequence(values)
    n = len(items)
    budget = max(0, int(to_number(max_cells, DEFAULT_MAX_CELLS)))

    if n <= budget:
        return {'values': items, 'lod': lod_info(False, n, n, 'none')}

    rng = make_rng(seed)
    if strategy == 'reservoir':
        indices = np.sort(rng.choice(n, size=budget, replace=False))
    else:
        strategy = 'slice'
        step = max(1, n // budget) if budget else 1
        keep = (np.arange(n) % step == 0) | (rng.random(n) < budget / n)
        indices = np.flatnonzero(keep)[:budget]

    logger.debug(f"Heatmap LOD ({strategy}): {n} -> {len(indices)} cells")

    return {
        'values': _take(items, indices),
        'lod': lod_info(True, n, len(indices), strategy),
    }
