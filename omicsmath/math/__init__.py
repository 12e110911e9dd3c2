"""
Core mathematical algorithms for omicsmath.

This module contains implementations of:
- Descriptive statistics, correlations and compositional transforms
- Principal Component Analysis (PCA)
- Correlation matrices
- Level-of-detail sampling for chart payloads
"""

from omicsmath.math.stats import (
    mean, variance, std, quantile, median, boxplot_stats,
    pearson, spearman_corr, robust_corr,
    clr_transform, alr_transform, aitchison_distance, zscore,
    column_variance, zscore_matrix, log1p_matrix, impute_matrix,
)
from omicsmath.math.pca import pca
from omicsmath.math.corr import correlation_matrix, compute_correlation
from omicsmath.math.lod import sample_scatter_points, sample_heatmap_values

__all__ = [
    'mean', 'variance', 'std', 'quantile', 'median', 'boxplot_stats',
    'pearson', 'spearman_corr', 'robust_corr',
    'clr_transform', 'alr_transform', 'aitchison_distance', 'zscore',
    'column_variance', 'zscore_matrix', 'log1p_matrix', 'impute_matrix',
    'pca',
    'correlation_matrix', 'compute_correlation',
    'sample_scatter_points', 'sample_heatmap_values',
]
