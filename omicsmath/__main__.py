"""
Main entry point for omicsmath.

This module provides a command line interface that runs the compute
engine on a CSV table: PCA, correlation matrix or boxplot statistics.
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

from omicsmath.components.config import Config, ConfigManager
from omicsmath.jobs import JobClient, JobError
from omicsmath.math.lod import sample_heatmap_values, sample_scatter_points
from omicsmath.math.stats import boxplot_stats

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO') -> None:
    """
    Set up logging.

    Args:
        level: Logging level
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(description='Omics dashboard statistical engine')

    parser.add_argument(
        '--config',
        help='Path to configuration file (JSON or YAML)'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level (default: logging.level from the configuration)'
    )

    parser.add_argument(
        '--output',
        help='Write the JSON result to this file instead of stdout'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    pca_parser = subparsers.add_parser('pca', help='Principal component analysis')
    pca_parser.add_argument('input', help='CSV file (rows = samples)')
    pca_parser.add_argument('--k', type=int, help='Number of components')
    pca_parser.add_argument('--no-standardize', action='store_true', help='Skip column z-scoring')
    pca_parser.add_argument('--seed', type=int, help='Base seed of the power iterations')
    pca_parser.add_argument('--max-iter', type=int, help='Maximum power iterations per component')
    pca_parser.add_argument('--tol', type=float, help='Eigenvalue convergence threshold')
    pca_parser.add_argument('--max-points', type=int, help='Maximum number of score points returned')
    pca_parser.add_argument('--strategy', choices=['grid', 'random'], help='Score sampling strategy')

    corr_parser = subparsers.add_parser('corr', help='Correlation matrix')
    corr_parser.add_argument('input', help='CSV file (rows = samples)')
    corr_parser.add_argument('--columns', help='Comma-separated columns (default: all numeric columns)')
    corr_parser.add_argument('--method', choices=['pearson', 'spearman', 'robust'])
    corr_parser.add_argument('--transform', choices=['none', 'log1p', 'clr'])
    corr_parser.add_argument('--impute', choices=['drop', 'zero', 'pseudocount', 'median'])
    corr_parser.add_argument('--max-cells', type=int, help='Maximum number of heatmap cells returned')

    box_parser = subparsers.add_parser('boxplot', help='Boxplot statistics of one column')
    box_parser.add_argument('input', help='CSV file')
    box_parser.add_argument('--column', required=True, help='Column name')
    box_parser.add_argument('--whisker-coef', type=float, default=1.5, help='Tukey fence coefficient')

    return parser.parse_args(argv)


def _pick(value: Any, config: Config, path: str) -> Any:
    return value if value is not None else config.get(path)


def read_numeric_table(filepath: str) -> pd.DataFrame:
    """
    Read a CSV file, keeping only the columns with numeric content.

    Args:
        filepath: Path to the CSV file

    Returns:
        DataFrame of floats (NaN for missing cells)
    """
    df = pd.read_csv(filepath)
    numeric = df.apply(pd.to_numeric, errors='coerce')
    return numeric.dropna(axis=1, how='all')


def _log_progress(kind: str):
    def report(fraction: float) -> None:
        logger.info(f"{kind} job progress: {fraction:.0%}")
    return report


def run_pca(args: argparse.Namespace, config: Config, client: JobClient) -> Dict[str, Any]:
    """
    Run a PCA job on a CSV table.
    """
    table = read_numeric_table(args.input)
    options = {
        'k': _pick(args.k, config, 'pca.k'),
        'standardize': False if args.no_standardize else config.get('pca.standardize', True),
        'max_iter': _pick(args.max_iter, config, 'pca.max-iter'),
        'tol': _pick(args.tol, config, 'pca.tol'),
        'seed': _pick(args.seed, config, 'pca.seed'),
    }

    handle = client.submit('pca', {'matrix': table.to_numpy(), 'options': options},
                           on_progress=_log_progress('pca'))
    result = handle.result()

    points = [[row[0] if row else 0.0, row[1] if len(row) > 1 else 0.0, i]
              for i, row in enumerate(result['scores'])]
    sampled = sample_scatter_points(
        points,
        max_points=_pick(args.max_points, config, 'lod.max-points'),
        strategy=_pick(args.strategy, config, 'lod.scatter-strategy'),
        seed=config.get('lod.seed', 42),
    )

    return {
        'columns': [str(c) for c in table.columns],
        'eigenvalues': result['eigenvalues'],
        'explained_variance_ratio': result['explained_variance_ratio'],
        'components': result['components'],
        'points': sampled['points'],
        'lod': sampled['lod'],
    }


def run_corr(args: argparse.Namespace, config: Config, client: JobClient) -> Dict[str, Any]:
    """
    Run a correlation job on a CSV table.
    """
    table = read_numeric_table(args.input)
    if args.columns:
        keys = [c.strip() for c in args.columns.split(',') if c.strip()]
    else:
        keys = [str(c) for c in table.columns]

    payload = {
        'rows': table,
        'keys': keys,
        'method': _pick(args.method, config, 'corr.method'),
        'transform': _pick(args.transform, config, 'corr.transform'),
        'impute': _pick(args.impute, config, 'corr.impute'),
        'precision': config.get('corr.precision', 3),
        'winsor': config.get('corr.winsor', 0.05),
    }

    handle = client.submit('corr', payload, on_progress=_log_progress('corr'))
    result = handle.result()

    sampled = sample_heatmap_values(
        result['cells'],
        max_cells=_pick(args.max_cells, config, 'lod.max-cells'),
        seed=config.get('lod.seed', 42),
    )

    return {
        'keys': result['keys'],
        'cells': sampled['values'],
        'lod': sampled['lod'],
    }


def run_boxplot(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Compute boxplot statistics of one CSV column.
    """
    df = pd.read_csv(args.input)
    if args.column not in df.columns:
        raise ValueError(f"Unknown column: {args.column}")

    stats = boxplot_stats(df[args.column].tolist(), whisker_coef=args.whisker_coef)
    return {'column': args.column, **stats}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.
    """
    args = parse_args(argv)

    config = ConfigManager.get_config()
    try:
        if args.config:
            config.load_from_file(args.config)
    except (OSError, ValueError, yaml.YAMLError) as e:
        setup_logging(args.log_level or 'WARNING')
        logger.error(f"Could not load configuration {args.config}: {e}")
        return 1

    setup_logging(args.log_level or config.get('logging.level', 'warn'))

    try:
        if args.command == 'boxplot':
            output = run_boxplot(args)
        else:
            with JobClient(config) as client:
                if args.command == 'pca':
                    output = run_pca(args, config, client)
                else:
                    output = run_corr(args, config, client)
    except (JobError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    text = json.dumps(output, indent=2)
    if args.output:
        with open(args.output, 'w') as f:
            f.write(text)
    else:
        print(text)

    return 0


if __name__ == '__main__':
    sys.exit(main())
