"""
Configuration management for omicsmath.

This module provides functionality for managing configuration,
including loading from environment variables, files and default values.
"""

import os
import json
import logging
import threading
from typing import Dict, Optional, Any
from copy import deepcopy
import yaml

# Set up logging
logger = logging.getLogger(__name__)


def to_int(value: Any) -> Optional[int]:
    """
    Convert a value to an integer.

    Args:
        value: Value to convert

    Returns:
        Integer value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def to_float(value: Any) -> Optional[float]:
    """
    Convert a value to a float.

    Args:
        value: Value to convert

    Returns:
        Float value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def to_bool(value: Any) -> Optional[bool]:
    """
    Convert a value to a boolean.

    Args:
        value: Value to convert

    Returns:
        Boolean value, or None if conversion failed
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if isinstance(value, (int, float)):
        return bool(value)

    if isinstance(value, str):
        value = value.lower().strip()
        if value in ('true', 'yes', 'y', '1', 't'):
            return True
        if value in ('false', 'no', 'n', '0', 'f'):
            return False

    return None


def _env(name: str, convert, current: Any) -> Any:
    """Read and convert an environment variable, keeping current on failure."""
    if name not in os.environ:
        return current

    value = convert(os.environ[name])
    if value is None:
        logger.warning(f"Ignoring invalid value for {name}: {os.environ[name]!r}")
        return current
    return value


class Config:
    """
    Configuration manager for omicsmath.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            overrides: Optional configuration overrides
        """
        self._lock = threading.RLock()
        self._config = {}
        self._initialized = False

        # Load configuration
        self.load_config(overrides)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Load configuration from all sources.

        Args:
            overrides: Optional configuration overrides
        """
        with self._lock:
            config = self._get_defaults()
            config = self._apply_env_vars(config)

            if overrides:
                config = self._apply_overrides(config, overrides)

            self._config = config
            self._initialized = True

            logger.info("Configuration loaded")

    def _get_defaults(self) -> Dict[str, Any]:
        """
        Get default configuration values.

        Returns:
            Default configuration
        """
        return {
            # Environment
            'math-env': 'dev',

            # PCA engine
            'pca': {
                'k': 2,
                'standardize': True,
                'max-iter': 300,
                'tol': 1e-8,
                'seed': 0
            },

            # Correlation engine
            'corr': {
                'method': 'pearson',
                'transform': 'none',
                'impute': 'drop',
                'precision': 3,       # decimal places
                'winsor': 0.05
            },

            # Level-of-detail sampling
            'lod': {
                'max-points': 50000,
                'max-cells': 40000,
                'scatter-strategy': 'grid',
                'seed': 42
            },

            # Background jobs
            'jobs': {
                'poll-interval': 0.5,  # seconds
                'join-timeout': 5.0    # seconds
            },

            # Logging
            'logging': {
                'level': 'warn'
            }
        }

    def _apply_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variables to configuration.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        # Make a copy
        config = deepcopy(config)

        # Environment
        config['math-env'] = os.environ.get('OMICS_MATH_ENV', config['math-env'])

        # PCA engine
        config['pca']['k'] = _env('PCA_K', to_int, config['pca']['k'])
        config['pca']['standardize'] = _env('PCA_STANDARDIZE', to_bool, config['pca']['standardize'])
        config['pca']['max-iter'] = _env('PCA_MAX_ITER', to_int, config['pca']['max-iter'])
        config['pca']['tol'] = _env('PCA_TOL', to_float, config['pca']['tol'])
        config['pca']['seed'] = _env('PCA_SEED', to_int, config['pca']['seed'])

        # Correlation engine
        config['corr']['method'] = os.environ.get('CORR_METHOD', config['corr']['method'])
        config['corr']['precision'] = _env('CORR_PRECISION', to_int, config['corr']['precision'])

        # Level-of-detail sampling
        config['lod']['max-points'] = _env('LOD_MAX_POINTS', to_int, config['lod']['max-points'])
        config['lod']['max-cells'] = _env('LOD_MAX_CELLS', to_int, config['lod']['max-cells'])
        config['lod']['seed'] = _env('LOD_SEED', to_int, config['lod']['seed'])

        # Background jobs
        config['jobs']['poll-interval'] = _env('JOB_POLL_INTERVAL', to_float, config['jobs']['poll-interval'])
        config['jobs']['join-timeout'] = _env('JOB_JOIN_TIMEOUT', to_float, config['jobs']['join-timeout'])

        # Logging
        config['logging']['level'] = os.environ.get('LOG_LEVEL', config['logging']['level']).lower()

        return config

    def _apply_overrides(self, config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply configuration overrides.

        Args:
            config: Current configuration
            overrides: Configuration overrides

        Returns:
            Updated configuration
        """
        # Make a copy
        config = deepcopy(config)

        # Helper function for deep update
        def deep_update(d, u):
            for k, v in u.items():
                if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                    d[k] = deep_update(d[k], v)
                else:
                    d[k] = v
            return d

        return deep_update(config, overrides)

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            path: Configuration path (dot-separated)
            default: Default value if not found

        Returns:
            Configuration value, or default if not found
        """
        if not self._initialized:
            self.load_config()

        value = self._config

        for component in path.split('.'):
            if isinstance(value, dict) and component in value:
                value = value[component]
            else:
                return default

        return value

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            path: Configuration path (dot-separated)
            value: Configuration value
        """
        with self._lock:
            if not self._initialized:
                self.load_config()

            components = path.split('.')
            config = self._config

            for component in components[:-1]:
                if component not in config:
                    config[component] = {}

                config = config[component]

            config[components[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns:
            Configuration dictionary
        """
        if not self._initialized:
            self.load_config()

        return deepcopy(self._config)

    def save_to_file(self, filepath: str) -> None:
        """
        Save configuration to a file.

        Args:
            filepath: Path to save configuration
        """
        if not self._initialized:
            self.load_config()

        # Determine file format from extension
        if filepath.endswith('.json'):
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'w') as f:
                yaml.dump(self._config, f, default_flow_style=False)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

    def load_from_file(self, filepath: str) -> None:
        """
        Load configuration from a file.

        Args:
            filepath: Path to load configuration from
        """
        # Determine file format from extension
        if filepath.endswith('.json'):
            with open(filepath, 'r') as f:
                overrides = json.load(f)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'r') as f:
                overrides = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

        # Apply overrides
        self.load_config(overrides)


class ConfigManager:
    """
    Singleton manager for configuration.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_config(cls, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Get the configuration instance.

        Args:
            overrides: Optional configuration overrides

        Returns:
            Config instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Config(overrides)
            elif overrides:
                cls._instance.load_config(overrides)

            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """
        Drop the configuration instance.
        """
        with cls._lock:
            cls._instance = None
