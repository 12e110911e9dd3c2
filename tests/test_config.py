"""
Tests for the configuration module.
"""

import pytest
import json
import sys
import os
import yaml

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from omicsmath.components.config import Config, ConfigManager, to_bool, to_float, to_int


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Start every test from the defaults."""
    for name in ('OMICS_MATH_ENV', 'PCA_K', 'PCA_STANDARDIZE', 'PCA_MAX_ITER', 'PCA_TOL',
                 'PCA_SEED', 'CORR_METHOD', 'CORR_PRECISION', 'LOD_MAX_POINTS',
                 'LOD_MAX_CELLS', 'LOD_SEED', 'JOB_POLL_INTERVAL', 'JOB_JOIN_TIMEOUT',
                 'LOG_LEVEL'):
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


class TestConverters:
    """Tests for the value converters."""

    def test_to_int(self):
        assert to_int('5') == 5
        assert to_int(None) is None
        assert to_int('abc') is None

    def test_to_float(self):
        assert to_float('0.25') == 0.25
        assert to_float(None) is None
        assert to_float('x') is None

    def test_to_bool(self):
        assert to_bool('yes') is True
        assert to_bool('False') is False
        assert to_bool(0) is False
        assert to_bool('maybe') is None


class TestConfig:
    """Tests for the Config class."""

    def test_defaults(self):
        """Test the default values."""
        config = Config()

        assert config.get('pca.k') == 2
        assert config.get('pca.standardize') is True
        assert config.get('pca.max-iter') == 300
        assert config.get('pca.tol') == 1e-8
        assert config.get('corr.method') == 'pearson'
        assert config.get('corr.precision') == 3
        assert config.get('lod.max-points') == 50000
        assert config.get('lod.max-cells') == 40000
        assert config.get('lod.scatter-strategy') == 'grid'
        assert config.get('lod.seed') == 42
        assert config.get('jobs.poll-interval') == 0.5
        assert config.get('math-env') == 'dev'

    def test_missing_path(self):
        """Test the default of an unknown path."""
        config = Config()
        assert config.get('pca.missing') is None
        assert config.get('nothing.here', 'fallback') == 'fallback'

    def test_environment(self, monkeypatch):
        """Test environment variable overrides."""
        monkeypatch.setenv('PCA_K', '3')
        monkeypatch.setenv('PCA_STANDARDIZE', 'false')
        monkeypatch.setenv('CORR_METHOD', 'spearman')
        monkeypatch.setenv('LOD_MAX_POINTS', '1000')
        monkeypatch.setenv('JOB_POLL_INTERVAL', '0.1')
        monkeypatch.setenv('LOG_LEVEL', 'DEBUG')

        config = Config()

        assert config.get('pca.k') == 3
        assert config.get('pca.standardize') is False
        assert config.get('corr.method') == 'spearman'
        assert config.get('lod.max-points') == 1000
        assert config.get('jobs.poll-interval') == 0.1
        assert config.get('logging.level') == 'debug'

    def test_invalid_environment_value(self, monkeypatch):
        """Test that an unparsable value keeps the default."""
        monkeypatch.setenv('LOD_MAX_CELLS', 'lots')
        assert Config().get('lod.max-cells') == 40000

    def test_overrides(self):
        """Test that overrides are merged into the nested sections."""
        config = Config({'pca': {'k': 4}, 'extra': {'value': 1}})

        assert config.get('pca.k') == 4
        assert config.get('pca.max-iter') == 300
        assert config.get('extra.value') == 1

    def test_set(self):
        """Test setting values."""
        config = Config()
        config.set('lod.seed', 7)
        config.set('new.section.value', 'x')

        assert config.get('lod.seed') == 7
        assert config.get('new.section.value') == 'x'

    def test_to_dict_is_a_copy(self):
        """Test that to_dict does not expose the internal state."""
        config = Config()
        data = config.to_dict()
        data['pca']['k'] = 99
        assert config.get('pca.k') == 2

    def test_yaml_round_trip(self, tmp_path):
        """Test saving and loading YAML."""
        path = str(tmp_path / 'config.yaml')
        config = Config({'corr': {'precision': 5}})
        config.save_to_file(path)

        with open(path) as f:
            assert yaml.safe_load(f)['corr']['precision'] == 5

        loaded = Config()
        loaded.load_from_file(path)
        assert loaded.get('corr.precision') == 5

    def test_json_file(self, tmp_path):
        """Test loading a partial JSON file."""
        path = tmp_path / 'config.json'
        path.write_text(json.dumps({'lod': {'max-points': 10}}))

        config = Config()
        config.load_from_file(str(path))

        assert config.get('lod.max-points') == 10
        assert config.get('lod.max-cells') == 40000

    def test_unsupported_format(self, tmp_path):
        """Test that unknown file extensions are rejected."""
        config = Config()
        with pytest.raises(ValueError):
            config.save_to_file(str(tmp_path / 'config.txt'))
        with pytest.raises(ValueError):
            config.load_from_file(str(tmp_path / 'config.ini'))


class TestConfigManager:
    """Tests for the configuration singleton."""

    def test_singleton(self):
        """Test that the same instance is returned."""
        assert ConfigManager.get_config() is ConfigManager.get_config()

    def test_overrides_reload(self):
        """Test that overrides are applied to the existing instance."""
        config = ConfigManager.get_config()
        ConfigManager.get_config({'pca': {'k': 5}})
        assert config.get('pca.k') == 5

    def test_reset(self):
        """Test dropping the instance."""
        first = ConfigManager.get_config()
        ConfigManager.reset()
        assert ConfigManager.get_config() is not first
