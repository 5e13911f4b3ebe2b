"""
Unit tests for exemplar configuration
"""

import json

import pytest

from tractexemplar.config import ConfigError, ExemplarConfig, load_config


class TestExemplarConfig:
    """Test configuration defaults, validation and loading"""

    def test_defaults(self):
        config = load_config()

        assert config.resolution == 200
        assert config.step_size == 1.0
        assert config.n_threads == 1
        assert config.endpoint_converge_fraction == 0.25
        assert config.bisection_iterations == 6
        assert config.output_hdf5 is None

    def test_load_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({'resolution': 500, 'step_size': 0.5, 'unknown_key': 1}))

        config = load_config(path)

        assert config.resolution == 500
        assert config.step_size == 0.5

    def test_load_non_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]")

        with pytest.raises(ConfigError):
            load_config(path)

    @pytest.mark.parametrize("values", [
        {'resolution': 1},
        {'resolution': 3},
        {'step_size': 0.0},
        {'n_threads': 0},
        {'endpoint_converge_fraction': 0.75},
        {'bisection_iterations': 0},
    ])
    def test_invalid_values(self, values):
        with pytest.raises(ConfigError):
            ExemplarConfig.from_dict(values)

    def test_update_ignores_none(self):
        config = ExemplarConfig(resolution=300).update(resolution=None, step_size=2.0)

        assert config.resolution == 300
        assert config.step_size == 2.0

    def test_round_trip_dict(self):
        config = ExemplarConfig(n_threads=4, output_hdf5="out.h5")
        assert ExemplarConfig.from_dict(config.to_dict()) == config


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
