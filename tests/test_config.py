"""
Tests for SolverConfig and the JSON defaults loader.
"""

import json
import pytest

from cqed_solver.core import constants
from cqed_solver.core.constants import (
    default_config_dict,
    get_config_json_path,
    load_config_from_json,
    save_config_to_json,
)
from cqed_solver.core.errors import InvalidInput
from cqed_solver.core.parameters import SolverConfig, resolve_config


@pytest.mark.unit
class TestConfigLoading:
    """solver_config.json handling."""

    def test_packaged_json_exists(self):
        assert get_config_json_path().exists()

    def test_packaged_json_matches_in_code_defaults(self):
        with open(get_config_json_path(), 'r', encoding='utf-8') as f:
            packaged = json.load(f)
        assert packaged == default_config_dict()

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config_from_json(tmp_path / "missing.json") == default_config_dict()

    def test_partial_file_merged_over_defaults(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"mixing_depth": 4, "damping": 0.5}))
        loaded = load_config_from_json(path)
        assert loaded["mixing_depth"] == 4
        assert loaded["damping"] == 0.5
        assert loaded["root_max_iter"] == default_config_dict()["root_max_iter"]

    def test_invalid_file_warns_and_uses_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ not json")
        with pytest.warns(UserWarning, match="Failed to load"):
            loaded = load_config_from_json(path)
        assert loaded == default_config_dict()

    def test_module_constants_follow_loaded_config(self):
        assert constants.ROOT_MAX_ITER == constants._LOADED_CONFIG["root_max_iter"]
        assert constants.RESONANCE_POLICY in constants.RESONANCE_POLICIES


@pytest.mark.unit
class TestSolverConfig:
    """Validation and conversions of SolverConfig."""

    def test_defaults(self):
        config = SolverConfig()
        assert config.root_max_iter == 200
        assert config.fixedpoint_max_iter == 200
        assert config.mixing_depth == 0
        assert config.damping == 1.0
        assert config.resonance_policy == "skip"
        assert config.step_policy == "clamp"

    @pytest.mark.parametrize("changes", [
        {"root_tolerance": 0.0},
        {"root_max_iter": 0},
        {"fixedpoint_max_iter": 2.5},
        {"mixing_depth": -1},
        {"damping": 0.0},
        {"damping": 1.5},
        {"bracket_margin": 0.5},
        {"resonance_policy": "ignore"},
        {"step_policy": "bisect"},
        {"reference_level": -1},
        {"pole_epsilon": -1e-12},
    ])
    def test_invalid_values_rejected(self, changes):
        with pytest.raises(InvalidInput):
            SolverConfig(**changes)

    def test_replace_validates(self):
        config = SolverConfig()
        assert config.replace(mixing_depth=3).mixing_depth == 3
        with pytest.raises(InvalidInput):
            config.replace(damping=2.0)

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidInput, match="tolerance_root"):
            SolverConfig.from_dict({"tolerance_root": 1e-8})

    def test_json_round_trip(self, tmp_path):
        config = SolverConfig(mixing_depth=3, damping=0.4, resonance_policy="clamp")
        path = tmp_path / "config.json"
        config.save(path)
        assert SolverConfig.from_json(path) == config

    def test_save_config_to_json(self, tmp_path):
        path = tmp_path / "raw.json"
        save_config_to_json({"verbose": True}, path)
        assert load_config_from_json(path)["verbose"] is True

    def test_resolve_config_forms(self):
        assert resolve_config() == SolverConfig()
        config = SolverConfig(mixing_depth=2)
        assert resolve_config(config) is config
        assert resolve_config({"mixing_depth": 2}) == config
        assert resolve_config(config, damping=0.5).damping == 0.5
        with pytest.raises(InvalidInput):
            resolve_config("defaults")
