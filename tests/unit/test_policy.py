"""
Policy loading: YAML fallback chain and derived lookups.
"""
import pytest
from pydantic import ValidationError

from prospector.core.policy import FunnelPolicy


def test_builtin_defaults():
    policy = FunnelPolicy()
    assert policy.thresholds.discovery_fit_threshold == 0.3
    assert policy.thresholds.funnel_fit_threshold == 0.2
    assert policy.waterfall.required_fields == ["name", "domain"]
    assert "linkedin.com" in policy.discovery.blocked_domains


def test_decay_and_weight_lookups():
    policy = FunnelPolicy()
    assert policy.decay_days("recent_funding") == 180
    assert policy.decay_days("something_else") == policy.default_decay_days
    assert policy.signal_weight("pain_point_detected") == 0.95
    assert policy.signal_weight("something_else") == 0.5


def test_originality_from_commonality():
    policy = FunnelPolicy()
    assert policy.originality("exa") == 0.9
    assert policy.originality("unknown") == 0.5


def test_load_prefers_private_config(tmp_path):
    (tmp_path / "policy.example.yaml").write_text("name: Example\n")
    (tmp_path / "policy.yaml").write_text("name: Private\nthresholds:\n  funnel_fit_threshold: 0.4\n")

    policy = FunnelPolicy.load(tmp_path)

    assert policy.name == "Private"
    assert policy.thresholds.funnel_fit_threshold == 0.4
    # Unspecified values keep their defaults
    assert policy.thresholds.discovery_fit_threshold == 0.3


def test_load_falls_back_to_example_then_defaults(tmp_path):
    (tmp_path / "policy.example.yaml").write_text("name: Example\n")
    assert FunnelPolicy.load(tmp_path).name == "Example"

    (tmp_path / "policy.example.yaml").unlink()
    assert FunnelPolicy.load(tmp_path).name == "Default Policy"


def test_invalid_weights_rejected(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("composite_weights:\n  fit: 0.9\n  signal: 0.9\n  originality: 0.1\n  cost_efficiency: 0.1\n")
    with pytest.raises(ValidationError):
        FunnelPolicy.from_yaml(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        FunnelPolicy.from_yaml(tmp_path / "nope.yaml")
