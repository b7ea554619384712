import copy
import json

import pytest

from conftest import POLICY
from task_router.errors import ConfigError
from task_router.models import Mode, TaskId
from task_router.policy import DEFAULT_POLICY_PATH, PolicyEngine, RoutingPolicy


def test_task_mode_beats_env_and_default(policy):
    engine = PolicyEngine(policy, env_mode="quality")

    decision = engine.resolve_route(TaskId.CHUNK_CLASSIFY)

    assert decision.mode is Mode.CHEAP
    assert (decision.primary_model, decision.fallback_model) == ("c-primary", "c-fallback")
    assert decision.reason == "task"


def test_explicit_mode_beats_task_mode(policy):
    decision = PolicyEngine(policy).resolve_route("chunk_classify", explicit_mode="quality")

    assert decision.primary_model == "q-primary"
    assert decision.reason == "explicit"


def test_env_mode_applies_to_unconfigured_tasks(policy):
    decision = PolicyEngine(policy, env_mode=Mode.CHEAP).resolve_route("essay_grade")

    assert decision.mode is Mode.CHEAP
    assert decision.reason == "env"


def test_default_mode_is_last_resort(policy):
    decision = PolicyEngine(policy).resolve_route("essay_grade")

    assert decision.mode is Mode.BALANCED
    assert decision.reason == "default"


def test_long_quality_input_switches_primary(policy):
    engine = PolicyEngine(policy)

    long_quality = engine.resolve_route("topic_map", tokens_in=5001)
    at_threshold = engine.resolve_route("topic_map", tokens_in=5000)
    long_balanced = engine.resolve_route("quiz_generate", tokens_in=50_000)

    assert long_quality.primary_model == policy.long_context_model
    assert long_quality.fallback_model == "q-fallback"
    assert at_threshold.primary_model == "q-primary"
    assert long_balanced.primary_model == "b-primary"


def test_latency_budget_precedence(policy):
    assert PolicyEngine(policy).resolve_route("topic_map").max_latency_ms == 3000
    assert PolicyEngine(policy).resolve_route("quiz_generate").max_latency_ms == 1000
    engine = PolicyEngine(policy, env_max_latency_ms=250)
    assert engine.resolve_route("topic_map").max_latency_ms == 250


def test_unknown_explicit_mode_fails_fast(policy):
    with pytest.raises(ConfigError):
        PolicyEngine(policy).resolve_route("quiz_generate", explicit_mode="turbo")


def test_unknown_env_mode_fails_at_construction(policy):
    with pytest.raises(ConfigError):
        PolicyEngine(policy, env_mode="turbo")


def test_mode_without_model_pair_fails_at_resolution():
    data = copy.deepcopy(POLICY)
    del data["modes"]["cheap"]
    del data["tasks"]["chunk_classify"]
    engine = PolicyEngine(RoutingPolicy.from_dict(data))

    with pytest.raises(ConfigError, match="cheap"):
        engine.resolve_route("quiz_generate", explicit_mode="cheap")


def test_policy_referencing_undefined_mode_is_rejected():
    data = copy.deepcopy(POLICY)
    del data["modes"]["cheap"]

    with pytest.raises(ConfigError, match="undefined modes: cheap"):
        RoutingPolicy.from_dict(data)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d.pop("modes"),
        lambda d: d["defaults"].update(mode="fast"),
        lambda d: d["modes"]["quality"].pop("fallback"),
        lambda d: d["tasks"].update(quiz_generate={"mode": 3}),
    ],
)
def test_malformed_policy_is_rejected(mutate):
    data = copy.deepcopy(POLICY)
    mutate(data)

    with pytest.raises(ConfigError, match="Malformed routing policy"):
        RoutingPolicy.from_dict(data)


def test_packaged_policy_loads():
    policy = RoutingPolicy.load()

    assert set(policy.modes) == set(Mode)
    assert policy.tasks["diagram_mermaid"] is Mode.QUALITY
    assert policy.long_context_threshold == 5000


def test_load_from_file(tmp_path):
    path = tmp_path / "policy.json"
    path.write_text(json.dumps(POLICY))

    assert RoutingPolicy.load(path).version == "test"


def test_missing_or_broken_file_is_fatal(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        RoutingPolicy.load(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{")
    with pytest.raises(ConfigError):
        RoutingPolicy.load(broken)


def test_default_path_is_shipped():
    assert DEFAULT_POLICY_PATH.exists()
