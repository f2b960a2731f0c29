# Purpose: Tests for core/resolver.py.
# Covers: root-only paths, exact subtool matching across "_" segments,
#         nested descent, no partial matches, parameter override, danger
#         level propagation, determinism, error kinds.

import pytest

from operations.core.config import ParamType, parse_config
from operations.core.errors import InvalidPath, SubtoolNotFound, ToolNotFound
from operations.core.resolver import PathResolver


@pytest.fixture()
def resolver(kubectl_config):
    return PathResolver(kubectl_config)


# ---------------------------------------------------------------------------
# Successful resolution
# ---------------------------------------------------------------------------

def test_root_only_path(resolver):
    """A bare root name returns the root command with no danger level."""
    resolved = resolver.resolve("kubectl")
    assert resolved.tokens == ("kubectl",)
    assert set(resolved.params) == {"namespace"}
    assert resolved.danger_level == ""


def test_subtool_name_spanning_segments(resolver):
    """'get pod' is matched by the two segments get_pod."""
    resolved = resolver.resolve("kubectl_get_pod")
    assert resolved.tokens == ("kubectl", "get", "pod", "-n", "{{.namespace}}")
    assert resolved.target.name == "get pod"


def test_subtool_params_are_merged_with_root(resolver):
    resolved = resolver.resolve("kubectl_delete_pod")
    assert set(resolved.params) == {"namespace", "pod"}
    assert resolved.danger_level == "high"


def test_nested_subtool_descends(resolver):
    """Deeper nodes are reached by descending through a matching parent."""
    resolved = resolver.resolve("kubectl_rollout_restart")
    assert resolved.tokens == ("kubectl", "rollout", "restart", "deployment/{{.deployment}}")
    assert resolved.danger_level == "medium"
    assert [n.name for n in resolved.nodes] == ["kubectl", "rollout", "restart"]


def test_intermediate_subtool_is_resolvable_on_its_own(resolver):
    resolved = resolver.resolve("kubectl_rollout")
    assert resolved.tokens == ("kubectl", "rollout")


def test_resolution_is_deterministic(resolver):
    """Repeated resolution of the same path yields equal results."""
    first = resolver.resolve("kubectl_delete_pod")
    second = resolver.resolve("kubectl_delete_pod")
    assert first.tokens == second.tokens
    assert dict(first.params) == dict(second.params)
    assert first.danger_level == second.danger_level


def test_subtool_param_overrides_root_definition():
    """A same-named subtool parameter replaces the root's definition."""
    cfg = parse_config(
        {
            "tools": [
                {
                    "name": "kubectl",
                    "command": ["kubectl"],
                    "params": {"namespace": {"type": "string", "required": True}},
                    "subtools": [
                        {
                            "name": "logs",
                            "params": {
                                "namespace": {
                                    "type": "int",
                                    "required": False,
                                    "validate": [{"danger_level": "x", "exclude": ["1"]}],
                                }
                            },
                        }
                    ],
                }
            ]
        }
    )
    spec = PathResolver(cfg).resolve("kubectl_logs").params["namespace"]
    assert spec.type is ParamType.INT
    assert spec.required is False
    assert len(spec.validate_rules) == 1


def test_longest_prefix_tried_first_with_backtracking():
    """
    'a b' and 'a' both prefix 'a_b_c'; the longer name is tried first and
    the shorter one is still used when the longer one has no match below it.
    """
    cfg = parse_config(
        {
            "tools": [
                {
                    "name": "t",
                    "command": ["t"],
                    "subtools": [
                        {"name": "a", "args": ["A"], "subtools": [{"name": "b c", "args": ["BC"]}]},
                        {"name": "a b", "args": ["AB"], "subtools": [{"name": "d", "args": ["D"]}]},
                    ],
                }
            ]
        }
    )
    resolver = PathResolver(cfg)
    assert resolver.resolve("t_a_b_c").tokens == ("t", "A", "BC")
    assert resolver.resolve("t_a_b_d").tokens == ("t", "AB", "D")


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_empty_path_is_invalid(resolver):
    with pytest.raises(InvalidPath):
        resolver.resolve("")


def test_leading_separator_is_invalid(resolver):
    with pytest.raises(InvalidPath):
        resolver.resolve("_kubectl")


def test_unknown_root_raises_tool_not_found(resolver):
    with pytest.raises(ToolNotFound) as exc_info:
        resolver.resolve("helm_install")
    assert exc_info.value.name == "helm"


def test_root_match_is_case_sensitive(resolver):
    with pytest.raises(ToolNotFound):
        resolver.resolve("Kubectl")


def test_unknown_subtool_raises(resolver):
    with pytest.raises(SubtoolNotFound):
        resolver.resolve("kubectl_apply")


def test_prefix_of_deeper_name_never_matches():
    """kubectl_get must not resolve when only 'get pod' exists."""
    cfg = parse_config(
        {
            "tools": [
                {
                    "name": "kubectl",
                    "command": ["kubectl"],
                    "subtools": [{"name": "get pod", "args": ["get", "pod"]}],
                }
            ]
        }
    )
    with pytest.raises(SubtoolNotFound):
        PathResolver(cfg).resolve("kubectl_get")


def test_trailing_separator_raises_subtool_not_found(resolver):
    with pytest.raises(SubtoolNotFound):
        resolver.resolve("kubectl_")


def test_extra_segments_after_leaf_fail(resolver):
    with pytest.raises(SubtoolNotFound):
        resolver.resolve("kubectl_get_pod_extra")
