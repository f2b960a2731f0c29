# Purpose: Tests for core/template.py.
# Covers: pass-through of plain tokens, field and index lookups, missing
#         keys, trim markers, syntax and execution errors.

import pytest

from operations.core.errors import TemplateExecutionError, TemplateSyntaxError
from operations.core.template import expand, expand_token


def test_plain_tokens_are_unchanged():
    """Tokens without an action come back exactly as given."""
    tokens = ["kubectl", "get", "pod", "{ not an action }", ""]
    assert expand(tokens, {"namespace": "x"}) == tokens


def test_field_substitution():
    assert expand(["-n", "{{.namespace}}"], {"namespace": "default"}) == ["-n", "default"]


def test_spaces_inside_braces_are_ignored():
    assert expand_token("{{ .namespace }}", {"namespace": "default"}) == "default"


def test_substitution_inside_larger_token():
    assert expand_token("deployment/{{.name}}", {"name": "web"}) == "deployment/web"


def test_several_actions_in_one_token():
    values = {"user": "root", "host": "db1"}
    assert expand_token("{{.user}}@{{.host}}:22", values) == "root@db1:22"


def test_missing_key_renders_empty():
    assert expand(["-n", "{{.namespace}}"], {}) == ["-n", ""]


def test_index_form_reaches_non_identifier_keys():
    assert expand_token('--dry-run={{index . "dry-run"}}', {"dry-run": "client"}) == "--dry-run=client"


def test_trim_markers_remove_adjacent_whitespace():
    assert expand_token("a  {{- .x -}}  b", {"x": "X"}) == "aXb"


def test_values_are_not_re_expanded():
    """A value that looks like an action is inserted literally."""
    assert expand_token("{{.x}}", {"x": "{{.y}}"}) == "{{.y}}"


@pytest.mark.parametrize(
    "token",
    ["{{.namespace", "{{}}", "{{ }}", "{{ namespace }}", "{{.a | upper}}", "{{.bad-name}}"],
)
def test_malformed_actions_are_syntax_errors(token):
    with pytest.raises(TemplateSyntaxError) as exc_info:
        expand([token], {"namespace": "x"})
    assert exc_info.value.token == token


def test_chained_field_is_an_execution_error():
    with pytest.raises(TemplateExecutionError):
        expand_token("{{.a.b}}", {"a": "value"})


def test_error_in_any_token_fails_the_whole_expansion():
    with pytest.raises(TemplateSyntaxError):
        expand(["ok", "{{.x}}", "{{broken"], {"x": "1"})
