# Purpose: Substitute parameter values into `{{ .name }}` placeholders in
#          command tokens.
# Relationships: Called by core/manager.py after the danger gate approves;
#               its output is the argv handed to core/dispatch.py.

# Only one kind of action is understood: a field lookup into the values
# mapping, written `{{.name}}` or `{{index . "name"}}` (the second form for
# names that are not identifiers, e.g. `dry-run`). Spaces inside the braces
# are ignored and `{{-` / `-}}` trim whitespace next to the action. Missing
# keys render as the empty string. Anything else inside the braces is a
# syntax error, and the whole expansion fails with the offending token.

import re
from typing import Mapping, Sequence

from .errors import TemplateExecutionError, TemplateSyntaxError

OPEN = "{{"
CLOSE = "}}"

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_FIELD_RE = re.compile(rf"^\.({_IDENT})((?:\.{_IDENT})*)$")
_INDEX_RE = re.compile(r'^index\s+\.\s+"((?:[^"\\]|\\.)*)"$')


def expand(tokens: Sequence[str], values: Mapping[str, str]) -> list[str]:
    """Expand every token; tokens without `{{` are returned unchanged."""
    return [expand_token(token, values) if OPEN in token else token for token in tokens]


def expand_token(token: str, values: Mapping[str, str]) -> str:
    out: list[str] = []
    pos = 0
    while True:
        start = token.find(OPEN, pos)
        if start == -1:
            out.append(token[pos:])
            break

        end = token.find(CLOSE, start + len(OPEN))
        if end == -1:
            raise TemplateSyntaxError(token, "unclosed action")

        text = token[pos:start]
        body = token[start + len(OPEN):end]
        pos = end + len(CLOSE)

        if body.startswith("- "):
            text = text.rstrip()
            body = body[2:]
        if body.endswith(" -"):
            body = body[:-2]
            trim_after = True
        else:
            trim_after = False

        out.append(text)
        out.append(_evaluate(token, body.strip(), values))

        if trim_after:
            rest = token[pos:]
            pos += len(rest) - len(rest.lstrip())

    return "".join(out)


def _evaluate(token: str, action: str, values: Mapping[str, str]) -> str:
    if not action:
        raise TemplateSyntaxError(token, "missing value for command")

    match = _FIELD_RE.match(action)
    if match:
        key, chained = match.group(1), match.group(2)
        if chained:
            raise TemplateExecutionError(
                token, f"can't evaluate field {chained.lstrip('.').split('.')[0]} of {key!r}"
            )
        return values.get(key, "")

    match = _INDEX_RE.match(action)
    if match:
        key = re.sub(r"\\(.)", r"\1", match.group(1))
        return values.get(key, "")

    raise TemplateSyntaxError(token, f"unsupported action {{{{{action}}}}}")
