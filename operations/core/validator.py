# Purpose: Check supplied parameter values against a resolved parameter set.
# Relationships: Called by core/manager.py after resolution and before the
#               danger gate. Specs come from core/config.py.

# [INVARIANT] Excluded values are an absolute veto. validate() runs before
# the danger gate and its outcome does not depend on what the gate would
# decide: a value excluded for a level fails even if that level's action is
# `force`.

import re
from typing import Iterable, Mapping

from .config import ParameterSpec, ParamType
from .errors import ExcludedValue, InvalidParameterType, MissingRequiredParameter

_TRUE_VALUES = frozenset({"true", "1", "yes", "y", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "n", "off"})
# Plain decimal only: no surrounding spaces and no "_" digit separators.
_INT_RE = re.compile(r"[+-]?[0-9]+")


def validate(params: Mapping[str, ParameterSpec], values: Mapping[str, str]) -> None:
    """
    Raise on the first problem found, in this order:

    1. a required parameter is absent or empty  → MissingRequiredParameter
    2. a value does not parse as its declared int/bool type → InvalidParameterType
    3. a value is listed in one of its rules' excludes → ExcludedValue
    """
    check_required(params, values)
    check_types(params, values)
    check_exclusions(params, values)


def check_required(params: Mapping[str, ParameterSpec], values: Mapping[str, str]) -> None:
    for name, spec in params.items():
        if spec.required and not values.get(name):
            raise MissingRequiredParameter(name)


def check_types(params: Mapping[str, ParameterSpec], values: Mapping[str, str]) -> None:
    for name, value in values.items():
        spec = params.get(name)
        if spec is None or value == "":
            continue
        if spec.type is ParamType.INT:
            if not _INT_RE.fullmatch(value):
                raise InvalidParameterType(name, value, "an integer")
        elif spec.type is ParamType.BOOL:
            if value.strip().lower() not in _TRUE_VALUES | _FALSE_VALUES:
                raise InvalidParameterType(name, value, "a boolean")


def check_exclusions(params: Mapping[str, ParameterSpec], values: Mapping[str, str]) -> None:
    for name, value in values.items():
        spec = params.get(name)
        if spec is None:
            continue
        for rule in spec.validate_rules:
            if value in rule.exclude:
                raise ExcludedValue(name, value, rule.danger_level)


def rule_danger_levels(
    params: Mapping[str, ParameterSpec], values: Mapping[str, str]
) -> list[str]:
    """
    Danger levels attached to the rules of every supplied parameter, in
    parameter declaration order, without duplicates.
    """
    levels: list[str] = []
    for name, spec in params.items():
        if name not in values:
            continue
        levels.extend(r.danger_level for r in spec.validate_rules)
    return _unique_non_empty(levels)


def _unique_non_empty(levels: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for level in levels:
        if level and level not in seen:
            seen.add(level)
            ordered.append(level)
    return ordered
