"""
Configuration models and loader for the operations tool tree.

The YAML file declares danger actions, a tree of tools and subtools, an
optional ssh section and logging settings. Everything is validated into
frozen pydantic models once at startup; nothing in the process mutates or
reloads them afterwards.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Iterator, Literal, Union

import yaml
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .errors import ConfigError

logger = logging.getLogger("config")

CONFIG_ENV_VAR = "OPERATIONS_CONFIG"
USER_CONFIG_PATH = Path.home() / ".operations" / "config.yaml"
_LOCAL_CANDIDATES = ("operations.yaml", "config.yaml")


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class ParamType(str, Enum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"


_TYPE_ALIASES = {
    "string": ParamType.STRING,
    "int": ParamType.INT,
    "number": ParamType.INT,
    "bool": ParamType.BOOL,
    "boolean": ParamType.BOOL,
}


def _string_list(value: Any) -> Any:
    # YAML turns `- 8080` or `- true` into non-strings; command tokens and
    # excluded values are always compared as text.
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_scalar_text(v) for v in value]
    return value


def _scalar_text(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _empty_if_none(value: Any) -> Any:
    return () if value is None else value


Tokens = Annotated[tuple[str, ...], BeforeValidator(_string_list)]


class ValidationRule(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    danger_level: str = ""
    exclude: Annotated[frozenset[str], BeforeValidator(_string_list)] = frozenset()


class ParameterSpec(BaseModel):
    # `validate` would shadow BaseModel.validate, hence the alias.
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    name: str = ""
    description: str = ""
    type: ParamType = ParamType.STRING
    required: bool = False
    validate_rules: Annotated[
        tuple[ValidationRule, ...], BeforeValidator(_empty_if_none)
    ] = Field(default=(), alias="validate")

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> ParamType:
        if isinstance(value, ParamType):
            return value
        # Unknown or missing type strings fall back to string.
        return _TYPE_ALIASES.get(str(value or "").strip().lower(), ParamType.STRING)


def _named_params(value: Any) -> Any:
    """Copy each mapping key into the ParameterSpec it names."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        return value
    named: dict[str, Any] = {}
    for name, spec in value.items():
        name = str(name)
        if not name.strip():
            raise ValueError("parameter with empty name")
        if isinstance(spec, ParameterSpec):
            named[name] = spec if spec.name == name else spec.model_copy(update={"name": name})
        else:
            entry = dict(spec or {})
            entry["name"] = name
            named[name] = entry
    return named


# ---------------------------------------------------------------------------
# Tool tree
# ---------------------------------------------------------------------------


Params = Annotated[dict[str, ParameterSpec], BeforeValidator(_named_params)]


class Subtool(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    args: Tokens = ()
    params: Params = Field(default_factory=dict)
    danger_level: str = ""
    subtools: Annotated[tuple["Subtool", ...], BeforeValidator(_empty_if_none)] = ()

    @property
    def normalized_name(self) -> str:
        return self.name.replace(" ", "_")


class Tool(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""
    command: Tokens
    params: Params = Field(default_factory=dict)
    subtools: Annotated[tuple[Subtool, ...], BeforeValidator(_empty_if_none)] = ()

    @property
    def normalized_name(self) -> str:
        return self.name

    @field_validator("name")
    @classmethod
    def _resolvable_name(cls, value: str) -> str:
        # The first path segment is matched verbatim, so a root name can
        # never contain the segment separator.
        if "_" in value or any(ch.isspace() for ch in value):
            raise ValueError(f"tool name {value!r} cannot contain '_' or whitespace")
        return value

    @field_validator("command")
    @classmethod
    def _non_empty_command(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            raise ValueError("tool missing command")
        return value


# ---------------------------------------------------------------------------
# Danger actions
# ---------------------------------------------------------------------------


class _ActionBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    danger_level: str = Field(min_length=1)
    message: str = ""


class ConfirmAction(_ActionBase):
    type: Literal["confirm"] = "confirm"


class TimeoutAction(_ActionBase):
    type: Literal["timeout"] = "timeout"
    timeout: int = Field(gt=0)


class ForceAction(_ActionBase):
    type: Literal["force"] = "force"


DangerAction = Annotated[
    Union[ConfirmAction, TimeoutAction, ForceAction],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Transport and logging sections
# ---------------------------------------------------------------------------


def _expand_path_string(path_str: str) -> str:
    """Expand environment variables and ~ in a configured file path."""
    if not path_str:
        return path_str
    return str(Path(os.path.expandvars(path_str)).expanduser())


class SSHSettings(BaseModel):
    """
    The optional `ssh:` section. Zero values mean "not set"; defaults are
    applied later by adapters/ssh.py, after command-line overrides.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = ""
    port: int = Field(default=0, ge=0)
    user: str = ""
    password: str = ""
    key: str = ""
    verify_host: bool | None = None
    host_key_path: str = ""
    timeout: int = Field(default=0, ge=0)

    @field_validator("key", "host_key_path")
    @classmethod
    def _expand(cls, value: str) -> str:
        return _expand_path_string(value)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    level: str | None = None


# ---------------------------------------------------------------------------
# Root document
# ---------------------------------------------------------------------------


class OperationsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    actions: Annotated[tuple[DangerAction, ...], BeforeValidator(_empty_if_none)] = ()
    tools: Annotated[tuple[Tool, ...], BeforeValidator(_empty_if_none)] = ()
    ssh: SSHSettings | None = None
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    strict_danger_levels: bool = False

    @model_validator(mode="after")
    def _check_tree(self) -> "OperationsConfig":
        seen: set[str] = set()
        for full_path, _ in self.iter_nodes():
            if full_path in seen:
                raise ValueError(f"duplicate tool path: {full_path}")
            seen.add(full_path)

        if self.strict_danger_levels:
            known = set(self.action_map())
            for level in sorted(self.referenced_danger_levels()):
                if level not in known:
                    raise ValueError(f"no action defined for danger level {level}")
        return self

    def action_map(self) -> dict[str, DangerAction]:
        """Danger actions keyed by level. Later duplicates replace earlier ones."""
        return {action.danger_level: action for action in self.actions}

    def iter_nodes(self) -> Iterator[tuple[str, Tool | Subtool]]:
        """Yield (fully-qualified path, node) for every node, depth first."""
        for tool in self.tools:
            yield tool.name, tool
            yield from _iter_subtools(tool.name, tool.subtools)

    def referenced_danger_levels(self) -> set[str]:
        levels: set[str] = set()
        for _, node in self.iter_nodes():
            if isinstance(node, Subtool) and node.danger_level:
                levels.add(node.danger_level)
            for param in node.params.values():
                levels.update(r.danger_level for r in param.validate_rules if r.danger_level)
        return levels


def _iter_subtools(
    parent_path: str, subtools: tuple[Subtool, ...]
) -> Iterator[tuple[str, Subtool]]:
    for subtool in subtools:
        full_path = f"{parent_path}_{subtool.normalized_name}"
        yield full_path, subtool
        yield from _iter_subtools(full_path, subtool.subtools)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def resolve_config_path(path: str | None = None) -> Path:
    """
    Resolve the config file path.

    Order: explicit argument > $OPERATIONS_CONFIG > ~/.operations/config.yaml
    > ./operations.yaml > ./config.yaml.
    """
    if path:
        return Path(_expand_path_string(path))

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(_expand_path_string(env_path))

    if USER_CONFIG_PATH.exists():
        return USER_CONFIG_PATH

    for candidate in _LOCAL_CANDIDATES:
        local = Path(candidate)
        if local.exists():
            return local

    raise ConfigError("no configuration file found")


def parse_config(data: Any, source: str = "<config>") -> OperationsConfig:
    """Validate an already-parsed YAML document."""
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"invalid configuration in {source}: top level must be a mapping")
    try:
        return OperationsConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration in {source}: {exc}") from exc


def load_config(path: str | None = None) -> OperationsConfig:
    resolved = resolve_config_path(path)
    try:
        with open(resolved) as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"error reading config file {resolved}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"error parsing config file {resolved}: {exc}") from exc

    cfg = parse_config(data, str(resolved))
    logger.debug(
        "Loaded %d tool(s) and %d action(s) from %s",
        len(cfg.tools),
        len(cfg.actions),
        resolved,
    )
    return cfg
