# Purpose: Drive one tool invocation through the whole pipeline:
#          resolve → validate → gate → expand → dispatch.
# Relationships: Wires together core/resolver.py, core/validator.py,
#               core/danger_gate.py, core/template.py, core/dispatch.py and a
#               runner from adapters/. Built once per process by cli.py.

# [INVARIANT] Stage order is fixed. No stage runs once an earlier one has
# failed or the gate has rejected, so a command is never partly executed.
# Rejection is reported through ExecutionResult.approved, not an exception.

import logging
import shlex
import sys
from dataclasses import dataclass, field
from typing import Mapping, Sequence, TextIO

from ..adapters.base import CommandRunner
from . import dispatch, template, validator
from .config import OperationsConfig, ParameterSpec, Subtool, Tool
from .danger_gate import DangerGate
from .errors import InvalidArgument
from .resolver import PathResolver, ResolvedCommand

logger = logging.getLogger("tool_manager")


@dataclass
class OperationContext:
    """
    Everything one invocation needs, built once at startup and handed to
    ToolManager. The config is read-only for the life of the process.
    """

    config: OperationsConfig
    gate: DangerGate
    runner: CommandRunner
    # Where "Executing: ..." is announced. Kept off stdout so captured
    # command output stays clean.
    announce: TextIO | None = None

    @classmethod
    def build(
        cls,
        config: OperationsConfig,
        runner: CommandRunner,
        input_stream: TextIO | None = None,
        output_stream: TextIO | None = None,
    ) -> "OperationContext":
        gate = DangerGate(
            config.action_map(),
            input_stream=input_stream,
            output_stream=output_stream,
        )
        return cls(config=config, gate=gate, runner=runner, announce=output_stream)


@dataclass(frozen=True)
class ExecutionResult:
    path: str
    approved: bool
    argv: tuple[str, ...] = ()
    output: str = ""
    # The level whose gate said no, when approved is False.
    rejected_level: str = ""


@dataclass
class ToolInfo:
    name: str
    path: str
    description: str = ""
    danger_level: str = ""
    params: dict[str, ParameterSpec] = field(default_factory=dict)
    subtools: list["ToolInfo"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "description": self.description,
            "danger_level": self.danger_level,
            "params": {
                name: {
                    "type": spec.type.value,
                    "required": spec.required,
                    "description": spec.description,
                }
                for name, spec in self.params.items()
            },
            "subtools": [s.to_dict() for s in self.subtools],
        }


class ToolManager:
    def __init__(self, context: OperationContext) -> None:
        self._context = context
        self._resolver = PathResolver(context.config)

    @property
    def context(self) -> OperationContext:
        return self._context

    def find_tool(self, path: str) -> ResolvedCommand:
        return self._resolver.resolve(path)

    def execute_tool(
        self,
        path: str,
        values: Mapping[str, str],
        capture_output: bool = False,
    ) -> ExecutionResult:
        values = dict(values)
        resolved = self.find_tool(path)

        validator.validate(resolved.params, values)

        for level in self._levels_in_force(resolved, values):
            if not self._context.gate.authorize(level):
                logger.info("Operation %s aborted at danger level %s", path, level)
                return ExecutionResult(path=path, approved=False, rejected_level=level)

        argv = template.expand(resolved.tokens, values)
        self._announce(argv)
        output = dispatch.run(argv, self._context.runner, capture_output=capture_output)
        return ExecutionResult(path=path, approved=True, argv=tuple(argv), output=output)

    def execute_raw_tool(
        self,
        path: str,
        args: Sequence[str],
        capture_output: bool = False,
    ) -> ExecutionResult:
        """Execute with values parsed from raw `--name value` style arguments."""
        return self.execute_tool(path, parse_raw_args(args), capture_output=capture_output)

    def list_tools(self) -> list[ToolInfo]:
        return describe_tools(self._context.config)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _levels_in_force(resolved: ResolvedCommand, values: Mapping[str, str]) -> list[str]:
        # Parameter rule levels first, then the command's own level. Each
        # distinct level is gated once.
        levels = validator.rule_danger_levels(resolved.params, values)
        if resolved.danger_level and resolved.danger_level not in levels:
            levels.append(resolved.danger_level)
        return levels

    def _announce(self, argv: Sequence[str]) -> None:
        stream = self._context.announce or sys.stderr
        print(f"Executing: {shlex.join(argv)}", file=stream, flush=True)


def describe_tools(config: OperationsConfig) -> list[ToolInfo]:
    """Summaries of the whole tool tree. Reads the config only."""
    return [_tool_info(tool, tool.name) for tool in config.tools]


def parse_raw_args(args: Sequence[str]) -> dict[str, str]:
    """
    Turn `--name=value`, `--name value` and bare `--name` (→ "true") into a
    values mapping. Later occurrences of a name replace earlier ones.
    """
    values: dict[str, str] = {}
    i = 0
    while i < len(args):
        arg = args[i]
        if not arg.startswith("--") or arg == "--":
            raise InvalidArgument(f"unexpected argument: {arg!r}")

        name, sep, value = arg[2:].partition("=")
        if not name:
            raise InvalidArgument(f"missing parameter name in {arg!r}")
        if not sep:
            if i + 1 < len(args) and not args[i + 1].startswith("--"):
                value = args[i + 1]
                i += 1
            else:
                value = "true"

        values[name] = value
        i += 1
    return values


def _tool_info(node: Tool | Subtool, path: str) -> ToolInfo:
    return ToolInfo(
        name=node.name,
        path=path,
        description=node.description,
        danger_level=node.danger_level if isinstance(node, Subtool) else "",
        params=dict(node.params),
        subtools=[
            _tool_info(child, f"{path}_{child.normalized_name}") for child in node.subtools
        ],
    )
