# Purpose: Command-line front end. Loads the config, builds an argparse tree
#          that mirrors the tool tree, and runs one tool per process.
#
# Usage:
#   operations [global options] list [-v] [--json]
#   operations [global options] exec kubectl_get_pod --namespace default
#   operations [global options] kubectl get pod --namespace default
#   operations init-config [--force]
#
# Environment:
#   OPERATIONS_CONFIG     Path to the config file when --config is not given.
#   OPERATIONS_LOG_LEVEL  Log level when --log-level is not given.
#
# Exit status is 0 on success and 1 for every failure, including a danger
# gate that was answered "no".

import argparse
import json
import logging
import os
import sys
from importlib.resources import files
from typing import Sequence

from .adapters.base import CommandRunner
from .adapters.local import LocalRunner
from .adapters.ssh import SSHConnectionConfig, SSHRunner
from .core.config import (
    USER_CONFIG_PATH,
    OperationsConfig,
    ParameterSpec,
    ParamType,
    Subtool,
    Tool,
    load_config,
)
from .core.errors import ConfigError, OperationError
from .core.manager import OperationContext, ToolInfo, ToolManager, describe_tools

logger = logging.getLogger("cli")

LOG_LEVEL_ENV_VAR = "OPERATIONS_LOG_LEVEL"
_DEFAULT_LOG_LEVEL = "WARNING"
_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

_BUILTIN_COMMANDS = frozenset({"list", "exec", "init-config"})

# Tool parameters share the argparse namespace with the global options, so
# their dests carry a prefix that no global option uses.
_PARAM_PREFIX = "param__"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(level: str) -> None:
    """Send all logging to stderr so stdout carries only command output."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(level=numeric, handlers=[handler], force=True)


def _resolve_log_level(flag: str | None, cfg: OperationsConfig | None) -> str:
    if flag:
        return flag
    env_level = os.environ.get(LOG_LEVEL_ENV_VAR)
    if env_level:
        return env_level
    if cfg is not None and cfg.logging.level:
        return cfg.logging.level
    return _DEFAULT_LOG_LEVEL


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit 1 like every other failure."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"Error: {message}\n")


def _add_global_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", metavar="PATH", help="path to config file")
    parser.add_argument(
        "--log-level",
        dest="log_level",
        type=str.upper,
        choices=_LOG_LEVELS,
        help=f"log level (default: ${LOG_LEVEL_ENV_VAR}, config, or {_DEFAULT_LOG_LEVEL})",
    )


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--capture-output",
        dest="capture_output",
        action="store_true",
        help="buffer the command's output and print it when it finishes",
    )

    ssh = parser.add_argument_group("remote execution")
    ssh.add_argument("--remote", action="store_true", help="run commands over SSH")
    ssh.add_argument("--host", help="SSH remote host")
    ssh.add_argument("--user", help="SSH username")
    ssh.add_argument("--key", metavar="PATH", help="path to SSH private key")
    ssh.add_argument("--password", help="SSH password (not recommended)")
    ssh.add_argument("--port", type=int, help="SSH port (default 22)")
    ssh.add_argument(
        "--timeout", type=float, metavar="SECONDS", help="SSH connection timeout (default 10)"
    )
    ssh.add_argument(
        "--verify-host",
        dest="verify_host",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="verify the host key against known_hosts (default on)",
    )


def _bootstrap_parser() -> argparse.ArgumentParser:
    # Only --config and --log-level are needed before the tool tree is known.
    # Everything from the command onwards lands in `rest`, so a tool
    # parameter spelled --config is never read as the global option.
    parser = _ArgumentParser(add_help=False, allow_abbrev=False)
    _add_global_options(parser)
    _add_run_options(parser)
    parser.add_argument("rest", nargs=argparse.REMAINDER)
    return parser


def build_parser(cfg: OperationsConfig | None) -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="operations",
        description="Execute operations defined in a configuration file.",
        allow_abbrev=False,
    )
    _add_global_options(parser)
    _add_run_options(parser)

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_list = sub.add_parser("list", help="List all available tools", allow_abbrev=False)
    p_list.add_argument(
        "-v", "--verbose", action="store_true", help="show parameters of every tool"
    )
    p_list.add_argument("--json", action="store_true", help="print the tree as JSON")

    p_exec = sub.add_parser(
        "exec",
        help="Execute a tool by its underscored path",
        description=(
            'Execute a tool by path, e.g. "kubectl_get_pod", followed by '
            "--name value parameters."
        ),
        allow_abbrev=False,
    )
    p_exec.add_argument("tool_path", metavar="TOOL_PATH")
    p_exec.add_argument("tool_args", metavar="ARGS", nargs=argparse.REMAINDER)

    p_init = sub.add_parser(
        "init-config", help=f"Install the example config at {USER_CONFIG_PATH}"
    )
    p_init.add_argument("--force", action="store_true", help="overwrite an existing file")

    if cfg is not None:
        for tool in cfg.tools:
            if tool.name in _BUILTIN_COMMANDS:
                logger.warning("Tool %r clashes with a built-in command; skipped", tool.name)
                continue
            _add_node_parser(sub, tool, tool.name, {})

    return parser


def _add_node_parser(
    subparsers,
    node: Tool | Subtool,
    path: str,
    inherited: dict[str, ParameterSpec],
) -> None:
    name = node.normalized_name
    node_parser = subparsers.add_parser(
        name,
        help=node.description or f"Execute {path}",
        description=node.description or f"Execute {path}",
        allow_abbrev=False,
        # A parameter named "help" takes over --help; -h still shows help.
        conflict_handler="resolve",
    )

    params = {**inherited, **node.params}
    for spec in params.values():
        _add_param_flag(node_parser, spec)

    node_parser.set_defaults(
        command="tool",
        tool_path=path,
        tool_parser=node_parser,
        tool_runnable=not node.subtools,
    )

    if node.subtools:
        children = node_parser.add_subparsers(dest=f"_subtool_{path}", metavar="SUBTOOL")
        for child in node.subtools:
            _add_node_parser(children, child, f"{path}_{child.normalized_name}", params)


def _add_param_flag(parser: argparse.ArgumentParser, spec: ParameterSpec) -> None:
    help_text = spec.description
    if spec.required:
        help_text = f"{help_text} (required)".strip()

    # SUPPRESS keeps unset flags out of the namespace, so a nested subtool
    # parser never overwrites a value given to its parent.
    kwargs: dict = {"dest": _PARAM_PREFIX + spec.name, "default": argparse.SUPPRESS}
    if spec.type is ParamType.BOOL:
        kwargs.update(action="store_const", const="true")
    elif spec.type is ParamType.INT:
        kwargs.update(type=int, metavar="N")
    else:
        kwargs.update(metavar="VALUE")
    parser.add_argument(f"--{spec.name}", help=help_text, **kwargs)


def _param_values(args: argparse.Namespace) -> dict[str, str]:
    return {
        key[len(_PARAM_PREFIX):]: str(value)
        for key, value in vars(args).items()
        if key.startswith(_PARAM_PREFIX)
    }


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _error(message) -> None:
    print(f"Error: {message}", file=sys.stderr)


def _print_tree(tools: list[ToolInfo], verbose: bool) -> None:
    print("Available tools:")
    print()
    for tool in tools:
        print(tool.name)
        if verbose:
            _print_params(tool.params, "    ")
        _print_subtools(tool.subtools, 1, verbose)
        print()


def _print_subtools(subtools: list[ToolInfo], level: int, verbose: bool) -> None:
    indent = "  " * level
    for subtool in subtools:
        danger = f" [danger: {subtool.danger_level}]" if subtool.danger_level else ""
        print(f"{indent}└─ {subtool.name} ({subtool.path}){danger}")
        if verbose:
            _print_params(subtool.params, indent + "     ")
        _print_subtools(subtool.subtools, level + 1, verbose)


def _print_params(params: dict[str, ParameterSpec], indent: str) -> None:
    if not params:
        return
    print(f"{indent}Parameters:")
    for name, spec in params.items():
        required = " (required)" if spec.required else ""
        print(f"{indent}  --{name}{required}: {spec.description}")


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _cmd_init_config(args) -> int:
    """Copy the bundled example config to ~/.operations/config.yaml."""
    if USER_CONFIG_PATH.exists() and not args.force:
        print(f"Config already exists: {USER_CONFIG_PATH} (use --force to overwrite)")
        return 0
    USER_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    default = files("operations").joinpath("config.yaml").read_bytes()
    USER_CONFIG_PATH.write_bytes(default)
    print(f"Created default config: {USER_CONFIG_PATH}")
    print("Edit it before running operations again.")
    return 0


def _cmd_list(args, cfg: OperationsConfig | None) -> int:
    if cfg is None:
        print("No tools available. Please provide a valid configuration file.")
        return 0
    tools = describe_tools(cfg)
    if args.json:
        print(json.dumps([t.to_dict() for t in tools], indent=2))
    else:
        _print_tree(tools, args.verbose)
    return 0


def create_runner(args: argparse.Namespace, cfg: OperationsConfig) -> CommandRunner:
    if not args.remote:
        return LocalRunner()
    ssh_config = SSHConnectionConfig.from_settings(
        cfg.ssh,
        host=args.host,
        user=args.user,
        key_path=args.key,
        password=args.password,
        port=args.port,
        timeout=args.timeout,
        verify_host=args.verify_host,
    )
    return SSHRunner(ssh_config)


def _cmd_run(args, cfg: OperationsConfig) -> int:
    if args.command == "tool" and not args.tool_runnable:
        args.tool_parser.print_help()
        return 0

    try:
        runner = create_runner(args, cfg)
    except OperationError as exc:
        _error(f"failed to create executor: {exc}")
        return 1

    with runner:
        manager = ToolManager(
            OperationContext.build(
                cfg, runner, input_stream=sys.stdin, output_stream=sys.stderr
            )
        )
        try:
            if args.command == "exec":
                result = manager.execute_raw_tool(
                    args.tool_path, args.tool_args, capture_output=args.capture_output
                )
            else:
                result = manager.execute_tool(
                    args.tool_path, _param_values(args), capture_output=args.capture_output
                )
        except OperationError as exc:
            _error(exc)
            return 1

    if not result.approved:
        _error("operation aborted")
        return 1
    if args.capture_output and result.output:
        sys.stdout.write(result.output)
        sys.stdout.flush()
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)

    boot, _ = _bootstrap_parser().parse_known_args(argv)
    cfg: OperationsConfig | None = None
    cfg_error: ConfigError | None = None
    try:
        cfg = load_config(boot.config)
    except ConfigError as exc:
        cfg_error = exc

    setup_logging(_resolve_log_level(boot.log_level, cfg))
    if cfg_error is not None and boot.config:
        logger.warning("Failed to load config from %s: %s", boot.config, cfg_error)

    parser = build_parser(cfg)
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # Without a config no tool subcommands exist; say why.
        if exc.code and cfg_error is not None:
            _error(f"failed to load config: {cfg_error}")
        raise

    if args.command is None:
        parser.print_help()
        return 0
    if args.command == "init-config":
        return _cmd_init_config(args)
    if args.command == "list":
        return _cmd_list(args, cfg)

    if cfg is None:
        _error(f"failed to load config: {cfg_error}")
        return 1
    return _cmd_run(args, cfg)
