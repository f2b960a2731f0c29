# Purpose: Exception hierarchy for every stage of the tool pipeline.
# Relationships: Raised by core/config.py, core/resolver.py, core/validator.py,
#               core/danger_gate.py, core/template.py, core/dispatch.py and the
#               runners in adapters/. Caught in one place: cli.py.

# An aborted danger gate is deliberately absent from this module. A rejected
# confirmation is returned as False and reported as "operation aborted"; it
# is never raised.


class OperationError(Exception):
    """Base class for all failures the CLI reports with exit code 1."""


class ConfigError(OperationError):
    """The configuration file is missing, unreadable or invalid."""


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class InvalidPath(OperationError):
    def __init__(self, path: str) -> None:
        super().__init__(f"invalid tool path: {path!r}")
        self.path = path


class ToolNotFound(OperationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"tool not found: {name}")
        self.name = name


class SubtoolNotFound(OperationError):
    def __init__(self, path: str) -> None:
        super().__init__(f"subtool not found: {path}")
        self.path = path


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class MissingRequiredParameter(OperationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"required parameter missing: {name}")
        self.name = name


class InvalidParameterType(OperationError):
    def __init__(self, name: str, value: str, expected: str) -> None:
        super().__init__(f"parameter {name} expects {expected}, got {value!r}")
        self.name = name
        self.value = value
        self.expected = expected


class ExcludedValue(OperationError):
    def __init__(self, name: str, value: str, danger_level: str) -> None:
        super().__init__(
            f"parameter {name} with value {value} is excluded for danger level {danger_level}"
        )
        self.name = name
        self.value = value
        self.danger_level = danger_level


class InvalidArgument(OperationError):
    """A raw command-line argument could not be turned into a parameter value."""


# ---------------------------------------------------------------------------
# Danger gate
# ---------------------------------------------------------------------------


class UnknownActionType(OperationError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"unknown action type: {action_type}")
        self.action_type = action_type


class GateInputError(OperationError):
    """The confirmation answer could not be read."""


# ---------------------------------------------------------------------------
# Template expansion
# ---------------------------------------------------------------------------


class TemplateSyntaxError(OperationError):
    def __init__(self, token: str, reason: str) -> None:
        super().__init__(f"error parsing template in argument {token!r}: {reason}")
        self.token = token
        self.reason = reason


class TemplateExecutionError(OperationError):
    def __init__(self, token: str, reason: str) -> None:
        super().__init__(f"error executing template in argument {token!r}: {reason}")
        self.token = token
        self.reason = reason


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class EmptyCommand(OperationError):
    def __init__(self) -> None:
        super().__init__("empty command")


class RunnerFailure(OperationError):
    """
    The command ran and failed, or could not be started at all.

    output carries the captured stderr when the command was run with output
    capture; returncode is None when the process never started or the
    transport failed before an exit status was known.
    """

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output
