# Purpose: Hand a finished argv to a CommandRunner.
# Relationships: Called by core/manager.py as the last pipeline stage;
#               runners live in adapters/.

from typing import Sequence

from ..adapters.base import CommandRunner
from .errors import EmptyCommand


def run(argv: Sequence[str], runner: CommandRunner, capture_output: bool = False) -> str:
    """
    Execute argv once. Returns the captured stdout when capture_output is
    set, otherwise "" (output went straight to the terminal).

    Failures propagate unchanged from the runner as RunnerFailure. There is
    no retry: a failed command ends the invocation.
    """
    if not argv:
        raise EmptyCommand()
    if capture_output:
        return runner.execute_with_output(list(argv))
    runner.execute(list(argv))
    return ""
