"""
Command runner interface.

A runner executes a finished argument vector somewhere: on this host or over
a remote shell session. The pipeline in core/ only ever talks to this
interface, so it is indifferent to which concrete runner backs an
invocation.
"""

from abc import ABC, abstractmethod
from typing import Sequence


class CommandRunner(ABC):
    """
    Executes argv lists. Implementations raise RunnerFailure when the command
    exits non-zero or cannot be started.
    """

    @abstractmethod
    def execute(self, argv: Sequence[str]) -> None:
        """Run argv with its output streamed to this process's stdout/stderr."""

    @abstractmethod
    def execute_with_output(self, argv: Sequence[str]) -> str:
        """
        Run argv and return its stdout.

        On failure the captured stderr is attached to the raised
        RunnerFailure as `output`.
        """

    def close(self) -> None:
        """Release any held connection. The default runner holds none."""

    def __enter__(self) -> "CommandRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
