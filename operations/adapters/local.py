# Purpose: Run commands as child processes of this one.
# Relationships: Implements adapters/base.py; selected by cli.py when
#               --remote is not given.

# Commands are always run argv-style with shell=False. Template expansion has
# already substituted user-supplied values into the tokens, so passing them
# through a shell interpreter would turn a parameter value into shell syntax.

import logging
import subprocess
from typing import Sequence, TextIO

from ..core.errors import EmptyCommand, RunnerFailure
from .base import CommandRunner

logger = logging.getLogger("runner.local")


class LocalRunner(CommandRunner):
    def __init__(
        self,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        # None means "inherit from this process", which is what subprocess
        # does when the argument is omitted.
        self._stdin = stdin
        self._stdout = stdout
        self._stderr = stderr

    def execute(self, argv: Sequence[str]) -> None:
        argv = _checked(argv)
        logger.debug("Running locally: %s", argv)
        try:
            proc = subprocess.run(
                argv,
                stdin=self._stdin,
                stdout=self._stdout,
                stderr=self._stderr,
                shell=False,
                check=False,
            )
        except FileNotFoundError:
            raise RunnerFailure(f"executable not found: {argv[0]!r}") from None
        except OSError as exc:
            raise RunnerFailure(f"failed to start {argv[0]!r}: {exc}") from exc

        if proc.returncode != 0:
            raise RunnerFailure(
                f"command {argv[0]!r} exited with status {proc.returncode}",
                returncode=proc.returncode,
            )

    def execute_with_output(self, argv: Sequence[str]) -> str:
        argv = _checked(argv)
        logger.debug("Running locally with capture: %s", argv)
        try:
            proc = subprocess.run(
                argv,
                stdin=self._stdin,
                capture_output=True,
                text=True,
                shell=False,
                check=False,
            )
        except FileNotFoundError:
            raise RunnerFailure(f"executable not found: {argv[0]!r}") from None
        except OSError as exc:
            raise RunnerFailure(f"failed to start {argv[0]!r}: {exc}") from exc

        if proc.returncode != 0:
            raise RunnerFailure(
                proc.stderr.strip()
                or f"command {argv[0]!r} exited with status {proc.returncode}",
                returncode=proc.returncode,
                output=proc.stderr,
            )
        return proc.stdout


def _checked(argv: Sequence[str]) -> list[str]:
    if not argv:
        raise EmptyCommand()
    return list(argv)
