# [SAFETY-CRITICAL] This module decides whether a dangerous command may run.
# Any change here requires human review.
#
# Purpose: Apply the configured confirm / timeout / force action for a
#          danger level and report whether execution may proceed.
# Relationships: Built from the `actions` section of core/config.py; called
#               by core/manager.py after validation and before expansion.

# authorize() always returns True (approved) or False (rejected). A rejection
# is not an error: the caller reports "operation aborted" and stops. Errors
# are reserved for a gate that cannot be evaluated at all (unknown action
# kind, unreadable confirmation answer).
#
# The input and output streams and the sleep function are injected so the
# gate can be driven from tests or from a non-terminal frontend. A running
# confirm or timeout wait cannot be cancelled from inside the process; only a
# signal delivered to the process interrupts it.

import logging
import sys
import time
from typing import Callable, Mapping, TextIO

from .config import ConfirmAction, DangerAction, ForceAction, TimeoutAction
from .errors import GateInputError, UnknownActionType

logger = logging.getLogger("danger_gate")

_AFFIRMATIVE = frozenset({"y", "yes"})


class DangerGate:
    """
    Usage:
        gate = DangerGate(config.action_map())
        if not gate.authorize("high"):
            ...  # operation aborted
    """

    def __init__(
        self,
        actions: Mapping[str, DangerAction],
        input_stream: TextIO | None = None,
        output_stream: TextIO | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._actions = dict(actions)
        self._input = input_stream if input_stream is not None else sys.stdin
        self._output = output_stream if output_stream is not None else sys.stdout
        self._sleep = sleep

    def authorize(self, danger_level: str) -> bool:
        approved = self._evaluate(danger_level)
        logger.debug(
            "Danger level %r -> %s", danger_level, "approved" if approved else "rejected"
        )
        return approved

    def _evaluate(self, danger_level: str) -> bool:
        if not danger_level:
            return True

        action = self._actions.get(danger_level)
        if action is None:
            # Permissive on purpose: a level with no action only warns.
            logger.warning("No action defined for danger level %s", danger_level)
            return True

        if isinstance(action, ConfirmAction):
            handler = self._confirm
        elif isinstance(action, TimeoutAction):
            handler = self._countdown
        elif isinstance(action, ForceAction):
            handler = self._force
        else:
            raise UnknownActionType(str(getattr(action, "type", type(action).__name__)))

        logger.debug("Evaluating %s action for danger level %s", action.type, danger_level)
        return handler(action)

    # -----------------------------------------------------------------------
    # Action handlers
    # -----------------------------------------------------------------------

    def _confirm(self, action: ConfirmAction) -> bool:
        message = action.message or (
            f"This operation has danger level {action.danger_level}. "
            "Do you want to proceed? (y/n): "
        )
        self._write(message)

        try:
            response = self._input.readline()
        except (OSError, ValueError) as exc:
            raise GateInputError(f"error reading response: {exc}") from exc
        if response == "":
            raise GateInputError("error reading response: end of input")

        if response.strip().lower() in _AFFIRMATIVE:
            return True
        logger.info("Danger level %s rejected by user", action.danger_level)
        return False

    def _countdown(self, action: TimeoutAction) -> bool:
        message = action.message or (
            f"This operation has danger level {action.danger_level}. "
            f"It will proceed in {action.timeout} seconds. Press Ctrl+C to cancel."
        )
        self._write(message + "\n")

        for remaining in range(action.timeout, 0, -1):
            self._write(f"\rProceeding in {remaining} seconds...")
            self._sleep(1)
        self._write("\rProceeding now...                \n")
        return True

    def _force(self, action: ForceAction) -> bool:
        message = action.message or (
            f"Warning: This operation has danger level {action.danger_level}."
        )
        self._write(message + "\n")
        return True

    def _write(self, text: str) -> None:
        self._output.write(text)
        self._output.flush()
