# Purpose: Tests for core/danger_gate.py.
# Covers: pass-through for no level, permissive unknown levels (warning),
#         confirm answers and read failures, timeout countdown (fake and
#         real clock), force announcements, unknown action kinds.

import io
import logging
import time

import pytest

from operations.core.config import ConfirmAction, ForceAction, TimeoutAction
from operations.core.danger_gate import DangerGate
from operations.core.errors import GateInputError, UnknownActionType


def _gate(actions, answer: str = "", sleep=None):
    out = io.StringIO()
    kwargs = {"sleep": sleep} if sleep is not None else {}
    gate = DangerGate(
        {a.danger_level: a for a in actions},
        input_stream=io.StringIO(answer),
        output_stream=out,
        **kwargs,
    )
    return gate, out


# ---------------------------------------------------------------------------
# No action needed
# ---------------------------------------------------------------------------

def test_empty_level_approves_without_output():
    gate, out = _gate([])
    assert gate.authorize("") is True
    assert out.getvalue() == ""


def test_unknown_level_approves_with_warning(caplog):
    """A level with no configured action warns and proceeds."""
    gate, _ = _gate([ConfirmAction(danger_level="high")])
    with caplog.at_level(logging.WARNING, logger="danger_gate"):
        assert gate.authorize("catastrophic") is True
    assert "No action defined for danger level catastrophic" in caplog.text


# ---------------------------------------------------------------------------
# confirm
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("answer", ["y\n", "yes\n", "  YES \n", "Y\n", "y"])
def test_confirm_affirmative_answers(answer):
    gate, _ = _gate([ConfirmAction(danger_level="high")], answer)
    assert gate.authorize("high") is True


@pytest.mark.parametrize("answer", ["n\n", "no\n", "\n", "yess\n", "sure\n"])
def test_confirm_other_answers_reject(answer):
    gate, _ = _gate([ConfirmAction(danger_level="high")], answer)
    assert gate.authorize("high") is False


def test_confirm_default_message_names_level():
    gate, out = _gate([ConfirmAction(danger_level="high")], "y\n")
    gate.authorize("high")
    assert "danger level high" in out.getvalue()
    assert "(y/n)" in out.getvalue()


def test_confirm_custom_message():
    gate, out = _gate([ConfirmAction(danger_level="high", message="Really? ")], "n\n")
    gate.authorize("high")
    assert out.getvalue() == "Really? "


def test_confirm_end_of_input_is_an_error():
    """A read failure is propagated, never treated as a 'no'."""
    gate, _ = _gate([ConfirmAction(danger_level="high")], "")
    with pytest.raises(GateInputError):
        gate.authorize("high")


def test_confirm_io_error_is_an_error():
    class _Broken(io.StringIO):
        def readline(self, *args):
            raise OSError("terminal went away")

    gate = DangerGate(
        {"high": ConfirmAction(danger_level="high")},
        input_stream=_Broken(),
        output_stream=io.StringIO(),
    )
    with pytest.raises(GateInputError):
        gate.authorize("high")


# ---------------------------------------------------------------------------
# timeout
# ---------------------------------------------------------------------------

def test_timeout_counts_down_each_second_then_approves():
    sleeps: list[float] = []
    gate, out = _gate(
        [TimeoutAction(danger_level="medium", timeout=3)], sleep=sleeps.append
    )
    assert gate.authorize("medium") is True
    assert sleeps == [1, 1, 1]
    text = out.getvalue()
    assert "It will proceed in 3 seconds" in text
    for n in (3, 2, 1):
        assert f"Proceeding in {n} seconds..." in text
    assert "Proceeding now" in text


def test_timeout_needs_no_input():
    """The timeout gate never reads from the input stream."""
    gate, _ = _gate([TimeoutAction(danger_level="medium", timeout=1)], "n\n", sleep=lambda s: None)
    assert gate.authorize("medium") is True


def test_timeout_blocks_for_real_seconds():
    """With the real clock a 2 second action blocks at least 2 seconds."""
    gate, _ = _gate([TimeoutAction(danger_level="medium", timeout=2)])
    started = time.monotonic()
    assert gate.authorize("medium") is True
    assert time.monotonic() - started >= 2.0


# ---------------------------------------------------------------------------
# force
# ---------------------------------------------------------------------------

def test_force_announces_and_approves():
    gate, out = _gate([ForceAction(danger_level="low")])
    assert gate.authorize("low") is True
    assert "Warning: This operation has danger level low." in out.getvalue()


def test_force_custom_message():
    gate, out = _gate([ForceAction(danger_level="low", message="heads up")])
    gate.authorize("low")
    assert out.getvalue() == "heads up\n"


# ---------------------------------------------------------------------------
# Unknown kinds
# ---------------------------------------------------------------------------

def test_unknown_action_kind_raises():
    class _Pray:
        danger_level = "odd"
        type = "pray"
        message = ""

    gate = DangerGate({"odd": _Pray()}, input_stream=io.StringIO(), output_stream=io.StringIO())
    with pytest.raises(UnknownActionType) as exc_info:
        gate.authorize("odd")
    assert exc_info.value.action_type == "pray"


def test_decision_is_logged(caplog):
    """Each authorization logs the level and the outcome."""
    gate, _ = _gate([ConfirmAction(danger_level="high")], "n\n")
    with caplog.at_level(logging.DEBUG, logger="danger_gate"):
        gate.authorize("high")
    assert "Danger level 'high' -> rejected" in caplog.text
