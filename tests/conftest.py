# Purpose: Shared fixtures for the operations test suite.
# Covers: a small kubectl tool tree used by resolver, validator, manager and
#         CLI tests, plus recording fakes for the gate and the runner.

import copy
import io

import pytest

from operations.adapters.base import CommandRunner
from operations.core.config import parse_config

KUBECTL_TREE = {
    "actions": [
        {"danger_level": "low", "type": "force"},
        {"danger_level": "medium", "type": "timeout", "timeout": 3},
        {"danger_level": "high", "type": "confirm"},
    ],
    "tools": [
        {
            "name": "kubectl",
            "command": ["kubectl"],
            "params": {
                "namespace": {
                    "type": "string",
                    "required": True,
                    "description": "Kubernetes namespace",
                    "validate": [{"danger_level": "high", "exclude": ["kube-system"]}],
                },
            },
            "subtools": [
                {"name": "get pod", "args": ["get", "pod", "-n", "{{.namespace}}"]},
                {
                    "name": "delete pod",
                    "args": ["delete", "pod", "{{.pod}}", "-n", "{{.namespace}}"],
                    "danger_level": "high",
                    "params": {"pod": {"type": "string", "required": True}},
                },
                {
                    "name": "rollout",
                    "args": ["rollout"],
                    "subtools": [
                        {
                            "name": "restart",
                            "args": ["restart", "deployment/{{.deployment}}"],
                            "danger_level": "medium",
                            "params": {"deployment": {"required": True}},
                        },
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture()
def kubectl_tree():
    return copy.deepcopy(KUBECTL_TREE)


@pytest.fixture()
def kubectl_config(kubectl_tree):
    return parse_config(kubectl_tree)


class RecordingRunner(CommandRunner):
    """Runner that records argv lists instead of executing them."""

    def __init__(self, output: str = "") -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.closed = False
        self._output = output

    def execute(self, argv):
        self.calls.append(("execute", list(argv)))

    def execute_with_output(self, argv):
        self.calls.append(("execute_with_output", list(argv)))
        return self._output

    def close(self):
        self.closed = True


@pytest.fixture()
def runner():
    return RecordingRunner(output="pod-1\n")


@pytest.fixture()
def gate_output():
    return io.StringIO()
