# Purpose: Turn an underscored tool path into a ResolvedCommand.
# Relationships: Reads the Tool/Subtool tree from core/config.py; called by
#               core/manager.py before validation, gating and expansion.

# A path is "<root>_<rest>". The root segment is matched verbatim against the
# top-level tool names. The rest is matched against subtool names with their
# spaces replaced by "_", so one subtool name may span several segments
# ("get pod" answers to "get_pod"). Matching is exact at every level: a path
# that stops part way through a subtool name never resolves.

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .config import OperationsConfig, ParameterSpec, Subtool, Tool
from .errors import InvalidPath, SubtoolNotFound, ToolNotFound

logger = logging.getLogger("resolver")

PATH_SEPARATOR = "_"


@dataclass(frozen=True)
class ResolvedCommand:
    """The unexpanded command template and merged parameter set for one path."""

    path: str
    tokens: tuple[str, ...]
    params: Mapping[str, ParameterSpec] = field(default_factory=dict)
    danger_level: str = ""
    # Root first, target last.
    nodes: tuple[Tool | Subtool, ...] = ()

    @property
    def target(self) -> Tool | Subtool:
        return self.nodes[-1]


class PathResolver:
    """Walks the configured tool tree. Holds no state beyond the tree itself."""

    def __init__(self, config: OperationsConfig) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in config.tools:
            # First definition wins, mirroring a linear scan of the list.
            self._tools.setdefault(tool.name, tool)

    def resolve(self, path: str) -> ResolvedCommand:
        if not path:
            raise InvalidPath(path)

        root_name, _, rest = path.partition(PATH_SEPARATOR)
        if not root_name:
            raise InvalidPath(path)

        root = self._tools.get(root_name)
        if root is None:
            raise ToolNotFound(root_name)

        tokens = list(root.command)
        params: dict[str, ParameterSpec] = dict(root.params)
        danger_level = ""

        if not rest and PATH_SEPARATOR not in path:
            return ResolvedCommand(
                path=path,
                tokens=tuple(tokens),
                params=MappingProxyType(params),
                nodes=(root,),
            )

        chain = _match_subtools(root.subtools, rest)
        if chain is None:
            raise SubtoolNotFound(path)

        for subtool in chain:
            # Deeper definitions override same-named ancestor parameters.
            params.update(subtool.params)
            if subtool.danger_level:
                danger_level = subtool.danger_level
            tokens.extend(subtool.args)

        logger.debug(
            "Resolved %s via %s (danger level %r)",
            path,
            " > ".join([root.name] + [s.name for s in chain]),
            danger_level,
        )
        return ResolvedCommand(
            path=path,
            tokens=tuple(tokens),
            params=MappingProxyType(params),
            danger_level=danger_level,
            nodes=(root, *chain),
        )


def _match_subtools(
    subtools: tuple[Subtool, ...], remaining: str
) -> list[Subtool] | None:
    """
    Return the chain of subtools whose normalised names spell `remaining`,
    or None when no chain matches.

    An exact match at this level wins. Otherwise children whose name is a
    whole-segment prefix of `remaining` are descended into, longest name
    first, and the first chain that reaches the end of the path is used.
    """
    if not remaining:
        return None

    for subtool in subtools:
        if subtool.normalized_name == remaining:
            return [subtool]

    prefixed = [
        s
        for s in subtools
        if s.subtools and remaining.startswith(s.normalized_name + PATH_SEPARATOR)
    ]
    prefixed.sort(key=lambda s: len(s.normalized_name), reverse=True)
    for subtool in prefixed:
        tail = remaining[len(subtool.normalized_name) + len(PATH_SEPARATOR):]
        chain = _match_subtools(subtool.subtools, tail)
        if chain is not None:
            return [subtool, *chain]
    return None
