"""
Dependency Resolver

Two phases. ``resolve`` turns the ``after``/``requires`` names declared by each
script into concrete script identities by probing the known directories in
priority order. ``order`` then runs Kahn's algorithm over the resulting graph,
seeding and breaking ties by discovery order so the result is reproducible.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..contracts.models import Script, ScriptIdentity
from ..errors import (
    CyclicDependencyError,
    DependencyResolutionError,
    UnresolvedDependency,
)

logger = logging.getLogger(__name__)


@dataclass
class DependencyResolution:
    """Outcome of name resolution: edges found and names that matched nothing."""

    dependencies: Dict[ScriptIdentity, List[ScriptIdentity]] = field(default_factory=dict)
    unresolved: List[UnresolvedDependency] = field(default_factory=list)

    def raise_for_errors(self) -> None:
        if self.unresolved:
            raise DependencyResolutionError(self.unresolved)


class DependencyResolver:
    """Resolves dependency names and orders scripts."""

    def __init__(self, directories: Sequence[Path], scripts: Sequence[Script]):
        self.directories = [Path(d).expanduser().resolve() for d in directories]
        self.scripts = list(scripts)
        self._by_path: Dict[Path, Script] = {s.path: s for s in self.scripts}

    def resolve_name(self, name: str) -> Optional[Script]:
        """Return the first script matching ``name`` in directory priority order."""
        candidate = Path(name)
        if candidate.is_absolute():
            return self._by_path.get(candidate)
        for directory in self.directories:
            script = self._by_path.get(directory / candidate)
            if script is not None:
                return script
        return None

    def resolve(self) -> DependencyResolution:
        resolution = DependencyResolution()
        missing: Dict[str, List[str]] = {}

        for script in self.scripts:
            deps: List[ScriptIdentity] = []
            for name in script.dependency_names:
                logger.debug("Resolving dependency '%s' for script '%s'", name, script.name)
                target = self.resolve_name(name)
                if target is None:
                    missing.setdefault(name, []).append(script.name)
                    continue
                if target.identity not in deps:
                    deps.append(target.identity)
            resolution.dependencies[script.identity] = deps

        resolution.unresolved = [
            UnresolvedDependency(name=name, referenced_by=refs)
            for name, refs in missing.items()
        ]
        return resolution

    def order(self) -> List[Script]:
        """Return every script in a valid topological order.

        Raises:
            DependencyResolutionError: a dependency name matched no script.
            CyclicDependencyError: the graph has a cycle.
        """
        resolution = self.resolve()
        resolution.raise_for_errors()

        index = {s.identity: i for i, s in enumerate(self.scripts)}
        in_degree = [0] * len(self.scripts)
        successors: List[List[int]] = [[] for _ in self.scripts]
        for script in self.scripts:
            dependent = index[script.identity]
            for dep in resolution.dependencies[script.identity]:
                successors[index[dep]].append(dependent)
                in_degree[dependent] += 1
                logger.debug(
                    "Adding dependency edge: %s -> %s",
                    self.scripts[index[dep]].name,
                    script.name,
                )

        queue = deque(i for i, degree in enumerate(in_degree) if degree == 0)
        ordered: List[Script] = []
        while queue:
            current = queue.popleft()
            ordered.append(self.scripts[current])
            for successor in successors[current]:
                in_degree[successor] -= 1
                if in_degree[successor] == 0:
                    queue.append(successor)

        if len(ordered) < len(self.scripts):
            done = {s.identity for s in ordered}
            raise CyclicDependencyError(
                ordered=[s.name for s in ordered],
                remaining=[s.name for s in self.scripts if s.identity not in done],
            )

        logger.debug("Final execution order: %s", [s.name for s in ordered])
        return ordered
