"""Immutable snapshot of a multi-module Maven source tree.

The tree is loaded by following ``<modules>`` entries from the root
``pom.xml`` and is never modified afterwards: whenever descriptors are
edited, callers load a fresh :class:`SourceTree`.
"""

import posixpath
import re
from pathlib import Path
from typing import Iterable, Iterator, Optional

import structlog

from .errors import GraphInvariantError
from .pom_models import Ga, MavenModule, MavenProfile
from .pom_parser import parse_pom

log = structlog.get_logger()

ROOT_POM = "pom.xml"

_EXPRESSION_RE = re.compile(r"\$\{([^}]+)\}")
_MAX_DEPTH = 10


def child_pom_path(aggregator_path: str, module_entry: str) -> str:
    """Resolve a ``<module>`` entry to the POSIX path of its ``pom.xml``.

    Args:
        aggregator_path: Path of the POM declaring the entry, e.g. ``extensions/pom.xml``.
        module_entry: The entry text, a directory (``foo``) or a POM file (``foo/pom.xml``).

    Returns:
        The normalized path relative to the tree root, e.g. ``extensions/foo/pom.xml``.
    """
    base = posixpath.dirname(aggregator_path)
    target = posixpath.join(base, module_entry) if base else module_entry
    if not target.endswith(".xml"):
        target = posixpath.join(target, ROOT_POM)
    return posixpath.normpath(target)


class ExpressionEvaluator:
    """Evaluates ``${...}`` expressions in the context of a module.

    Properties are merged down the internal parent chain (child wins) over
    the active profiles in declaration order (later wins). The built-ins
    ``project.version`` (alias ``self.version``), ``project.groupId``,
    ``project.artifactId`` and ``project.parent.version`` (alias
    ``parent.version``) are always available.
    """

    def __init__(self, tree: "SourceTree", active_profiles: Iterable[str] = ()):
        self._tree = tree
        self._active_profiles = frozenset(active_profiles)
        self._properties_cache = {}

    def is_active(self, profile: MavenProfile) -> bool:
        return profile.profile_id is None or profile.profile_id in self._active_profiles

    def active_profiles(self, module: MavenModule) -> Iterator[MavenProfile]:
        return (p for p in module.profiles if self.is_active(p))

    def properties(self, module: MavenModule) -> dict:
        """Effective properties of ``module`` (inherited ones included)."""
        cached = self._properties_cache.get(module.pom_path)
        if cached is not None:
            return cached
        merged = {}
        parent = self._tree.parent_module(module)
        if parent is not None:
            merged.update(self.properties(parent))
        for profile in self.active_profiles(module):
            merged.update(profile.properties)
        self._properties_cache[module.pom_path] = merged
        return merged

    def _lookup(self, name: str, module: MavenModule) -> Optional[str]:
        if name in ("project.version", "self.version", "version", "pom.version"):
            return module.version
        if name in ("project.groupId", "groupId"):
            return module.group_id
        if name in ("project.artifactId", "artifactId"):
            return module.artifact_id
        if name in ("project.parent.version", "parent.version"):
            return module.parent.version if module.parent else None
        return self.properties(module).get(name)

    def evaluate(self, expression: Optional[str], module: MavenModule, _depth: int = 0) -> Optional[str]:
        """Evaluate every ``${...}`` placeholder in ``expression``.

        Chained references (a property whose value is itself an expression)
        are followed up to a depth of 10.

        Args:
            expression: Raw expression, e.g. ``${foundation.version}``.
            module: The module whose context applies.
            _depth: Internal recursion counter (callers should not set this).

        Returns:
            The evaluated string, or ``None`` if ``expression`` is ``None``.

        Raises:
            GraphInvariantError: If a placeholder cannot be resolved.
        """
        if expression is None or "${" not in expression:
            return expression
        if _depth > _MAX_DEPTH:
            raise GraphInvariantError.unresolved_expression(expression, module.pom_path)

        def _replace(match):
            value = self._lookup(match.group(1), module)
            if value is None:
                raise GraphInvariantError.unresolved_expression(match.group(0), module.pom_path)
            return self.evaluate(value, module, _depth + 1)

        return _EXPRESSION_RE.sub(_replace, expression)

    def evaluate_ga(self, group_id: str, artifact_id: str, module: MavenModule) -> Ga:
        return Ga(self.evaluate(group_id, module), self.evaluate(artifact_id, module))


class SourceTree:
    """All modules of a Maven source tree keyed by path and by coordinate.

    Attributes:
        root_directory: Filesystem directory containing the root ``pom.xml``.
        modules_by_path: Modules keyed by POSIX ``pom.xml`` path, sorted.
        modules_by_ga: Modules keyed by :class:`Ga`, sorted.
        evaluator: Expression evaluator for the active profiles.
    """

    def __init__(
        self,
        root_directory: Path,
        modules: list[MavenModule],
        child_entries: dict,
        active_profiles: Iterable[str] = (),
    ):
        self.root_directory = root_directory
        self.modules_by_path = {m.pom_path: m for m in sorted(modules, key=lambda m: m.pom_path)}
        if ROOT_POM not in self.modules_by_path:
            raise GraphInvariantError("The source tree has no root pom.xml", path=str(root_directory))
        self._child_entries = child_entries
        self._aggregator_by_path = {
            child: aggregator
            for aggregator, entries in child_entries.items()
            for _, child in entries
        }

        by_ga = {}
        for module in self.modules_by_path.values():
            ga = self.module_ga(module)
            if ga in by_ga:
                raise GraphInvariantError(
                    f"{ga} is declared by both {by_ga[ga].pom_path} and {module.pom_path}",
                    ga=str(ga),
                )
            by_ga[ga] = module
        self.modules_by_ga = dict(sorted(by_ga.items()))
        self.evaluator = ExpressionEvaluator(self, active_profiles)
        self._check_parent_chains()

    # ── Loading ──────────────────────────────────────────────────────────

    @classmethod
    def load(cls, root_directory: Path, active_profiles: Iterable[str] = ()) -> "SourceTree":
        """Parse the root ``pom.xml`` and every module reachable via ``<modules>``.

        Module entries of all profiles are followed so that pruning sees every
        module; the dependency graph only honors the active profiles.

        Args:
            root_directory: Directory containing the root ``pom.xml``.
            active_profiles: Ids of the profiles to treat as active.

        Returns:
            A new SourceTree.

        Raises:
            GraphInvariantError: If a listed module has no ``pom.xml``, or the
                parent chain of some module cannot be resolved.
        """
        modules = []
        child_entries = {}
        visited = set()
        pending = [ROOT_POM]
        while pending:
            rel_path = pending.pop()
            if rel_path in visited:
                continue
            visited.add(rel_path)
            module = parse_pom(root_directory / rel_path, rel_path)
            modules.append(module)
            entries = []
            for profile in module.profiles:
                for entry in profile.modules:
                    child = child_pom_path(rel_path, entry)
                    if not (root_directory / child).is_file():
                        raise GraphInvariantError.missing_module(child, rel_path)
                    entries.append((entry, child))
                    pending.append(child)
            child_entries[rel_path] = entries
        log.debug("source_tree_loaded", root=str(root_directory), modules=len(modules))
        return cls(root_directory, modules, child_entries, active_profiles)

    def _check_parent_chains(self) -> None:
        for module in self.modules_by_path.values():
            if module.pom_path == ROOT_POM:
                continue
            seen = {module.pom_path}
            current = module
            while current.pom_path != ROOT_POM:
                if current.parent is None:
                    raise GraphInvariantError.unknown_parent(current.pom_path, "<none>")
                parent = self.parent_module(current)
                if parent is None:
                    raise GraphInvariantError.unknown_parent(
                        current.pom_path, f"{current.parent.group_id}:{current.parent.artifact_id}"
                    )
                if parent.pom_path in seen:
                    raise GraphInvariantError(f"Parent cycle through {parent.pom_path}", path=parent.pom_path)
                seen.add(parent.pom_path)
                current = parent

    # ── Lookups ──────────────────────────────────────────────────────────

    @property
    def root_module(self) -> MavenModule:
        return self.modules_by_path[ROOT_POM]

    @property
    def root_version(self) -> str:
        return self.evaluator.evaluate(self.root_module.version, self.root_module)

    @staticmethod
    def module_ga(module: MavenModule) -> Ga:
        return Ga(module.group_id or "", module.artifact_id)

    def parent_module(self, module: MavenModule) -> Optional[MavenModule]:
        """The internal parent of ``module``, or ``None`` if external or absent."""
        if module.parent is None:
            return None
        return self.modules_by_ga.get(Ga(module.parent.group_id or "", module.parent.artifact_id))

    def ancestors(self, module: MavenModule) -> list[MavenModule]:
        """Internal parents of ``module``, nearest first."""
        result = []
        parent = self.parent_module(module)
        while parent is not None:
            result.append(parent)
            parent = self.parent_module(parent)
        return result

    def child_entries(self, pom_path: str) -> list:
        """``(entry, child_pom_path)`` pairs declared by the POM at ``pom_path``."""
        return list(self._child_entries.get(pom_path, []))

    def aggregator_of(self, pom_path: str) -> Optional[str]:
        return self._aggregator_by_path.get(pom_path)

    def extensions(self) -> set[Ga]:
        """Coordinates having a ``-deployment`` sibling module in the tree."""
        return {
            ga for ga in self.modules_by_ga
            if Ga(ga.group_id, ga.artifact_id + "-deployment") in self.modules_by_ga
        }

    def declared_dependencies(self, module: MavenModule) -> list[Ga]:
        """Evaluated non-virtual dependencies of ``module`` in the active profiles."""
        return [
            self.evaluator.evaluate_ga(dep.group_id, dep.artifact_id, module)
            for profile in self.evaluator.active_profiles(module)
            for dep in profile.dependencies
            if not dep.is_virtual
        ]

    # ── Graph queries ────────────────────────────────────────────────────

    def _direct_requirements(self, module: MavenModule) -> Iterator[Ga]:
        parent = self.parent_module(module)
        if parent is not None:
            yield self.module_ga(parent)
        yield from self.declared_dependencies(module)
        for profile in self.evaluator.active_profiles(module):
            for managed in profile.dep_management:
                if managed.is_bom_import:
                    yield self.evaluator.evaluate_ga(managed.group_id, managed.artifact_id, module)
            for plugin in profile.plugins:
                yield self.evaluator.evaluate_ga(plugin.group_id, plugin.artifact_id, module)

    def required_modules(self, seeds: Iterable[Ga]) -> set[Ga]:
        """Least set of internal modules containing ``seeds`` closed under requirements.

        A module requires its internal parent, its non-virtual dependencies,
        its imported BOMs and its build plugins, all under the active profiles.
        External coordinates are not part of the result.

        Args:
            seeds: Coordinates that must be part of the result.

        Returns:
            The closure as a set of coordinates.

        Raises:
            GraphInvariantError: If a seed is not a module of this tree.
        """
        result = set()
        pending = sorted(seeds, reverse=True)
        while pending:
            ga = pending.pop()
            if ga in result:
                continue
            module = self.modules_by_ga.get(ga)
            if module is None:
                raise GraphInvariantError.unknown_module(ga)
            result.add(ga)
            for required in self._direct_requirements(module):
                if required in self.modules_by_ga and required not in result:
                    pending.append(required)
        return result

    def transitive_dependencies(self, ga: Ga) -> set[Ga]:
        """All dependency coordinates reachable from the module ``ga``.

        Dependencies inherited from internal parents count as declared. Internal
        dependencies are traversed further; external ones are leaves.
        """
        if ga not in self.modules_by_ga:
            raise GraphInvariantError.unknown_module(ga)
        result = set()
        visited = {ga}
        pending = [ga]
        while pending:
            module = self.modules_by_ga[pending.pop()]
            for owner in [module] + self.ancestors(module):
                for dep_ga in self.declared_dependencies(owner):
                    result.add(dep_ga)
                    if dep_ga in self.modules_by_ga and dep_ga not in visited:
                        visited.add(dep_ga)
                        pending.append(dep_ga)
        return result
