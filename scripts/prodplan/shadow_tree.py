"""Scratch copy of the source tree for CHECK mode.

:meth:`ShadowTree.stage` copies every ``pom.xml`` and the auxiliary files the
run touches into the work directory; the pipeline then runs there, and
:meth:`ShadowTree.verify` diffs the result against the untouched source.
"""

import difflib
import os
import shutil
from pathlib import Path

import structlog

from .config import PlannerConfig
from .errors import CheckDiffError, PlannerIOError
from .taxonomy import OnCheckFailure

log = structlog.get_logger()

SKIPPED_DIRS = frozenset({"target", ".git", "node_modules"})
POM_FILE = "pom.xml"


class ShadowTree:
    """Stages and verifies a working copy of ``source``.

    Attributes:
        source: The real source tree root.
        work: The scratch root the pipeline runs in.
        staged: POSIX paths of the files copied by :meth:`stage`.
    """

    def __init__(self, source: Path, work: Path, config: PlannerConfig):
        self.source = source
        self.work = work
        self.config = config
        self.staged = []

    def _skipped(self, root: Path, path: Path) -> bool:
        relative = path.relative_to(root)
        return any(part in SKIPPED_DIRS for part in relative.parts[:-1])

    def collect(self, root: Path) -> set[str]:
        """POSIX paths of the descriptors and auxiliary files below ``root``."""
        found = set()
        work = self.work.resolve()
        for directory, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in SKIPPED_DIRS and (Path(directory) / d).resolve() != work
            )
            if POM_FILE in filenames:
                found.add((Path(directory) / POM_FILE).relative_to(root).as_posix())
        config = self.config
        for option in (config.ci_file, config.productized_dependencies_file,
                       config.all_dependencies_file, config.non_productized_dependencies_file):
            if not Path(option).is_absolute() and (root / option).is_file():
                found.add(Path(option).as_posix())
        for pattern in config.check_auxiliary_globs:
            for path in root.glob(pattern):
                if path.is_file() and not self._skipped(root, path):
                    found.add(path.relative_to(root).as_posix())
        return found

    def stage(self) -> Path:
        """Recreate the work directory with copies of the relevant files.

        Returns:
            The work directory.
        """
        try:
            if self.work.exists():
                shutil.rmtree(self.work)
            self.staged = sorted(self.collect(self.source))
            for rel_path in self.staged:
                target = self.work / rel_path
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.source / rel_path, target)
        except OSError as e:
            raise PlannerIOError(f"Could not stage {self.source} in {self.work}: {e}", path=str(self.work)) from e
        log.info("shadow_tree_staged", work=str(self.work), files=len(self.staged))
        return self.work

    def _read_lines(self, path: Path) -> list[str]:
        if not path.is_file():
            return []
        try:
            with open(path, encoding=self.config.encoding, newline="") as f:
                return f.read().splitlines(keepends=True)
        except OSError as e:
            raise PlannerIOError.read_failed(path, e) from e

    def diff(self) -> list[str]:
        """Unified diffs of every file that differs between source and work tree."""
        diffs = []
        for rel_path in sorted(set(self.staged) | self.collect(self.work)):
            expected = self._read_lines(self.work / rel_path)
            actual = self._read_lines(self.source / rel_path)
            if expected == actual:
                continue
            diffs.append("".join(difflib.unified_diff(
                actual, expected, fromfile=f"a/{rel_path}", tofile=f"b/{rel_path}"
            )))
        return diffs

    def verify(self, policy: OnCheckFailure) -> list[str]:
        """Diff the trees and act on differences according to ``policy``.

        Raises:
            CheckDiffError: If there are differences and ``policy`` is FAIL.
        """
        diffs = self.diff()
        if not diffs:
            log.info("shadow_tree_in_sync")
            return diffs
        if policy is OnCheckFailure.FAIL:
            raise CheckDiffError(diffs)
        if policy is OnCheckFailure.WARN:
            for diff in diffs:
                log.warning("shadow_tree_diff", diff=diff)
        return diffs
