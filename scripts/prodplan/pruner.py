"""Disabling and re-enabling ``<module>`` entries.

Disabled entries are commented out with :data:`COMMENT_MARK` next to them, so
a later run can tell them apart from comments written by people and restore
them before planning.
"""

from pathlib import Path
from typing import Iterable

import structlog

from .config import PlannerConfig
from .pom_editor import PomEditor, comment_modules, uncomment_modules
from .source_tree import ROOT_POM, SourceTree
from .test_analyzer import TEST_PARENTS

log = structlog.get_logger()

COMMENT_MARK = "disabled by prodplan"
PRODUCT_MODULE = "product"


def _editor(root_directory: Path, rel_path: str, config: PlannerConfig) -> PomEditor:
    return PomEditor(root_directory / rel_path, config.encoding, config.element_whitespace_style)


def relink(root_directory: Path, config: PlannerConfig) -> SourceTree:
    """Re-enable every entry disabled by a previous run and return the full tree.

    Re-enabled entries can lead to descriptors with disabled entries of their
    own, so this repeats until a pass changes nothing.
    """
    passes = 0
    while True:
        tree = SourceTree.load(root_directory, config.active_profiles)
        changed = 0
        for rel_path in tree.modules_by_path:
            changed += _editor(root_directory, rel_path, config).transform(uncomment_modules(COMMENT_MARK))
        passes += 1
        if not changed:
            log.debug("relinked", passes=passes, modules=len(tree.modules_by_path))
            return tree


def needed_paths(tree: SourceTree, keep: Iterable) -> set[str]:
    """POM paths of the kept modules and of every aggregator above them."""
    result = set()
    for ga in keep:
        module = tree.modules_by_ga.get(ga)
        path = module.pom_path if module is not None else None
        while path is not None and path not in result:
            result.add(path)
            path = tree.aggregator_of(path)
    return result


def prune(root_directory: Path, keep: Iterable, config: PlannerConfig) -> int:
    """Comment out every module entry whose subtree has nothing to keep.

    The test parents are disabled in the root descriptor first; tests are
    linked again per group by the partitioner.

    Args:
        root_directory: Tree root to edit.
        keep: Coordinates of the modules that must stay enabled.
        config: Encoding and whitespace style.

    Returns:
        The number of entries disabled besides the test parents.
    """
    _editor(root_directory, ROOT_POM, config).transform(comment_modules(TEST_PARENTS, COMMENT_MARK))
    tree = SourceTree.load(root_directory, config.active_profiles)
    needed = needed_paths(tree, keep)
    disabled = 0
    for rel_path in sorted(needed):
        unneeded = sorted({entry for entry, child in tree.child_entries(rel_path) if child not in needed})
        if unneeded:
            disabled += len(unneeded)
            _editor(root_directory, rel_path, config).transform(comment_modules(unneeded, COMMENT_MARK))
    log.info("tree_pruned", disabled=disabled, kept=len(needed))
    return disabled


def enable_product_module(root_directory: Path, config: PlannerConfig) -> bool:
    return _editor(root_directory, ROOT_POM, config).transform(
        uncomment_modules(COMMENT_MARK, lambda name: name == PRODUCT_MODULE)
    )
