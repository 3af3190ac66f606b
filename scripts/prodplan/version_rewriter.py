"""Version alignment and the product/community edition split.

All edits go through :class:`~prodplan.pom_editor.PomEditor`; the source tree
passed in is the snapshot the decisions are based on, so callers reload it
afterwards if they need to see the result.
"""

import re
from collections import OrderedDict
from typing import Iterable

import structlog

from .config import PlannerConfig
from .manifest import python_replacement
from .pom_editor import PomEditor, add_or_set_property, set_managed_dependency_version, set_parent_version
from .source_tree import ROOT_POM, SourceTree
from .taxonomy import FoundationEdition, ProjectEdition

log = structlog.get_logger()

PRODUCT_VERSION_PROPERTY = "product.version"
FOUNDATION_VERSION_PROPERTY = "foundation.version"


def _editor(tree: SourceTree, rel_path: str, config: PlannerConfig) -> PomEditor:
    return PomEditor(tree.root_directory / rel_path, config.encoding, config.element_whitespace_style)


def align_versions(tree: SourceTree, config: PlannerConfig) -> int:
    """Make parent, product and foundation versions agree with the root.

    1. Every non-root module's ``<parent><version>`` is set to the root version.
    2. Every constant ``product.version`` property is set to the root version.
    3. The root's ``<parent><version>`` is set to the evaluated
       ``${foundation.version}``, if the root defines that property.

    Returns:
        The number of descriptors rewritten.
    """
    root = tree.root_module
    expected = root.version
    edited = 0
    for rel_path, module in tree.modules_by_path.items():
        if rel_path == ROOT_POM or module.parent is None:
            continue
        if module.parent.version != expected:
            log.info("parent_version_aligned", path=rel_path, old=module.parent.version, new=expected)
            edited += _editor(tree, rel_path, config).transform(set_parent_version(expected))

    for rel_path, module in tree.modules_by_path.items():
        value = module.project_profile.properties.get(PRODUCT_VERSION_PROPERTY)
        if value is not None and "${" not in value and value != expected:
            log.info("product_version_aligned", path=rel_path, old=value, new=expected)
            edited += _editor(tree, rel_path, config).transform(
                add_or_set_property(PRODUCT_VERSION_PROPERTY, expected)
            )

    if root.parent is not None and FOUNDATION_VERSION_PROPERTY in tree.evaluator.properties(root):
        foundation_version = tree.evaluator.evaluate("${" + FOUNDATION_VERSION_PROPERTY + "}", root)
        if root.parent.version != foundation_version:
            log.info("foundation_version_aligned", old=root.parent.version, new=foundation_version)
            edited += _editor(tree, ROOT_POM, config).transform(set_parent_version(foundation_version))
    return edited


def split_editions(tree: SourceTree, includes: Iterable, config: PlannerConfig) -> int:
    """Rewrite managed dependency versions of the included modules per edition.

    Product-group entries get ``${product.version}`` when included and
    ``${community.version}`` otherwise, unless their expression is already an
    accepted alias of that edition. Foundation-group entries get the
    community foundation expression. Edits are grouped per profile and new
    expression in a fixed order and applied in one pass per descriptor.

    Args:
        tree: Source tree snapshot.
        includes: Coordinates of the modules to edit; also decides the edition.
        config: Provides the product and foundation groups.

    Returns:
        The number of descriptors rewritten.
    """
    includes = set(includes)
    evaluator = tree.evaluator
    edited = 0
    for ga, module in tree.modules_by_ga.items():
        if ga not in includes:
            continue
        transformations = []
        for profile in evaluator.active_profiles(module):
            if not profile.dep_management:
                continue
            by_version = OrderedDict((expr, []) for expr in (
                ProjectEdition.PRODUCT.preferred_version_expression,
                ProjectEdition.COMMUNITY.preferred_version_expression,
                FoundationEdition.PRODUCT.version_expression,
                FoundationEdition.COMMUNITY.version_expression,
            ))
            for managed in profile.dep_management:
                dep_ga = evaluator.evaluate_ga(managed.group_id, managed.artifact_id, module)
                if dep_ga.group_id == config.product_group:
                    edition = ProjectEdition.PRODUCT if dep_ga in includes else ProjectEdition.COMMUNITY
                    if managed.version not in edition.version_expressions:
                        by_version[edition.preferred_version_expression].append(
                            (managed.group_id, managed.artifact_id)
                        )
                elif dep_ga.group_id == config.foundation_group:
                    # refined later by the transitive dependency tool
                    target = FoundationEdition.COMMUNITY.version_expression
                    if managed.version != target:
                        by_version[target].append((managed.group_id, managed.artifact_id))
            for version, coords in by_version.items():
                if coords:
                    transformations.append(set_managed_dependency_version(profile.profile_id, version, coords))
        if transformations:
            log.debug("managed_versions_split", path=module.pom_path, edits=len(transformations))
            edited += _editor(tree, module.pom_path, config).transform(*transformations)
    return edited


def transform_version(value: str, transformations: dict) -> str:
    for pattern, replacement in transformations.items():
        value = re.sub(pattern, python_replacement(replacement), value)
    return value


def apply_version_transformations(tree: SourceTree, transformations: dict, config: PlannerConfig) -> int:
    """Apply regex transformations to the root's constant ``*.version`` properties.

    Returns:
        The number of properties changed.
    """
    if not transformations:
        return 0
    root = tree.root_module
    edits = []
    for profile in tree.evaluator.active_profiles(root):
        for name, value in profile.properties.items():
            if not name.endswith(".version") or "${" in value:
                continue
            new_value = transform_version(value, transformations)
            if new_value != value:
                log.info("version_transformed", property=name, old=value, new=new_value)
                edits.append(add_or_set_property(name, new_value, profile.profile_id))
    if edits:
        _editor(tree, ROOT_POM, config).transform(*edits)
    return len(edits)
