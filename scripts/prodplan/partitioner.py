"""Splitting categorized tests into CI groups.

Native-capable tests are spread over at most ``availableNodes - 1`` groups;
JVM-only tests form a single group. Each category gets an aggregator under
``product/tests-<key>`` with one ``group-NN`` child per group, and each group
becomes one stage in the CI file.
"""

import math
import posixpath
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import structlog

from .config import PlannerConfig
from .errors import GraphInvariantError, PlannerIOError
from .pom_editor import PomEditor, add_module_if_needed, add_modules, remove_all_modules
from .source_tree import SourceTree
from .taxonomy import TestCategory
from .templates import CI_STAGE_TEMPLATE, TESTS_POM_TEMPLATE, expand, load_resource

log = structlog.get_logger()

PRODUCT_DIR = "product"
MIXED_PROFILE = "mixed"
STAGES_START = "// %generated-stages-start%\n"
STAGES_END = "// %generated-stages-end%"
STAGES_END_INDENT = " " * 16

_STAGES_RE = re.compile("(" + re.escape(STAGES_START) + ")(.*?)(" + re.escape(STAGES_END) + ")", re.S)


@dataclass
class TestGroup:
    """Tests assigned to one CI node.

    Attributes:
        category: Category of all tests in the group.
        index: Zero-based index within the category.
        tests: Test directories relative to the group directory, sorted.
    """

    __test__ = False

    category: TestCategory
    index: int
    tests: list = field(default_factory=list)

    @property
    def human_index(self) -> str:
        return f"{self.index + 1:02d}"

    @property
    def human_name(self) -> str:
        return f"{self.category.human_name} :: Group {self.human_index}"

    @property
    def directory_name(self) -> str:
        return f"group-{self.human_index}"

    @property
    def group_directory(self) -> str:
        return f"{category_directory(self.category)}/{self.directory_name}"


def category_directory(category: TestCategory) -> str:
    return f"{PRODUCT_DIR}/tests-{category.key}"


def max_tests_per_group(native_test_count: int, available_nodes: int) -> int:
    return native_test_count // (available_nodes - 1) + 1


def group_sizes(test_count: int, max_per_group: int) -> list[int]:
    """Sizes of the groups ``test_count`` tests are split into.

    The group count is the smallest one respecting ``max_per_group``; the
    first ``test_count mod groups`` groups take one test more than the rest.
    """
    group_count = max(1, math.ceil(test_count / max_per_group))
    base, rest = divmod(test_count, group_count)
    return [base + (1 if i < rest else 0) for i in range(group_count)]


def relative_test_path(test_pom_path: str) -> str:
    """Directory of a test relative to any ``product/tests-<key>/group-NN`` directory."""
    test_dir = posixpath.dirname(test_pom_path)
    return posixpath.relpath(test_dir, f"{category_directory(TestCategory.PURE_PRODUCT)}/group-01")


def partition(tree: SourceTree, test_categories: dict, available_nodes: int) -> list[TestGroup]:
    """Assign the tests to groups.

    Args:
        tree: Source tree providing the test paths.
        test_categories: Test coordinate → category.
        available_nodes: CI nodes available; one is reserved for the
            non-test build.

    Returns:
        Groups of all non-empty categories, in category order.
    """
    native_count = sum(1 for category in test_categories.values() if category.native)
    max_native = max_tests_per_group(native_count, available_nodes)
    groups = []
    for category in TestCategory:
        paths = sorted(
            relative_test_path(tree.modules_by_ga[ga].pom_path)
            for ga, c in test_categories.items() if c is category
        )
        if not paths:
            continue
        sizes = group_sizes(len(paths), max_native) if category.native else [len(paths)]
        remaining = iter(paths)
        for index, size in enumerate(sizes):
            groups.append(TestGroup(category, index, [next(remaining) for _ in range(size)]))
    log.info("tests_partitioned", native=native_count, max_per_group=max_native, groups=len(groups))
    return groups


def clear_product_tests(root_directory: Path, config: PlannerConfig) -> None:
    """Unlink all modules of ``product/pom.xml`` and delete generated test aggregators."""
    product_pom = root_directory / PRODUCT_DIR / "pom.xml"
    if product_pom.is_file():
        PomEditor(product_pom, config.encoding, config.element_whitespace_style).transform(remove_all_modules())
    for category in TestCategory:
        directory = root_directory / category_directory(category)
        if directory.is_dir():
            shutil.rmtree(directory)


def _write_template_pom(path: Path, values: dict, encoding: str) -> None:
    content = expand(load_resource(TESTS_POM_TEMPLATE), values)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding=encoding) as f:
            f.write(content)
    except OSError as e:
        raise PlannerIOError.write_failed(path, e) from e


def write_group_poms(tree: SourceTree, groups: list[TestGroup], config: PlannerConfig) -> None:
    """Create the category and group aggregators and link them from ``product/pom.xml``."""
    root = tree.root_directory
    product = tree.modules_by_path.get(f"{PRODUCT_DIR}/pom.xml")
    if product is None:
        raise GraphInvariantError.missing_module(f"{PRODUCT_DIR}/pom.xml", "pom.xml")
    group_id = tree.evaluator.evaluate(product.group_id, product)
    version = tree.root_version

    def _editor(path: Path) -> PomEditor:
        return PomEditor(path, config.encoding, config.element_whitespace_style)

    for category in TestCategory:
        category_groups = [g for g in groups if g.category is category]
        if not category_groups:
            continue
        category_dir = root / category_directory(category)
        category_artifact_id = f"{product.artifact_id}-tests-{category.key}"
        _editor(root / PRODUCT_DIR / "pom.xml").transform(add_module_if_needed(f"tests-{category.key}"))
        _write_template_pom(category_dir / "pom.xml", {
            "groupId": group_id,
            "parentArtifactId": product.artifact_id,
            "version": version,
            "parentPath": "../pom.xml",
            "artifactId": category_artifact_id,
            "name": f"Tests :: {category.human_name}",
        }, config.encoding)
        profile = MIXED_PROFILE if category.mixed else None
        _editor(category_dir / "pom.xml").transform(
            add_modules(profile, [g.directory_name for g in category_groups])
        )
        for group in category_groups:
            group_pom = category_dir / group.directory_name / "pom.xml"
            _write_template_pom(group_pom, {
                "groupId": group_id,
                "parentArtifactId": category_artifact_id,
                "version": version,
                "parentPath": "../pom.xml",
                "artifactId": f"{category_artifact_id}-{group.directory_name}",
                "name": f"Tests :: {group.human_name}",
            }, config.encoding)
            _editor(group_pom).transform(add_modules(None, group.tests))


def render_stages(groups: list[TestGroup], template: str) -> str:
    return "".join(
        expand(template, {"groupDirectory": g.group_directory, "stageName": g.human_name})
        for g in groups
    )


def update_ci_file(ci_file: Path, groups: list[TestGroup], config: PlannerConfig,
                   stage_template: Optional[Path] = None) -> bool:
    """Replace the generated stages between the markers of ``ci_file``.

    Returns:
        ``True`` if the file changed.

    Raises:
        GraphInvariantError: If the file lacks the start or end marker.
    """
    try:
        if stage_template is not None:
            with open(stage_template, encoding=config.encoding) as f:
                template = f.read()
        else:
            template = load_resource(CI_STAGE_TEMPLATE)
        with open(ci_file, encoding=config.encoding, newline="") as f:
            content = f.read()
    except OSError as e:
        raise PlannerIOError.read_failed(e.filename or ci_file, e) from e

    if not _STAGES_RE.search(content):
        raise GraphInvariantError(
            f"{ci_file} has no '{STAGES_START.strip()}' ... '{STAGES_END}' section",
            path=str(ci_file),
        )
    stages = render_stages(groups, template) + STAGES_END_INDENT
    updated = _STAGES_RE.sub(lambda m: m.group(1) + stages + m.group(3), content, count=1)
    if updated == content:
        return False
    try:
        with open(ci_file, "w", encoding=config.encoding, newline="") as f:
            f.write(updated)
    except OSError as e:
        raise PlannerIOError.write_failed(ci_file, e) from e
    log.info("ci_stages_updated", path=str(ci_file), stages=len(groups))
    return True
