"""Seeding the include set from the product manifest.

The :class:`Plan` created here travels through the whole run: later stages
fill in the test categories, the groups and the foundation results.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from .config import PlannerConfig
from .manifest import ProductManifest
from .pom_models import Ga
from .source_tree import SourceTree
from .templates import expand

log = structlog.get_logger()


@dataclass
class Plan:
    """Everything a run decides, accumulated stage by stage.

    Attributes:
        includes: Seed coordinates (extensions, their deployment modules,
            additional productized artifacts).
        required_extensions: Extension coordinates listed in the manifest.
        doc_pages: Guide URL per extension coordinate.
        allowed_mixed_tests: Extension → tests allowed to cover it while mixed.
        exclude_tests: Tests left out of the analysis.
        version_transformations: Regex → replacement pairs for version properties.
        expanded_includes_without_tests: Closure of ``includes``.
        test_categories: Category of every analyzed test.
        expanded_includes: Closure of the includes plus the non-mixed tests.
        groups: Test groups per category, in category order.
        required_foundation_artifacts: Foundation coordinates required by included modules.
        missing_foundation_artifacts: Required foundation coordinates the catalog lacks.
        uncovered_extensions: Extension → test → missing dependencies.
    """

    includes: set = field(default_factory=set)
    required_extensions: set = field(default_factory=set)
    doc_pages: dict = field(default_factory=dict)
    allowed_mixed_tests: dict = field(default_factory=dict)
    exclude_tests: set = field(default_factory=set)
    version_transformations: dict = field(default_factory=dict)
    expanded_includes_without_tests: set = field(default_factory=set)
    test_categories: dict = field(default_factory=dict)
    expanded_includes: set = field(default_factory=set)
    groups: list = field(default_factory=list)
    required_foundation_artifacts: set = field(default_factory=set)
    missing_foundation_artifacts: set = field(default_factory=set)
    uncovered_extensions: dict = field(default_factory=dict)

    @property
    def mixed_tests(self) -> set:
        return {ga for ga, category in self.test_categories.items() if category.mixed}

    @property
    def product_tests(self) -> set:
        return {ga for ga, category in self.test_categories.items() if not category.mixed}


def guide_url(template: str, ga: Ga, major_version: str, artifact_prefix: str) -> str:
    """Expand a guide URL template for the extension ``ga``.

    ``${majorVersion}`` (also spelled ``${cqMajorVersion}``) becomes
    ``major_version``; ``${artifactIdBase}`` becomes the artifactId without
    ``artifact_prefix``.
    """
    base = ga.artifact_id.replace(artifact_prefix, "", 1) if artifact_prefix else ga.artifact_id
    return expand(template, {
        "majorVersion": major_version,
        "cqMajorVersion": major_version,
        "artifactIdBase": base,
    })


def community_doc_pages(tree: SourceTree, config: PlannerConfig, major_version: str, doc_pages: dict) -> None:
    """Add a community guide URL for every extension of ``tree`` without a page yet."""
    reference_dir = config.resolve(config.doc_reference_dir)
    for ga in sorted(tree.extensions()):
        if ga in doc_pages:
            continue
        base = ga.artifact_id.replace(config.artifact_prefix, "", 1) if config.artifact_prefix else ga.artifact_id
        if (reference_dir / f"{base}.adoc").is_file():
            doc_pages[ga] = guide_url(config.community_guide_url_template, ga, major_version, config.artifact_prefix)
        else:
            doc_pages[ga] = config.default_community_guide


def plan(
    manifest: ProductManifest,
    tree: SourceTree,
    config: PlannerConfig,
    product_version: Optional[str] = None,
) -> Plan:
    """Create the plan for ``manifest`` over ``tree``.

    Args:
        manifest: The validated product manifest.
        tree: The fully relinked source tree.
        config: Planner options (product group, prefixes, guide templates).
        product_version: Version used for ``${majorVersion}``; defaults to
            the root module version.

    Returns:
        A Plan with the manifest-derived fields and
        ``expanded_includes_without_tests`` filled in.

    Raises:
        GraphInvariantError: If an included coordinate is not a module of the tree.
    """
    version = product_version or tree.root_version or ""
    major_version = version.split(".")[0]
    group = config.product_group
    result = Plan(
        exclude_tests={Ga(group, a) for a in manifest.exclude_tests},
        version_transformations=dict(manifest.version_transformations),
    )

    for artifact_id, entry in sorted(manifest.extensions.items()):
        extension = Ga(group, artifact_id)
        result.required_extensions.add(extension)
        result.includes.add(extension)
        result.includes.add(Ga(group, artifact_id + "-deployment"))
        if entry.has_product_documentation_page:
            result.doc_pages[extension] = guide_url(
                manifest.guide_url_template, extension, major_version, config.artifact_prefix
            )
        if entry.allowed_mixed_tests:
            result.allowed_mixed_tests[extension] = {Ga(group, t) for t in entry.allowed_mixed_tests}

    for artifact_id in manifest.additional_productized_artifacts:
        result.includes.add(Ga(group, artifact_id))

    community_doc_pages(tree, config, major_version, result.doc_pages)
    result.expanded_includes_without_tests = tree.required_modules(result.includes)
    log.info(
        "plan_created",
        extensions=len(result.required_extensions),
        includes=len(result.includes),
        expanded=len(result.expanded_includes_without_tests),
    )
    return result
