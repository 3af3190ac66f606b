"""Sequencing of a planner run.

APPLY edits the source tree in place. CHECK stages a copy in the work
directory, runs the same steps there and diffs the result against the
source. Uncovered extensions and missing foundation artifacts are raised
last so that the reports and the CHECK verification happen regardless.
"""

from pathlib import Path
from typing import Optional

import structlog

from . import planner
from .config import PlannerConfig
from .errors import MissingFoundationArtifactsError, PlannerError, UncoveredExtensionsError
from .foundation import missing_foundation_artifacts, required_foundation_artifacts
from .manifest import load_manifest
from .partitioner import clear_product_tests, partition, update_ci_file, write_group_poms
from .planner import Plan
from .pruner import enable_product_module, prune, relink
from .reports import (
    TransitiveDepsTool,
    clear_catalog,
    exclude_tests_from_test_list,
    fill_catalog,
    update_guide_links,
    update_superapp,
    write_artifact_lists,
)
from .shadow_tree import ShadowTree
from .source_tree import SourceTree
from .taxonomy import Mode, RunState
from .test_analyzer import analyze_tests
from .version_rewriter import (
    FOUNDATION_VERSION_PROPERTY,
    align_versions,
    apply_version_transformations,
    split_editions,
)

log = structlog.get_logger()


class PlannerRun:
    """One run of the planner over ``config.basedir``.

    Attributes:
        config: Options of the run.
        mode: APPLY or CHECK.
        state: Last state reached, ``None`` before the run starts.
        plan: The plan, once created.
    """

    def __init__(self, config: PlannerConfig, mode: Mode = Mode.APPLY):
        self.config = config
        self.mode = mode
        self.state: Optional[RunState] = None
        self.plan: Optional[Plan] = None

    def _advance(self, state: RunState) -> None:
        self.state = state
        log.debug("run_state", state=state.value)

    def execute(self) -> Optional[Plan]:
        """Run all steps.

        Returns:
            The completed plan, or ``None`` if the run is skipped.

        Raises:
            PlannerError: Any failure; the state is then ``FAILED``.
        """
        if self.config.skip:
            log.info("run_skipped")
            return None
        try:
            return self._execute()
        except PlannerError:
            self._advance(RunState.FAILED)
            raise

    def _load(self, root: Path) -> SourceTree:
        return SourceTree.load(root, self.config.active_profiles)

    def _execute(self) -> Plan:
        config = self.config
        basedir = Path(config.basedir)
        manifest_path = config.resolve(config.product_manifest)
        manifest = load_manifest(manifest_path, config.encoding)

        shadow = None
        root = basedir
        if self.mode is Mode.CHECK:
            shadow = ShadowTree(basedir, config.resolve(config.work_directory), config)
            root = shadow.stage()
        log.info("run_started", mode=self.mode.value, root=str(root))

        clear_product_tests(root, config)
        clear_catalog(root, config)
        # every module linked, including those a previous run disabled
        full_tree = relink(root, config)
        self._advance(RunState.LOADED)

        product_version = config.product_version or full_tree.root_version
        plan = planner.plan(manifest, full_tree, config, product_version)
        self.plan = plan
        self._advance(RunState.PLANNED)

        if align_versions(full_tree, config):
            full_tree = self._load(root)
        self._advance(RunState.REWRITTEN)

        analyze_tests(full_tree, plan, config)
        plan.expanded_includes = full_tree.required_modules(
            plan.expanded_includes_without_tests | plan.product_tests
        )
        self._advance(RunState.ANALYZED)

        plan.required_foundation_artifacts = required_foundation_artifacts(
            full_tree, plan.expanded_includes, config.foundation_group
        )
        write_artifact_lists(root, plan.expanded_includes, plan.required_foundation_artifacts, config)

        split_editions(full_tree, plan.expanded_includes | plan.mixed_tests, config)
        if apply_version_transformations(full_tree, plan.version_transformations, config):
            # transformed properties feed the parent and product version alignment
            full_tree = self._load(root)
            if align_versions(full_tree, config):
                full_tree = self._load(root)
        prune(root, plan.expanded_includes - set(plan.test_categories), config)
        fill_catalog(root, plan.required_extensions, config)
        self._advance(RunState.PRUNED)

        # the tests are disabled in the pruned tree, so grouping works on the full one
        plan.groups = partition(full_tree, plan.test_categories, config.available_nodes)
        write_group_poms(full_tree, plan.groups, config)
        update_superapp(root, plan.required_extensions, full_tree.root_version, config)
        stage_template = config.resolve(config.ci_stage_template) if config.ci_stage_template else None
        update_ci_file(config.resolve(config.ci_file, root), plan.groups, config, stage_template)
        self._advance(RunState.PARTITIONED)

        foundation_version = self._foundation_version(full_tree)
        if plan.required_foundation_artifacts:
            if foundation_version is None:
                log.warning("foundation_catalog_unchecked", reason="no foundation version")
            else:
                plan.missing_foundation_artifacts = missing_foundation_artifacts(
                    plan.required_foundation_artifacts, config, foundation_version
                )
        enable_product_module(root, config)
        update_guide_links(full_tree, plan.doc_pages, config)
        exclude_tests_from_test_list(full_tree, plan.exclude_tests, config)
        TransitiveDepsTool(config, root).run(product_version, config.community_version)
        self._advance(RunState.REPORTED)

        if shadow is not None:
            shadow.verify(config.on_check_failure)
            self._advance(RunState.VERIFIED)
        else:
            self._advance(RunState.COMMITTED)

        if plan.missing_foundation_artifacts:
            raise MissingFoundationArtifactsError(
                plan.missing_foundation_artifacts,
                f"{config.foundation_group}:{config.foundation_bom_artifact_id}:{foundation_version}",
            )
        if plan.uncovered_extensions:
            raise UncoveredExtensionsError(plan.uncovered_extensions, str(config.product_manifest))
        log.info("run_finished", mode=self.mode.value, productized=len(plan.expanded_includes),
                 tests=len(plan.test_categories), groups=len(plan.groups))
        return plan

    def _foundation_version(self, tree: SourceTree) -> Optional[str]:
        if self.config.foundation_version:
            return self.config.foundation_version
        root = tree.root_module
        if FOUNDATION_VERSION_PROPERTY in tree.evaluator.properties(root):
            return tree.evaluator.evaluate("${" + FOUNDATION_VERSION_PROPERTY + "}", root)
        return None


def run(config: PlannerConfig, mode: Mode = Mode.APPLY) -> Optional[Plan]:
    """Run the planner; see :class:`PlannerRun`."""
    return PlannerRun(config, mode).execute()
