"""Report files and the derived edits outside the module graph.

Covers the artifact lists, the catalog's virtual dependencies, the superapp,
the test list excludes, the guide links in extension metadata and the
external transitive dependency tool. Descriptors outside the module graph are
optional: a step whose file is absent is skipped.
"""

import os
import re
import subprocess
from pathlib import Path
from typing import Iterable, Optional

import structlog

from .config import PlannerConfig
from .errors import GraphInvariantError, PlannerIOError
from .partitioner import PRODUCT_DIR
from .pom_editor import (
    PomEditor,
    add_dependencies,
    add_module_if_needed,
    add_plugin_excludes,
    remove_dependencies,
    set_parent_version,
)
from .pom_models import Dependency, Ga
from .source_tree import SourceTree
from .templates import expand

log = structlog.get_logger()

_GUIDE_RE = re.compile(r'guide: "([^"]*)"')


def write_lines(path: Path, lines: Iterable[str], encoding: str = "utf-8") -> None:
    """Write sorted, de-duplicated ``lines``, one per line."""
    content = "".join(f"{line}\n" for line in sorted(set(lines)))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding=encoding, newline="") as f:
            f.write(content)
    except OSError as e:
        raise PlannerIOError.write_failed(path, e) from e


def write_artifact_lists(root_directory: Path, productized: Iterable[Ga], foundation: Iterable[Ga],
                         config: PlannerConfig) -> None:
    """Write the productized and the required foundation artifactId lists."""
    write_lines(config.resolve(config.productized_artifacts_file, root_directory),
                (ga.artifact_id for ga in productized), config.encoding)
    write_lines(config.resolve(config.required_foundation_artifacts_file, root_directory),
                (ga.artifact_id for ga in foundation), config.encoding)


def virtual_dependency(ga: Ga) -> Dependency:
    return Dependency(
        group_id=ga.group_id,
        artifact_id=ga.artifact_id,
        dep_type="pom",
        scope="test",
        exclusions=[("*", "*")],
    )


def clear_catalog(root_directory: Path, config: PlannerConfig) -> bool:
    """Remove all virtual dependencies from the catalog descriptor, if there is one."""
    catalog = config.resolve(config.catalog_pom, root_directory)
    if not catalog.is_file():
        return False
    return PomEditor(catalog, config.encoding, config.element_whitespace_style).transform(
        remove_dependencies(lambda dep: dep.is_virtual)
    )


def fill_catalog(root_directory: Path, extensions: Iterable[Ga], config: PlannerConfig) -> bool:
    """Add one virtual dependency per extension to the catalog descriptor."""
    catalog = config.resolve(config.catalog_pom, root_directory)
    if not catalog.is_file():
        return False
    return PomEditor(catalog, config.encoding, config.element_whitespace_style).transform(
        add_dependencies(virtual_dependency(ga) for ga in sorted(extensions))
    )


def update_superapp(root_directory: Path, extensions: Iterable[Ga], version: str, config: PlannerConfig) -> bool:
    """Make the superapp depend on exactly the required extensions and link it from ``product/pom.xml``.

    Returns:
        ``False`` if there is no superapp descriptor, else whether anything changed.
    """
    superapp = config.resolve(config.superapp_pom, root_directory)
    if not superapp.is_file():
        return False
    product_dir = root_directory / PRODUCT_DIR
    module = Path(os.path.relpath(superapp.parent, product_dir)).as_posix()
    changed = PomEditor(product_dir / "pom.xml", config.encoding, config.element_whitespace_style).transform(
        add_module_if_needed(module)
    )
    extensions = sorted(extensions)
    changed |= PomEditor(superapp, config.encoding, config.element_whitespace_style).transform(
        set_parent_version(version),
        remove_dependencies(lambda dep: True),
        add_dependencies(Dependency(ga.group_id, ga.artifact_id) for ga in extensions),
    )
    log.info("superapp_updated", path=str(superapp), extensions=len(extensions), changed=changed)
    return changed


def exclude_tests_from_test_list(tree: SourceTree, exclude_tests: Iterable[Ga], config: PlannerConfig) -> bool:
    """Add every excluded test to the excludes of the test list plugin.

    Paths are the test descriptors relative to ``testListDirectory``.

    Raises:
        GraphInvariantError: If an excluded test is not a module of ``tree``
            or the test list descriptor lacks the plugin.
    """
    root_directory = tree.root_directory
    test_list = config.resolve(config.test_list_pom, root_directory)
    if not test_list.is_file():
        return False
    base = config.resolve(config.test_list_directory, root_directory)
    paths = set()
    for ga in exclude_tests:
        module = tree.modules_by_ga.get(ga)
        if module is None:
            raise GraphInvariantError.unknown_module(ga)
        paths.add(Path(os.path.relpath(root_directory / module.pom_path, base)).as_posix())
    return PomEditor(test_list, config.encoding, config.element_whitespace_style).transform(
        add_plugin_excludes(Ga.of(config.test_list_plugin), sorted(paths))
    )


def update_guide_links(tree: SourceTree, doc_pages: dict, config: PlannerConfig) -> int:
    """Set the ``guide: "..."`` entry of each module's extension metadata.

    Only the first ``guide`` entry is replaced, and only for modules that
    have a page in ``doc_pages``.

    Returns:
        The number of files rewritten.
    """
    updated = 0
    for ga, module in tree.modules_by_ga.items():
        url = doc_pages.get(ga)
        if url is None:
            continue
        metadata = tree.root_directory / module.directory / config.extension_metadata_path
        if not metadata.is_file():
            continue
        try:
            with open(metadata, encoding=config.encoding, newline="") as f:
                source = f.read()
        except OSError as e:
            raise PlannerIOError.read_failed(metadata, e) from e
        match = _GUIDE_RE.search(source)
        if match is None or match.group(1) == url:
            continue
        content = source[:match.start()] + f'guide: "{url}"' + source[match.end():]
        try:
            with open(metadata, "w", encoding=config.encoding, newline="") as f:
                f.write(content)
        except OSError as e:
            raise PlannerIOError.write_failed(metadata, e) from e
        log.info("guide_link_updated", extension=ga.artifact_id, url=url)
        updated += 1
    return updated


class TransitiveDepsTool:
    """The external transitive dependency analyzer.

    The configured command is run in the tree root after its arguments are
    expanded: ``${productizedFile}``, ``${allFile}``, ``${nonProductizedFile}``,
    ``${productVersion}`` and ``${communityVersion}``. Entries of
    ``extraTransitiveMap`` are appended as ``-Dextra.<artifactId>=<patterns>``.
    """

    def __init__(self, config: PlannerConfig, root_directory: Path):
        self.config = config
        self.root_directory = root_directory

    def command(self, product_version: str, community_version: Optional[str]) -> list[str]:
        config = self.config
        values = {
            "productizedFile": str(config.resolve(config.productized_dependencies_file, self.root_directory)),
            "allFile": str(config.resolve(config.all_dependencies_file, self.root_directory)),
            "nonProductizedFile": str(config.resolve(config.non_productized_dependencies_file, self.root_directory)),
            "productVersion": product_version,
            "communityVersion": community_version or "",
        }
        command = [expand(arg, values) for arg in config.transitive_deps_command or []]
        command.extend(
            f"-Dextra.{artifact_id}={patterns}"
            for artifact_id, patterns in sorted(config.extra_transitive_map.items())
        )
        return command

    def run(self, product_version: str, community_version: Optional[str]) -> bool:
        """Run the tool; returns ``False`` if no command is configured.

        Raises:
            PlannerIOError: If the tool cannot be started or exits non-zero.
        """
        if not self.config.transitive_deps_command:
            log.debug("transitive_deps_skipped")
            return False
        command = self.command(product_version, community_version)
        for option in ("productized_dependencies_file", "all_dependencies_file", "non_productized_dependencies_file"):
            self.config.resolve(getattr(self.config, option), self.root_directory).parent.mkdir(
                parents=True, exist_ok=True
            )
        log.info("transitive_deps_started", command=command)
        try:
            completed = subprocess.run(command, cwd=self.root_directory, check=False)
        except OSError as e:
            raise PlannerIOError(f"Could not run {command[0]}: {e}", command=command) from e
        if completed.returncode != 0:
            raise PlannerIOError.tool_failed(command, completed.returncode)
        return True
