"""Foundation catalog lookup.

The foundation catalog is the BOM of the foundation project at
``foundationVersion``. It is read from an explicit file or from a local Maven
repository; remote resolution is left to the build that populates it.
"""

from pathlib import Path

import structlog

from .config import PlannerConfig
from .errors import PlannerIOError
from .pom_models import Ga
from .pom_parser import parse_pom
from .source_tree import SourceTree

log = structlog.get_logger()


def catalog_path(config: PlannerConfig, foundation_version: str) -> Path:
    """Location of the foundation BOM, explicit or in the local repository layout."""
    if config.foundation_bom is not None:
        return config.resolve(config.foundation_bom)
    repository = Path(config.local_repository).expanduser()
    artifact = config.foundation_bom_artifact_id
    return (
        repository.joinpath(*config.foundation_group.split("."))
        / artifact / foundation_version / f"{artifact}-{foundation_version}.pom"
    )


def productized_foundation_artifacts(bom_path: Path, foundation_version: str) -> set[Ga]:
    """Coordinates managed by the BOM at ``foundation_version``.

    An entry counts if its version is ``${project.version}`` or the literal
    ``foundation_version``.

    Raises:
        PlannerIOError: If the BOM does not exist or cannot be read.
    """
    if not bom_path.is_file():
        raise PlannerIOError(f"Foundation catalog {bom_path} does not exist", path=str(bom_path))
    bom = parse_pom(bom_path, bom_path.name)
    return {
        Ga(dep.group_id, dep.artifact_id)
        for dep in bom.project_profile.dep_management
        if dep.version in ("${project.version}", foundation_version)
    }


def required_foundation_artifacts(tree: SourceTree, includes, foundation_group: str) -> set[Ga]:
    """Foundation-group dependencies declared by the included modules (active profiles)."""
    result = set()
    for ga in sorted(includes):
        module = tree.modules_by_ga.get(ga)
        if module is None:
            continue
        result.update(dep for dep in tree.declared_dependencies(module) if dep.group_id == foundation_group)
    return result


def missing_foundation_artifacts(required: set, config: PlannerConfig, foundation_version: str) -> set[Ga]:
    if not required:
        return set()
    bom_path = catalog_path(config, foundation_version)
    available = productized_foundation_artifacts(bom_path, foundation_version)
    missing = {ga for ga in required if ga not in available}
    log.info("foundation_catalog_checked", catalog=str(bom_path), required=len(required), missing=len(missing))
    return missing
