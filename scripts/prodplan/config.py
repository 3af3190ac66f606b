"""Planner configuration.

Options can be given in a YAML file (``--config``), as keyword overrides
(the CLI flags), or both; overrides win. Option names are accepted in
camelCase (``availableNodes``) as well as snake_case.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import ConfigError, PlannerIOError
from .pom_models import Ga
from .taxonomy import ElementWhitespace, OnCheckFailure

DEFAULT_TEST_INCLUDES = ["tests/*/pom.xml", "jvm-tests/*/pom.xml", "test-groups/*/*/pom.xml"]
DEFAULT_AUXILIARY_GLOBS = [
    "Jenkinsfile.product",
    "**/src/main/resources/META-INF/extension-metadata.yaml",
    "product/src/main/generated/*.txt",
]


class TestGlob(BaseModel):
    """A set of test ``pom.xml`` files: glob includes/excludes under a directory."""

    __test__ = False

    directory: str = "."
    includes: list[str] = Field(default_factory=lambda: list(DEFAULT_TEST_INCLUDES))
    excludes: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class PlannerConfig(BaseModel):
    """All options of a planner run. Relative paths resolve against ``basedir``."""

    basedir: Path = Path(".")
    encoding: str = "utf-8"
    product_manifest: Path = Path("product/src/main/resources/product-source.json")
    skip: bool = False
    test_globs: list[TestGlob] = Field(default_factory=lambda: [TestGlob()])
    element_whitespace_style: ElementWhitespace = ElementWhitespace.SPACE
    required_foundation_artifacts_file: Path = Path("target/required-productized-foundation-artifacts.txt")
    productized_artifacts_file: Path = Path("target/productized-artifacts.txt")
    available_nodes: int = Field(10, ge=2)
    ci_file: Path = Path("Jenkinsfile.product")
    ci_stage_template: Optional[Path] = None
    foundation_version: Optional[str] = None
    community_version: Optional[str] = None
    product_version: Optional[str] = None
    on_check_failure: OnCheckFailure = OnCheckFailure.FAIL
    extra_transitive_map: dict[str, str] = Field(default_factory=dict)

    product_group: str = "org.apache.camel.quarkus"
    foundation_group: str = "org.apache.camel"
    artifact_prefix: str = "camel-quarkus-"
    active_profiles: list[str] = Field(default_factory=list)

    foundation_bom: Optional[Path] = None
    foundation_bom_artifact_id: str = "camel-bom"
    local_repository: Path = Path("~/.m2/repository")

    doc_reference_dir: Path = Path("docs/modules/ROOT/pages/reference/extensions")
    community_guide_url_template: str = (
        "https://camel.apache.org/camel-quarkus/latest/reference/extensions/${artifactIdBase}.html"
    )
    default_community_guide: str = "https://camel.apache.org/camel-quarkus/latest/user-guide/index.html"
    extension_metadata_path: str = "src/main/resources/META-INF/extension-metadata.yaml"
    catalog_pom: Path = Path("catalog/pom.xml")
    superapp_pom: Path = Path("product/superapp/pom.xml")
    test_list_pom: Path = Path("tooling/test-list/pom.xml")
    test_list_directory: Path = Path("tests")
    test_list_plugin: str = "org.l2x6.rpkgtests:rpkgtests-maven-plugin"

    check_auxiliary_globs: list[str] = Field(default_factory=lambda: list(DEFAULT_AUXILIARY_GLOBS))
    work_directory: Path = Path("target/prod-excludes-work")

    transitive_deps_command: Optional[list[str]] = None
    productized_dependencies_file: Path = Path("product/src/main/generated/transitive-dependencies-productized.txt")
    all_dependencies_file: Path = Path("product/src/main/generated/transitive-dependencies-all.txt")
    non_productized_dependencies_file: Path = Path(
        "product/src/main/generated/transitive-dependencies-non-productized.txt"
    )

    log_level: str = "INFO"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid", frozen=True)

    @field_validator("element_whitespace_style", mode="before")
    @classmethod
    def parse_element_whitespace(cls, v):
        if isinstance(v, str) and v.upper() in ElementWhitespace.__members__:
            return ElementWhitespace[v.upper()]
        return v

    @field_validator("on_check_failure", mode="before")
    @classmethod
    def parse_on_check_failure(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("test_list_plugin")
    @classmethod
    def validate_test_list_plugin(cls, v: str) -> str:
        Ga.of(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def resolve(self, path: Path, root: Optional[Path] = None) -> Path:
        """Resolve ``path`` against ``root`` (default ``basedir``) unless absolute."""
        path = Path(path).expanduser()
        if path.is_absolute():
            return path
        return (root if root is not None else self.basedir) / path


def load_config(path: Optional[Path] = None, **overrides) -> PlannerConfig:
    """Build a :class:`PlannerConfig` from an optional YAML file plus overrides.

    Args:
        path: YAML file with options, or ``None``.
        **overrides: Option values by snake_case name; ``None`` values are ignored.

    Returns:
        The validated configuration.

    Raises:
        PlannerIOError: If the file cannot be read.
        ConfigError: If the file is not a YAML mapping or an option is invalid.
    """
    data = {}
    if path is not None:
        try:
            with open(path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except OSError as e:
            raise PlannerIOError.read_failed(path, e) from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Could not parse {path}: {e}", path=str(path)) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping of options", path=str(path))
        data.update(loaded or {})

    for name, value in overrides.items():
        if value is None:
            continue
        field = PlannerConfig.model_fields.get(name)
        if field is None:
            raise ConfigError(f"Unknown option {name}", option=name)
        data.pop(name, None)
        data[field.alias or name] = value

    try:
        return PlannerConfig.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        option = ".".join(str(part) for part in first["loc"])
        raise ConfigError(f"Invalid option {option}: {first['msg']}", option=option) from e
