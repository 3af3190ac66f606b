"""Product manifest (``product-source.json``) model and loader.

The manifest lists the extensions that ship productized together with their
per-mode support level. Unknown fields are ignored so that the file can carry
data for other tools.
"""

import json
import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ManifestShapeError, PlannerIOError
from .taxonomy import Support

_GROUP_REFERENCE_RE = re.compile(r"\$(\d+)")


def python_replacement(replacement: str) -> str:
    """Accept ``$1`` style group references in addition to ``\\1``."""
    return _GROUP_REFERENCE_RE.sub(r"\\g<\1>", replacement)


class EntryError(ValueError):
    """Validation error of one mapping entry; ``key`` extends the error pointer."""

    def __init__(self, key: str, reason: str):
        super().__init__(reason)
        self.key = key


class ExtensionEntry(BaseModel):
    """Support levels of one productized extension."""

    jvm: Support
    native: Support
    allowed_mixed_tests: list[str] = Field(default_factory=list, alias="allowedMixedTests")

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    @field_validator("jvm", "native", mode="before")
    @classmethod
    def parse_support(cls, v):
        if isinstance(v, Support):
            return v
        if not isinstance(v, str):
            raise ValueError(f"Expected a support level string, got {type(v).__name__}")
        return Support.parse(v)

    @property
    def has_product_documentation_page(self) -> bool:
        return self.jvm.has_product_documentation_page or self.native.has_product_documentation_page


class ProductManifest(BaseModel):
    """Parsed ``product-source.json``.

    Attributes:
        guide_url_template: URL template of product guide pages.
        extensions: Productized extensions keyed by artifactId.
        additional_productized_artifacts: Further artifactIds to productize.
        exclude_tests: Test artifactIds to leave out of the analysis.
        version_transformations: Regex → replacement pairs for ``*.version``
            properties, applied in declaration order.
    """

    guide_url_template: str = Field(alias="guideUrlTemplate")
    extensions: dict[str, ExtensionEntry] = Field(default_factory=dict)
    additional_productized_artifacts: list[str] = Field(
        default_factory=list, alias="additionalProductizedArtifacts"
    )
    exclude_tests: list[str] = Field(default_factory=list, alias="excludeTests")
    version_transformations: dict[str, str] = Field(default_factory=dict, alias="versionTransformations")

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    @field_validator("version_transformations")
    @classmethod
    def compile_patterns(cls, v: dict) -> dict:
        for pattern, replacement in v.items():
            try:
                compiled = re.compile(pattern)
            except re.error as e:
                raise EntryError(pattern, f"Invalid regular expression '{pattern}': {e}") from e
            try:
                # the replacement template is parsed before any matching
                compiled.sub(python_replacement(replacement), "")
            except (re.error, IndexError) as e:
                raise EntryError(pattern, f"Invalid replacement '{replacement}': {e}") from e
        return v

    @model_validator(mode="after")
    def check_contradictions(self):
        excluded = set(self.exclude_tests)
        for artifact_id, entry in self.extensions.items():
            if artifact_id in excluded:
                raise ValueError(f"Extension {artifact_id} is also listed in excludeTests")
            for test in entry.allowed_mixed_tests:
                if test in excluded:
                    raise ValueError(
                        f"Test {test} is allowed as mixed test of {artifact_id} but also listed in excludeTests"
                    )
        return self


def _pointer(error: dict) -> str:
    """JSON pointer of a pydantic error, e.g. ``/extensions/foo/jvm``."""
    loc = tuple(error["loc"])
    cause = error.get("ctx", {}).get("error")
    if isinstance(cause, EntryError):
        loc += (cause.key,)
    if not loc:
        return "/"
    return "/" + "/".join(str(part).replace("~", "~0").replace("/", "~1") for part in loc)


def load_manifest(path: Path, encoding: str = "utf-8") -> ProductManifest:
    """Read and validate the product manifest.

    Args:
        path: Path of the JSON manifest.
        encoding: File encoding.

    Returns:
        The validated manifest.

    Raises:
        PlannerIOError: If the file cannot be read.
        ManifestShapeError: If the file is not valid JSON, has the wrong shape
            or contradicts itself.
    """
    try:
        with open(path, encoding=encoding) as f:
            raw = f.read()
    except OSError as e:
        raise PlannerIOError.read_failed(path, e) from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ManifestShapeError.invalid(path, f"line {e.lineno} column {e.colno}", e.msg) from e
    if not isinstance(data, dict):
        raise ManifestShapeError.invalid(path, "/", "expected a JSON object")
    try:
        return ProductManifest.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise ManifestShapeError.invalid(path, _pointer(first), first["msg"]) from e
