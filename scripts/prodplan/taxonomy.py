"""Closed enumerations shared by the planner components."""

from enum import Enum
from typing import Optional

from .errors import CategoryRegressionError


class ProjectEdition(Enum):
    """Product vs. community edition of an artifact of the product group.

    Each edition accepts a set of version expressions and prefers one of them
    when a managed dependency has to be rewritten.
    """

    PRODUCT = (
        frozenset({"${self.version}", "${project.version}", "${product.version}"}),
        "${product.version}",
    )
    COMMUNITY = (frozenset({"${community.version}"}), "${community.version}")

    def __init__(self, version_expressions, preferred_version_expression):
        self.version_expressions = version_expressions
        self.preferred_version_expression = preferred_version_expression


class FoundationEdition(Enum):
    PRODUCT = "${foundation.version}"
    COMMUNITY = "${foundation-community.version}"

    @property
    def version_expression(self) -> str:
        return self.value


class TestCategory(Enum):
    """Integration test categories, best first.

    ``PURE_PRODUCT``: covers productized extensions only, all dependencies productized.
    ``MIXED_ALLOWED``: explicitly allowed to depend on community artifacts.
    ``MIXED_JVM``: mixed, JVM mode only.
    ``MIXED_NATIVE``: mixed, native capable.
    """

    __test__ = False

    PURE_PRODUCT = ("Product", False, True)
    MIXED_ALLOWED = ("Mixed Allowed", True, True)
    MIXED_JVM = ("Mixed JVM", True, False)
    MIXED_NATIVE = ("Mixed Native", True, True)

    def __init__(self, human_name, mixed, native):
        self.human_name = human_name
        self.mixed = mixed
        self.native = native

    @property
    def ordinal(self) -> int:
        return list(TestCategory).index(self)

    @property
    def key(self) -> str:
        """Directory-friendly key, e.g. ``mixed-allowed``."""
        return self.human_name.lower().replace(" ", "-")

    def upgrade_from(self, old: Optional["TestCategory"]) -> "TestCategory":
        """Return ``self`` if it ranks at least as high as ``old``.

        Raises:
            CategoryRegressionError: If ``self`` ranks lower than ``old``.
        """
        if old is None or self.ordinal <= old.ordinal:
            return self
        raise CategoryRegressionError(
            f"Cannot upgrade from {old.name} to {self.name}",
            old=old.name,
            new=self.name,
        )


class Support(Enum):
    """Per-mode support level of an extension in the product."""

    COMMUNITY = "COMMUNITY"
    TECH_PREVIEW = "TECH_PREVIEW"
    SUPPORTED = "SUPPORTED"

    @classmethod
    def parse(cls, value: str) -> "Support":
        """Accept ``TECH_PREVIEW`` as well as the camelCase ``techPreview``."""
        normalized = value.strip()
        aliases = {"community": cls.COMMUNITY, "techpreview": cls.TECH_PREVIEW, "supported": cls.SUPPORTED}
        compact = normalized.replace("_", "").replace("-", "").lower()
        if compact in aliases:
            return aliases[compact]
        raise ValueError(f"Unknown support level '{value}'")

    @property
    def has_product_documentation_page(self) -> bool:
        if self is Support.COMMUNITY:
            return False
        if self in (Support.TECH_PREVIEW, Support.SUPPORTED):
            return True
        raise AssertionError(f"Unexpected Support.{self.name}")


class OnCheckFailure(Enum):
    WARN = "WARN"
    FAIL = "FAIL"
    IGNORE = "IGNORE"


class ElementWhitespace(Enum):
    """How empty elements are written: ``<e />`` (SPACE) or ``<e/>`` (EMPTY)."""

    SPACE = " />"
    EMPTY = "/>"


class Mode(Enum):
    APPLY = "apply"
    CHECK = "check"


class RunState(Enum):
    LOADED = "LOADED"
    PLANNED = "PLANNED"
    REWRITTEN = "REWRITTEN"
    ANALYZED = "ANALYZED"
    PRUNED = "PRUNED"
    PARTITIONED = "PARTITIONED"
    REPORTED = "REPORTED"
    VERIFIED = "VERIFIED"
    COMMITTED = "COMMITTED"
    FAILED = "FAILED"
