"""prodplan error types with process exit codes.

Exit codes:
- 0: success
- 1: fatal invariant, manifest or IO error
- 2: CHECK mode found differences and ``onCheckFailure=FAIL``
- 3: productized extensions without a covering test
- 4: required foundation artifacts missing from the foundation catalog
"""

from enum import IntEnum
from pathlib import Path
from typing import Any, Optional


class ExitCode(IntEnum):
    """Process exit codes of the ``prodplan`` command."""

    SUCCESS = 0
    FATAL = 1
    CHECK_DIFF = 2
    UNCOVERED_EXTENSIONS = 3
    MISSING_FOUNDATION_ARTIFACTS = 4


class PlannerError(Exception):
    """Base error carrying the exit code and structured context."""

    exit_code = ExitCode.FATAL
    kind = "Internal"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "exit_code": int(self.exit_code),
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class PlannerIOError(PlannerError):
    """Read/write/permission failure on a specific path."""

    kind = "IO"

    @classmethod
    def read_failed(cls, path: Path, cause: Exception) -> "PlannerIOError":
        return cls(f"Could not read {path}: {cause}", path=str(path))

    @classmethod
    def write_failed(cls, path: Path, cause: Exception) -> "PlannerIOError":
        return cls(f"Could not write {path}: {cause}", path=str(path))

    @classmethod
    def tool_failed(cls, command: list[str], returncode: int) -> "PlannerIOError":
        return cls(
            f"Command {' '.join(command)} exited with {returncode}",
            command=command,
            returncode=returncode,
        )


class ManifestShapeError(PlannerError):
    """Malformed or contradictory product manifest."""

    kind = "ManifestShape"

    @classmethod
    def invalid(cls, path: Path, pointer: str, reason: str) -> "ManifestShapeError":
        return cls(f"{path} at {pointer}: {reason}", path=str(path), pointer=pointer, reason=reason)


class ConfigError(PlannerError):
    """Invalid planner configuration (option values or config file)."""

    kind = "Config"


class GraphInvariantError(PlannerError):
    """The source tree violates a structural invariant."""

    kind = "GraphInvariant"

    @classmethod
    def malformed_descriptor(cls, rel_path: str, reason: str) -> "GraphInvariantError":
        return cls(f"Could not parse {rel_path}: {reason}", path=rel_path)

    @classmethod
    def missing_module(cls, rel_path: str, referenced_from: str) -> "GraphInvariantError":
        return cls(
            f"Module {rel_path} referenced from {referenced_from} does not exist",
            path=rel_path,
            referenced_from=referenced_from,
        )

    @classmethod
    def unknown_parent(cls, rel_path: str, parent: str) -> "GraphInvariantError":
        return cls(
            f"Could not locate parent {parent} of {rel_path} in the source tree",
            path=rel_path,
            parent=parent,
        )

    @classmethod
    def unknown_module(cls, ga: Any) -> "GraphInvariantError":
        return cls(f"No module {ga} in the source tree", ga=str(ga))

    @classmethod
    def unresolved_expression(cls, expression: str, rel_path: str) -> "GraphInvariantError":
        return cls(
            f"Could not evaluate {expression} in {rel_path}",
            expression=expression,
            path=rel_path,
        )


class CategoryRegressionError(PlannerError):
    """A test category was downgraded; indicates an algorithm bug."""

    kind = "CategoryRegression"


class UncoveredExtensionsError(PlannerError):
    """Productized extensions without any covering test."""

    exit_code = ExitCode.UNCOVERED_EXTENSIONS
    kind = "UncoveredExtension"

    def __init__(self, uncovered: dict, manifest_path: Optional[str] = None):
        self.uncovered = uncovered
        super().__init__(
            self.render(uncovered, manifest_path),
            extensions=[str(ga) for ga in uncovered],
        )

    @staticmethod
    def render(uncovered: dict, manifest_path: Optional[str] = None) -> str:
        """Render the extension → test → missing dependencies report."""
        lines = ["Unable to find tests for extensions:"]
        for ext, tests in sorted(uncovered.items()):
            lines.append(f" - Extension {ext.artifact_id}:")
            if not tests:
                lines.append("   - no test found")
            for test, missing in sorted(tests.items()):
                lines.append(f"   - Test {test.artifact_id} has unsatisfied dependencies:")
                lines.extend(f"     - {dep.artifact_id}" for dep in sorted(missing))
        lines.append("")
        lines.append(
            "Consider adding allowedMixedTests to the respective extension entries in "
            f"{manifest_path or 'the product manifest'} and re-running prodplan apply"
        )
        return "\n".join(lines)


class MissingFoundationArtifactsError(PlannerError):
    """Foundation artifacts required by productized modules but not managed by the catalog."""

    exit_code = ExitCode.MISSING_FOUNDATION_ARTIFACTS
    kind = "MissingFoundationArtifact"

    def __init__(self, missing: set, catalog: str):
        self.missing = missing
        listing = "\n - ".join(ga.artifact_id for ga in sorted(missing))
        super().__init__(
            f"The following foundation artifacts are not managed in {catalog}"
            f" but are required by productized extensions:\n - {listing}",
            missing=[str(ga) for ga in sorted(missing)],
            catalog=catalog,
        )


class CheckDiffError(PlannerError):
    """CHECK mode saw a divergence between the shadow and the source tree."""

    exit_code = ExitCode.CHECK_DIFF
    kind = "CheckDiff"

    def __init__(self, diffs: list):
        self.diffs = diffs
        super().__init__(
            "Source tree is not in sync with the product manifest; run prodplan apply:\n"
            + "\n".join(diffs),
            files=len(diffs),
        )
