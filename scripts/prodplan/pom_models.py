"""Maven data model classes.

Pure data structures representing parsed Maven POM elements.
No behavior beyond small derived properties and no imports from other
prodplan modules.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True, order=True)
class Ga:
    """A Maven ``groupId:artifactId`` coordinate.

    Instances are hashable and totally ordered by ``(group_id, artifact_id)``,
    which is the sort key used everywhere a set of coordinates is iterated.

    Attributes:
        group_id: Maven groupId (e.g. ``org.apache.camel.quarkus``).
        artifact_id: Maven artifactId (e.g. ``camel-quarkus-core``).
    """
    group_id: str
    artifact_id: str

    @classmethod
    def of(cls, coords: str) -> "Ga":
        """Parse a ``group:artifact`` string."""
        group_id, sep, artifact_id = coords.partition(":")
        if not sep or not group_id or not artifact_id:
            raise ValueError(f"Expected groupId:artifactId, got '{coords}'")
        return cls(group_id, artifact_id)

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}"


@dataclass(frozen=True)
class Gav:
    """A coordinate with a raw (possibly ``${...}``) version expression.

    Attributes:
        group_id: Raw groupId expression.
        artifact_id: Raw artifactId expression.
        version: Raw version expression, or ``None`` if inherited/managed.
        relative_path: ``<relativePath>`` of a ``<parent>`` element, if any.
    """
    group_id: Optional[str]
    artifact_id: str
    version: Optional[str] = None
    relative_path: Optional[str] = None


@dataclass
class Dependency:
    """A Maven ``<dependency>`` element.

    Group, artifact and version are kept as raw expressions exactly as they
    appear in the POM; evaluation happens in the source tree.

    Attributes:
        group_id: Raw groupId (e.g. ``${project.groupId}``).
        artifact_id: Raw artifactId.
        version: Raw version expression, or ``None`` if managed elsewhere.
        scope: Maven scope, one of compile, provided, runtime, test, system, import.
        classifier: Optional classifier (e.g. ``sources``, ``tests``).
        dep_type: Optional packaging type (e.g. ``pom`` for BOM imports).
        optional: Whether the dependency is marked ``<optional>true</optional>``.
        exclusions: List of ``(groupId, artifactId)`` tuples to exclude.
    """
    group_id: str
    artifact_id: str
    version: Optional[str] = None
    scope: str = "compile"
    classifier: Optional[str] = None
    dep_type: Optional[str] = None
    optional: bool = False
    exclusions: list = field(default_factory=list)

    @property
    def is_virtual(self) -> bool:
        """Whether this is a virtual (marker) dependency.

        Virtual dependencies are ``type=pom``, ``scope=test`` entries excluding
        ``*:*``. They only order the reactor and never take part in the
        module closure.
        """
        return (
            self.dep_type == "pom"
            and self.scope == "test"
            and ("*", "*") in self.exclusions
        )

    @property
    def is_bom_import(self) -> bool:
        return self.dep_type == "pom" and self.scope == "import"


@dataclass
class Plugin:
    """A Maven ``<plugin>`` element.

    Attributes:
        group_id: Plugin groupId (defaults to ``org.apache.maven.plugins``).
        artifact_id: Plugin artifactId.
        version: Raw version expression, or ``None`` if inherited from pluginManagement.
    """
    group_id: str
    artifact_id: str
    version: Optional[str] = None


@dataclass
class MavenProfile:
    """A Maven ``<profile>`` element, or the implicit project-level profile.

    The project-level content of a POM (top-level properties, dependencies,
    etc.) is modelled as a profile with ``profile_id=None`` so that every
    per-profile algorithm treats it uniformly.

    Attributes:
        profile_id: The ``<id>`` of the profile, ``None`` for project level.
        properties: Properties declared within the profile, in document order.
        dependencies: Dependencies declared within the profile.
        dep_management: ``<dependencyManagement>`` entries of the profile.
        plugins: ``<build><plugins>`` entries of the profile.
        modules: Child module entries (``<modules>``) of the profile.
    """
    profile_id: Optional[str] = None
    properties: dict = field(default_factory=dict)
    dependencies: list = field(default_factory=list)
    dep_management: list = field(default_factory=list)
    plugins: list = field(default_factory=list)
    modules: list = field(default_factory=list)


@dataclass
class MavenModule:
    """Central parse result for a single ``pom.xml`` file.

    Attributes:
        pom_path: POSIX path of the ``pom.xml`` relative to the tree root
            (``pom.xml`` for the root module).
        group_id: Raw groupId (inherited from parent if not declared).
        artifact_id: Raw artifactId.
        version: Raw version (inherited from parent if not declared).
        packaging: Packaging type, e.g. jar or pom.
        name: Human-readable ``<name>`` element.
        parent: Raw ``<parent>`` coordinates, if any.
        profiles: Project-level profile first, then declared profiles.
    """
    pom_path: str
    group_id: Optional[str]
    artifact_id: str
    version: Optional[str] = None
    packaging: str = "jar"
    name: Optional[str] = None
    parent: Optional[Gav] = None
    profiles: list = field(default_factory=list)

    @property
    def project_profile(self) -> MavenProfile:
        return self.profiles[0]

    @property
    def directory(self) -> str:
        """POSIX directory of the module relative to the tree root (``""`` for root)."""
        head, _, _ = self.pom_path.rpartition("/")
        return head
