"""Maven POM parsing and XML helpers.

Reads ``pom.xml`` files into the dataclasses of :mod:`prodplan.pom_models`.
Parsing is read-only; edits go through :mod:`prodplan.pom_editor`, which
works on the raw text to preserve formatting.
"""

import xml.etree.ElementTree as ET
from pathlib import Path

from .errors import GraphInvariantError, PlannerIOError
from .pom_models import Dependency, Gav, MavenModule, MavenProfile, Plugin

# XML namespace used by Maven POM files (POM model version 4.0.0).
NS = {"m": "http://maven.apache.org/POM/4.0.0"}


def _find(el, tag, ns=NS):
    """Find a direct child XML element, trying with and without the Maven namespace.

    Args:
        el: Parent XML element to search within.
        tag: Tag name to look for (without namespace prefix).
        ns: Namespace mapping (defaults to Maven POM 4.0.0).

    Returns:
        The first matching child element, or ``None`` if not found.
    """
    result = el.find(f"m:{tag}", ns)
    if result is not None:
        return result
    return el.find(tag)


def _findall(el, tag, ns=NS):
    """Find all direct children named ``tag``, namespaced or not."""
    if el is None:
        return []
    return list(el.findall(f"m:{tag}", ns)) + list(el.findall(tag))


def _text(el, tag, ns=NS):
    """Extract the text content of a child element.

    Args:
        el: Parent XML element.
        tag: Tag name of the child element.
        ns: Namespace mapping.

    Returns:
        Stripped text content, or ``None`` if the element doesn't exist or is empty.
    """
    child = _find(el, tag, ns)
    if child is not None and child.text:
        return child.text.strip()
    return None


def _local_name(el) -> str:
    return el.tag.split("}")[-1] if "}" in el.tag else el.tag


def _parse_dependency(dep_el) -> Dependency:
    """Parse a ``<dependency>`` XML element into a Dependency dataclass.

    Extracts scope, type, optional flag, and any ``<exclusions>`` children.
    Raw ``${...}`` expressions are kept as-is.

    Args:
        dep_el: The ``<dependency>`` XML element.

    Returns:
        A populated Dependency instance.
    """
    scope = _text(dep_el, "scope") or "compile"
    optional_text = _text(dep_el, "optional")
    optional = bool(optional_text) and optional_text.lower() == "true"
    exclusions = []
    for ex in _findall(_find(dep_el, "exclusions"), "exclusion"):
        eg = _text(ex, "groupId")
        ea = _text(ex, "artifactId")
        if eg and ea:
            exclusions.append((eg, ea))
    return Dependency(
        group_id=_text(dep_el, "groupId") or "",
        artifact_id=_text(dep_el, "artifactId") or "",
        version=_text(dep_el, "version"),
        scope=scope,
        classifier=_text(dep_el, "classifier"),
        dep_type=_text(dep_el, "type"),
        optional=optional,
        exclusions=exclusions,
    )


def _parse_plugin(plugin_el) -> Plugin:
    return Plugin(
        group_id=_text(plugin_el, "groupId") or "org.apache.maven.plugins",
        artifact_id=_text(plugin_el, "artifactId") or "",
        version=_text(plugin_el, "version"),
    )


def _parse_profile_content(container_el, profile_id) -> MavenProfile:
    """Parse the profile-scoped content of ``<project>`` or a ``<profile>``.

    Both carry the same children: properties, dependencies,
    dependencyManagement, build plugins, and modules.

    Args:
        container_el: The ``<project>`` or ``<profile>`` element.
        profile_id: Profile id, ``None`` for the project level.

    Returns:
        A populated MavenProfile instance.
    """
    props = {}
    props_el = _find(container_el, "properties")
    if props_el is not None:
        for child in props_el:
            if not isinstance(child.tag, str):
                continue
            props[_local_name(child)] = (child.text or "").strip()

    deps = [_parse_dependency(d) for d in _findall(_find(container_el, "dependencies"), "dependency")]

    dep_mgmt = []
    dm_el = _find(container_el, "dependencyManagement")
    if dm_el is not None:
        dep_mgmt = [_parse_dependency(d) for d in _findall(_find(dm_el, "dependencies"), "dependency")]

    plugins = []
    build_el = _find(container_el, "build")
    if build_el is not None:
        plugins = [_parse_plugin(p) for p in _findall(_find(build_el, "plugins"), "plugin")]

    modules = [
        m.text.strip()
        for m in _findall(_find(container_el, "modules"), "module")
        if m.text and m.text.strip()
    ]

    return MavenProfile(
        profile_id=profile_id,
        properties=props,
        dependencies=deps,
        dep_management=dep_mgmt,
        plugins=plugins,
        modules=modules,
    )


def parse_pom(pom_path: Path, rel_path: str = "pom.xml") -> MavenModule:
    """Parse a ``pom.xml`` file into a MavenModule.

    Handles both namespaced and non-namespaced POM files. The project-level
    content becomes the first profile (id ``None``), followed by each
    declared ``<profile>`` in document order.

    Args:
        pom_path: Filesystem path to the pom.xml file.
        rel_path: POSIX path of the file relative to the source tree root.

    Returns:
        A populated MavenModule. groupId and version fall back to the parent's
        when not declared.

    Raises:
        PlannerIOError: If the file cannot be read.
        GraphInvariantError: If the file is not well-formed XML.
    """
    try:
        tree = ET.parse(pom_path)
    except ET.ParseError as e:
        raise GraphInvariantError.malformed_descriptor(rel_path, str(e)) from e
    except OSError as e:
        raise PlannerIOError.read_failed(pom_path, e) from e
    root = tree.getroot()

    parent = None
    parent_el = _find(root, "parent")
    if parent_el is not None:
        parent = Gav(
            group_id=_text(parent_el, "groupId"),
            artifact_id=_text(parent_el, "artifactId") or "",
            version=_text(parent_el, "version"),
            relative_path=_text(parent_el, "relativePath"),
        )

    profiles = [_parse_profile_content(root, None)]
    for prof_el in _findall(_find(root, "profiles"), "profile"):
        profiles.append(_parse_profile_content(prof_el, _text(prof_el, "id") or "default"))

    return MavenModule(
        pom_path=rel_path,
        group_id=_text(root, "groupId") or (parent.group_id if parent else None),
        artifact_id=_text(root, "artifactId") or "",
        version=_text(root, "version") or (parent.version if parent else None),
        packaging=_text(root, "packaging") or "jar",
        name=_text(root, "name"),
        parent=parent,
        profiles=profiles,
    )
