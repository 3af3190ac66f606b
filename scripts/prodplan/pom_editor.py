"""Formatting-preserving ``pom.xml`` editing.

ElementTree drops comments and reformats on write, so edits work on the raw
text instead: the document is tokenized into element spans, each edit splices
the text, and the spans are recomputed. Everything outside the edited spans
is kept byte for byte.

Edits are expressed as transformations (callables taking a
:class:`PomDocument`) and applied through :class:`PomEditor`, which reads the
file, applies them in order and writes it back only if something changed.
"""

import re
from pathlib import Path
from typing import Callable, Iterable, Optional
from xml.sax.saxutils import escape, unescape

import structlog

from .errors import GraphInvariantError, PlannerIOError
from .pom_models import Dependency, Ga
from .taxonomy import ElementWhitespace

log = structlog.get_logger()

Transformation = Callable[["PomDocument"], None]

_TOKEN_RE = re.compile(
    r"(?P<comment><!--.*?-->)"
    r"|(?P<cdata><!\[CDATA\[.*?\]\]>)"
    r"|(?P<pi><\?.*?\?>)"
    r"|(?P<doctype><!DOCTYPE[^>]*>)"
    r"|</(?P<close>[\w:.\-]+)\s*>"
    r"|<(?P<open>[\w:.\-]+)(?:\s+[^\s=/>]+\s*=\s*(?:\"[^\"]*\"|'[^']*'))*\s*(?P<selfclose>/?)>",
    re.S,
)


class XmlElement:
    """Span of one element in the document text.

    ``inner_start``/``inner_end`` delimit the content between the start and
    end tags; both are ``None`` for self-closing elements.
    """

    __slots__ = ("name", "start", "end", "inner_start", "inner_end", "children", "parent")

    def __init__(self, name, start, parent=None):
        self.name = name.split(":")[-1]
        self.start = start
        self.end = None
        self.inner_start = None
        self.inner_end = None
        self.children = []
        self.parent = parent

    @property
    def self_closing(self) -> bool:
        return self.inner_start is None

    def child(self, name: str) -> Optional["XmlElement"]:
        return next((c for c in self.children if c.name == name), None)

    def children_named(self, name: str) -> list:
        return [c for c in self.children if c.name == name]

    def address(self) -> tuple:
        """Child indices from the root; stable across edits that only append."""
        path = []
        node = self
        while node.parent is not None:
            path.append(node.parent.children.index(node))
            node = node.parent
        return tuple(reversed(path))


def _tokenize(text: str, source: str) -> XmlElement:
    root = None
    stack = []
    for match in _TOKEN_RE.finditer(text):
        if match.group("open"):
            element = XmlElement(match.group("open"), match.start(), stack[-1] if stack else None)
            if stack:
                stack[-1].children.append(element)
            elif root is None:
                root = element
            else:
                raise GraphInvariantError.malformed_descriptor(source, "more than one root element")
            if match.group("selfclose"):
                element.end = match.end()
            else:
                element.inner_start = match.end()
                stack.append(element)
        elif match.group("close"):
            name = match.group("close").split(":")[-1]
            if not stack or stack[-1].name != name:
                raise GraphInvariantError.malformed_descriptor(source, f"unexpected </{name}> at offset {match.start()}")
            element = stack.pop()
            element.inner_end = match.start()
            element.end = match.end()
    if root is None or stack:
        raise GraphInvariantError.malformed_descriptor(source, "unbalanced elements")
    return root


class PomDocument:
    """Mutable text of a ``pom.xml`` with an element index over it."""

    def __init__(
        self,
        text: str,
        element_whitespace: ElementWhitespace = ElementWhitespace.SPACE,
        source: str = "pom.xml",
    ):
        self.text = text
        self.element_whitespace = element_whitespace
        self.source = source
        self.newline = "\r\n" if "\r\n" in text else "\n"
        self.root = _tokenize(text, source)
        self.indent_unit = self._detect_indent_unit()

    # ── Low level ────────────────────────────────────────────────────────

    def _detect_indent_unit(self) -> str:
        if self.root.children:
            unit = self.indent_of(self.root.children[0])[len(self.indent_of(self.root)):]
            if unit:
                return unit
        return "    "

    def _splice(self, edits: Iterable[tuple]) -> None:
        """Apply ``(start, end, replacement)`` edits, then re-index."""
        for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
            self.text = self.text[:start] + replacement + self.text[end:]
        self.root = _tokenize(self.text, self.source)

    def resolve(self, address: tuple) -> XmlElement:
        node = self.root
        for index in address:
            node = node.children[index]
        return node

    def indent_of(self, element: XmlElement) -> str:
        line_start = self.text.rfind("\n", 0, element.start) + 1
        return re.match(r"[ \t]*", self.text[line_start:element.start]).group(0)

    def text_of(self, element: Optional[XmlElement]) -> Optional[str]:
        if element is None:
            return None
        if element.self_closing:
            return ""
        return unescape(self.text[element.inner_start:element.inner_end].strip())

    def child_text(self, element: XmlElement, name: str) -> Optional[str]:
        return self.text_of(element.child(name))

    def _render(self, name: str, content, indent: str) -> str:
        """Render an element; ``content`` is ``None``, a string, or a list of ``(name, content)``."""
        if content is None:
            return f"<{name}{self.element_whitespace.value}"
        if isinstance(content, str):
            return f"<{name}>{escape(content)}</{name}>"
        inner_indent = indent + self.indent_unit
        inner = "".join(
            self.newline + inner_indent + self._render(child_name, child_content, inner_indent)
            for child_name, child_content in content
        )
        return f"<{name}>{inner}{self.newline}{indent}</{name}>"

    # ── Structural edits ─────────────────────────────────────────────────

    def set_text(self, element: XmlElement, value: str) -> None:
        if element.self_closing:
            self._splice([(element.start, element.end, f"<{element.name}>{escape(value)}</{element.name}>")])
        else:
            self._splice([(element.inner_start, element.inner_end, escape(value))])

    def append_child(self, parent: XmlElement, name: str, content=None, before: Optional[XmlElement] = None) -> XmlElement:
        """Insert a new child element into ``parent`` and return it.

        The child goes before ``before`` if given, else after the last child
        element. Indentation follows the parent's.
        """
        address = parent.address()
        parent_indent = self.indent_of(parent)
        child_indent = parent_indent + self.indent_unit
        snippet = self._render(name, content, child_indent)
        nl = self.newline
        if before is not None:
            index = parent.children.index(before)
            self._splice([(before.start, before.start, snippet + nl + child_indent)])
            return self.resolve(address).children[index]
        if parent.self_closing:
            open_tag = re.sub(r"\s*/>$", ">", self.text[parent.start:parent.end])
            self._splice([(
                parent.start, parent.end,
                f"{open_tag}{nl}{child_indent}{snippet}{nl}{parent_indent}</{parent.name}>",
            )])
        elif parent.children:
            self._splice([(parent.children[-1].end, parent.children[-1].end, nl + child_indent + snippet)])
        else:
            inner = self.text[parent.inner_start:parent.inner_end]
            if inner.strip():
                position = parent.inner_start + len(inner.rstrip())
                self._splice([(position, position, nl + child_indent + snippet)])
            else:
                self._splice([(parent.inner_start, parent.inner_end, nl + child_indent + snippet + nl + parent_indent)])
        return self.resolve(address).children[-1]

    def remove_elements(self, elements: Iterable[XmlElement]) -> None:
        """Remove elements together with the indentation and newline preceding them."""
        edits = []
        for element in elements:
            start = element.start
            while start > 0 and self.text[start - 1] in " \t":
                start -= 1
            if start > 0 and self.text[start - 1] == "\n":
                start -= 1
                if start > 0 and self.text[start - 1] == "\r":
                    start -= 1
            else:
                start = element.start
            edits.append((start, element.end, ""))
        if edits:
            self._splice(edits)

    def clear(self, element: XmlElement) -> None:
        """Drop all content (children, comments, text) of ``element``."""
        if element.self_closing:
            return
        self._splice([(element.inner_start, element.inner_end, self.newline + self.indent_of(element))])

    # ── Navigation ───────────────────────────────────────────────────────

    def find(self, *names: str) -> Optional[XmlElement]:
        """Follow child names from the ``<project>`` element."""
        node = self.root
        for name in names:
            node = node.child(name)
            if node is None:
                return None
        return node

    def profile(self, profile_id: Optional[str], create: bool = False) -> Optional[XmlElement]:
        """The ``<project>`` element for ``None``, else the ``<profile>`` with that id."""
        if profile_id is None:
            return self.root
        profiles = self.find("profiles")
        if profiles is not None:
            for candidate in profiles.children_named("profile"):
                if self.child_text(candidate, "id") == profile_id:
                    return candidate
        if not create:
            return None
        profiles = self.container(None, "profiles", create=True)
        return self.append_child(profiles, "profile", [("id", profile_id)])

    def container(self, profile_id: Optional[str], *names: str, create: bool = False) -> Optional[XmlElement]:
        """Find (or create) the element at ``names`` below the given profile."""
        node = self.profile(profile_id, create=create)
        for name in names:
            if node is None:
                return None
            child = node.child(name)
            if child is None and create:
                child = self.append_child(node, name, [])
            node = child
        return node

    def add_or_set_child_text(self, parent: XmlElement, name: str, value: str) -> None:
        child = parent.child(name)
        if child is None:
            self.append_child(parent, name, value)
        elif self.text_of(child) != value:
            self.set_text(child, value)

    def dependency_of(self, element: XmlElement) -> Dependency:
        """Read a ``<dependency>`` element as raw coordinates."""
        exclusions = []
        exclusions_el = element.child("exclusions")
        if exclusions_el is not None:
            for ex in exclusions_el.children_named("exclusion"):
                exclusions.append((self.child_text(ex, "groupId"), self.child_text(ex, "artifactId")))
        return Dependency(
            group_id=self.child_text(element, "groupId") or "",
            artifact_id=self.child_text(element, "artifactId") or "",
            version=self.child_text(element, "version"),
            scope=self.child_text(element, "scope") or "compile",
            dep_type=self.child_text(element, "type"),
            exclusions=exclusions,
        )


class PomEditor:
    """Applies transformations to one ``pom.xml`` file.

    The file is read and written within ``with`` blocks, so it is closed on
    every exit path. Line separators of the original file are preserved.
    """

    def __init__(
        self,
        path: Path,
        encoding: str = "utf-8",
        element_whitespace: ElementWhitespace = ElementWhitespace.SPACE,
    ):
        self.path = path
        self.encoding = encoding
        self.element_whitespace = element_whitespace

    def transform(self, *transformations: Transformation) -> bool:
        """Apply ``transformations`` in order.

        Returns:
            ``True`` if the file content changed and was written.
        """
        try:
            with open(self.path, encoding=self.encoding, newline="") as f:
                original = f.read()
        except OSError as e:
            raise PlannerIOError.read_failed(self.path, e) from e
        document = PomDocument(original, self.element_whitespace, str(self.path))
        for transformation in transformations:
            transformation(document)
        if document.text == original:
            return False
        try:
            with open(self.path, "w", encoding=self.encoding, newline="") as f:
                f.write(document.text)
        except OSError as e:
            raise PlannerIOError.write_failed(self.path, e) from e
        log.debug("pom_edited", path=str(self.path), transformations=len(transformations))
        return True


# ── Transformations ─────────────────────────────────────────────────────────

_COMMENTED_MODULE_TEMPLATE = r"<!--\s*<module>\s*([^<]+?)\s*</module>\s*{mark}\s*-->"


def comment_modules(names: Iterable[str], mark: str) -> Transformation:
    """Comment out the ``<module>`` entries whose text is in ``names``.

    The result is ``<!-- <module>x</module> mark -->``, which
    :func:`uncomment_modules` reverts exactly.
    """
    wanted = set(names)

    def _transform(doc: PomDocument) -> None:
        edits = []
        stack = [doc.root]
        while stack:
            node = stack.pop()
            stack.extend(node.children)
            if node.name == "module" and node.parent is not None and node.parent.name == "modules":
                name = doc.text_of(node)
                if name in wanted:
                    edits.append((node.start, node.end, f"<!-- <module>{escape(name)}</module> {mark} -->"))
        if edits:
            doc._splice(edits)

    return _transform


def uncomment_modules(mark: str, predicate: Optional[Callable[[str], bool]] = None) -> Transformation:
    """Re-enable module entries previously disabled with ``mark``."""
    pattern = re.compile(_COMMENTED_MODULE_TEMPLATE.format(mark=re.escape(mark)))

    def _transform(doc: PomDocument) -> None:
        edits = [
            (m.start(), m.end(), f"<module>{m.group(1)}</module>")
            for m in pattern.finditer(doc.text)
            if predicate is None or predicate(unescape(m.group(1)))
        ]
        if edits:
            doc._splice(edits)

    return _transform


def commented_modules(text: str, mark: str) -> list[str]:
    """Module entries disabled with ``mark`` in ``text``."""
    pattern = re.compile(_COMMENTED_MODULE_TEMPLATE.format(mark=re.escape(mark)))
    return [unescape(m.group(1)) for m in pattern.finditer(text)]


def remove_all_modules(profile_id: Optional[str] = None) -> Transformation:
    def _transform(doc: PomDocument) -> None:
        modules = doc.container(profile_id, "modules")
        if modules is not None:
            doc.clear(modules)

    return _transform


def add_module_if_needed(name: str) -> Transformation:
    """Add a project-level ``<module>`` keeping the entries sorted."""
    def _transform(doc: PomDocument) -> None:
        modules = doc.container(None, "modules", create=True)
        entries = modules.children_named("module")
        if any(doc.text_of(e) == name for e in entries):
            return
        before = next((e for e in entries if doc.text_of(e) > name), None)
        doc.append_child(modules, "module", name, before=before)

    return _transform


def add_modules(profile_id: Optional[str], names: Iterable[str]) -> Transformation:
    """Append ``<module>`` entries (in the given order) to the profile's ``<modules>``."""
    names = list(names)

    def _transform(doc: PomDocument) -> None:
        for name in names:
            modules = doc.container(profile_id, "modules", create=True)
            if not any(doc.text_of(e) == name for e in modules.children_named("module")):
                doc.append_child(modules, "module", name)

    return _transform


def set_managed_dependency_version(profile_id: Optional[str], version: str, coords: Iterable[tuple]) -> Transformation:
    """Set ``<version>`` of managed dependencies matching raw ``(groupId, artifactId)`` pairs."""
    wanted = set(coords)

    def _transform(doc: PomDocument) -> None:
        deps = doc.container(profile_id, "dependencyManagement", "dependencies")
        if deps is None:
            return
        addresses = [
            d.address() for d in deps.children_named("dependency")
            if (doc.child_text(d, "groupId"), doc.child_text(d, "artifactId")) in wanted
        ]
        for address in addresses:
            doc.add_or_set_child_text(doc.resolve(address), "version", version)

    return _transform


def add_or_set_property(name: str, value: str, profile_id: Optional[str] = None) -> Transformation:
    def _transform(doc: PomDocument) -> None:
        properties = doc.container(profile_id, "properties", create=True)
        doc.add_or_set_child_text(properties, name, value)

    return _transform


def set_parent_version(version: str) -> Transformation:
    def _transform(doc: PomDocument) -> None:
        parent = doc.find("parent")
        if parent is not None:
            doc.add_or_set_child_text(parent, "version", version)

    return _transform


def add_plugin_excludes(plugin: Ga, paths: Iterable[str]) -> Transformation:
    """Add ``<exclude>`` entries to ``configuration/fileSets/fileSet/excludes`` of a build plugin.

    Entries already present are kept; new ones are appended in the given order.

    Raises:
        GraphInvariantError: If the plugin is not declared under ``build/plugins``.
    """
    paths = list(paths)

    def _transform(doc: PomDocument) -> None:
        plugins = doc.find("build", "plugins")
        element = None
        if plugins is not None:
            element = next((
                p for p in plugins.children_named("plugin")
                if (doc.child_text(p, "groupId") or "org.apache.maven.plugins") == plugin.group_id
                and doc.child_text(p, "artifactId") == plugin.artifact_id
            ), None)
        if element is None:
            raise GraphInvariantError(f"Could not find {plugin} in {doc.source}", path=doc.source, plugin=str(plugin))
        for name in ("configuration", "fileSets", "fileSet", "excludes"):
            child = element.child(name)
            element = child if child is not None else doc.append_child(element, name, [])
        address = element.address()
        present = {doc.text_of(e) for e in element.children_named("exclude")}
        for path in paths:
            if path not in present:
                doc.append_child(doc.resolve(address), "exclude", path)
                present.add(path)

    return _transform


def remove_dependencies(predicate: Callable[[Dependency], bool], managed: bool = False,
                        profile_id: Optional[str] = None) -> Transformation:
    path = ("dependencyManagement", "dependencies") if managed else ("dependencies",)

    def _transform(doc: PomDocument) -> None:
        deps = doc.container(profile_id, *path)
        if deps is None:
            return
        doc.remove_elements([d for d in deps.children_named("dependency") if predicate(doc.dependency_of(d))])

    return _transform


def add_dependencies(dependencies: Iterable[Dependency], managed: bool = False) -> Transformation:
    """Append dependencies that are not yet declared (matched by raw groupId/artifactId)."""
    dependencies = list(dependencies)
    path = ("dependencyManagement", "dependencies") if managed else ("dependencies",)

    def _transform(doc: PomDocument) -> None:
        for dep in dependencies:
            deps = doc.container(None, *path, create=True)
            present = {
                (doc.child_text(d, "groupId"), doc.child_text(d, "artifactId"))
                for d in deps.children_named("dependency")
            }
            if (dep.group_id, dep.artifact_id) in present:
                continue
            content = [("groupId", dep.group_id), ("artifactId", dep.artifact_id)]
            if dep.version:
                content.append(("version", dep.version))
            if dep.dep_type:
                content.append(("type", dep.dep_type))
            if dep.scope and dep.scope != "compile":
                content.append(("scope", dep.scope))
            if dep.exclusions:
                content.append(("exclusions", [
                    ("exclusion", [("groupId", g), ("artifactId", a)]) for g, a in dep.exclusions
                ]))
            doc.append_child(deps, "dependency", content)

    return _transform
