"""Shared test fixtures for the prodplan test suite."""

import json
import textwrap
from pathlib import Path

import pytest

from prodplan.config import PlannerConfig

GROUP = "org.acme.quarkus"
FOUNDATION_GROUP = "org.acme"
VERSION = "3.2.0"
FOUNDATION_VERSION = "4.0.0"

JENKINSFILE = """\
pipeline {
    agent none
    stages {
        stage('Tests') {
            parallel {
                // %generated-stages-start%
                // %generated-stages-end%
            }
        }
    }
}
"""


def _dependency_lines(deps, indent):
    lines = []
    for dep in deps:
        group_id, artifact_id, *rest = dep
        lines.append(f"{indent}<dependency>")
        lines.append(f"{indent}    <groupId>{group_id}</groupId>")
        lines.append(f"{indent}    <artifactId>{artifact_id}</artifactId>")
        if rest:
            lines.append(f"{indent}    <version>{rest[0]}</version>")
        lines.append(f"{indent}</dependency>")
    return lines


def pom_xml(artifact_id, parent="acme-quarkus", parent_version=VERSION, packaging=None,
            modules=(), dependencies=(), managed=(), properties=None):
    """Render a child ``pom.xml`` of the acme tree with 4-space indentation."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<project xmlns="http://maven.apache.org/POM/4.0.0">',
        "    <modelVersion>4.0.0</modelVersion>",
        "    <parent>",
        f"        <groupId>{GROUP}</groupId>",
        f"        <artifactId>{parent}</artifactId>",
        f"        <version>{parent_version}</version>",
        "    </parent>",
        "",
        f"    <artifactId>{artifact_id}</artifactId>",
    ]
    if packaging:
        lines.append(f"    <packaging>{packaging}</packaging>")
    if properties:
        lines.append("")
        lines.append("    <properties>")
        lines.extend(f"        <{k}>{v}</{k}>" for k, v in properties.items())
        lines.append("    </properties>")
    if modules:
        lines.append("")
        lines.append("    <modules>")
        lines.extend(f"        <module>{m}</module>" for m in modules)
        lines.append("    </modules>")
    if managed:
        lines.append("")
        lines.append("    <dependencyManagement>")
        lines.append("        <dependencies>")
        lines.extend(_dependency_lines(managed, " " * 12))
        lines.append("        </dependencies>")
        lines.append("    </dependencyManagement>")
    if dependencies:
        lines.append("")
        lines.append("    <dependencies>")
        lines.extend(_dependency_lines(dependencies, " " * 8))
        lines.append("    </dependencies>")
    lines.append("</project>")
    return "\n".join(lines) + "\n"


ROOT_POM = f"""\
<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
    <modelVersion>4.0.0</modelVersion>
    <parent>
        <groupId>{FOUNDATION_GROUP}</groupId>
        <artifactId>acme-parent</artifactId>
        <version>{FOUNDATION_VERSION}</version>
    </parent>

    <groupId>{GROUP}</groupId>
    <artifactId>acme-quarkus</artifactId>
    <version>{VERSION}</version>
    <packaging>pom</packaging>

    <properties>
        <foundation.version>{FOUNDATION_VERSION}</foundation.version>
        <foundation-community.version>{FOUNDATION_VERSION}</foundation-community.version>
        <product.version>{VERSION}</product.version>
        <community.version>{VERSION}</community.version>
    </properties>

    <modules>
        <module>bom</module>
        <module>extensions</module>
        <module>product</module>
        <module>tests</module>
        <module>jvm-tests</module>
    </modules>
</project>
"""

FOUNDATION_BOM = f"""\
<?xml version="1.0" encoding="UTF-8"?>
<project>
    <groupId>{FOUNDATION_GROUP}</groupId>
    <artifactId>acme-bom</artifactId>
    <version>{FOUNDATION_VERSION}</version>
    <packaging>pom</packaging>
    <dependencyManagement>
        <dependencies>
            <dependency>
                <groupId>{FOUNDATION_GROUP}</groupId>
                <artifactId>acme-core</artifactId>
                <version>${{project.version}}</version>
            </dependency>
            <dependency>
                <groupId>{FOUNDATION_GROUP}</groupId>
                <artifactId>acme-other</artifactId>
                <version>{FOUNDATION_VERSION}</version>
            </dependency>
            <dependency>
                <groupId>com.thirdparty</groupId>
                <artifactId>tp-lib</artifactId>
                <version>1.0</version>
            </dependency>
        </dependencies>
    </dependencyManagement>
</project>
"""


class AcmeTree:
    """A small multi-module source tree in a temp directory.

    Layout: ``bom``, ``extensions/{ext-a,ext-a-deployment,ext-b,ext-b-deployment}``,
    ``product``, ``tests/it-ext-a`` (depends on ext-a) and
    ``jvm-tests/it-ext-b-jvm`` (depends on ext-b).
    """

    def __init__(self, root: Path):
        self.root = root

    def write(self, rel_path: str, content: str) -> Path:
        path = self.root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def read(self, rel_path: str) -> str:
        return (self.root / rel_path).read_text(encoding="utf-8")

    def module(self, rel_dir: str, artifact_id: str, **kwargs) -> Path:
        return self.write(f"{rel_dir}/pom.xml", pom_xml(artifact_id, **kwargs))

    def manifest(self, extensions=None, **extra) -> Path:
        data = {
            "guideUrlTemplate": "https://docs.example.com/acme/${majorVersion}/${artifactIdBase}.html",
            "extensions": extensions if extensions is not None else {
                "acme-quarkus-ext-a": {"jvm": "SUPPORTED", "native": "SUPPORTED"},
            },
            "additionalProductizedArtifacts": ["acme-quarkus-bom"],
        }
        data.update(extra)
        return self.write("product/src/main/resources/product-source.json", json.dumps(data, indent=2))

    def config(self, **overrides) -> PlannerConfig:
        options = dict(
            basedir=self.root,
            product_group=GROUP,
            foundation_group=FOUNDATION_GROUP,
            artifact_prefix="acme-quarkus-",
            foundation_bom=Path("foundation-bom.pom"),
            foundation_bom_artifact_id="acme-bom",
        )
        options.update(overrides)
        return PlannerConfig(**options)

    def snapshot(self) -> dict:
        """Content of every file of the tree outside ``target``."""
        return {
            p.relative_to(self.root).as_posix(): p.read_bytes()
            for p in sorted(self.root.rglob("*"))
            if p.is_file() and "target" not in p.relative_to(self.root).parts
        }

    def build(self) -> "AcmeTree":
        self.write("pom.xml", ROOT_POM)
        self.module("bom", "acme-quarkus-bom", packaging="pom", managed=[
            (GROUP, "acme-quarkus-ext-a", "${project.version}"),
            (GROUP, "acme-quarkus-ext-a-deployment", "${project.version}"),
            (GROUP, "acme-quarkus-ext-b", "${project.version}"),
            (GROUP, "acme-quarkus-ext-b-deployment", "${project.version}"),
            (FOUNDATION_GROUP, "acme-core", "${foundation-community.version}"),
        ])
        self.module("extensions", "acme-quarkus-extensions", packaging="pom",
                    modules=["ext-a", "ext-a-deployment", "ext-b", "ext-b-deployment"])
        self.module("extensions/ext-a", "acme-quarkus-ext-a", parent="acme-quarkus-extensions",
                    dependencies=[(FOUNDATION_GROUP, "acme-core")])
        self.module("extensions/ext-a-deployment", "acme-quarkus-ext-a-deployment",
                    parent="acme-quarkus-extensions", dependencies=[(GROUP, "acme-quarkus-ext-a")])
        self.module("extensions/ext-b", "acme-quarkus-ext-b", parent="acme-quarkus-extensions",
                    dependencies=[(FOUNDATION_GROUP, "acme-other")])
        self.module("extensions/ext-b-deployment", "acme-quarkus-ext-b-deployment",
                    parent="acme-quarkus-extensions", dependencies=[(GROUP, "acme-quarkus-ext-b")])
        self.write(
            "extensions/ext-a/src/main/resources/META-INF/extension-metadata.yaml",
            'name: "Acme Ext A"\nguide: "https://old.example.com/ext-a"\n',
        )
        self.write(
            "extensions/ext-b/src/main/resources/META-INF/extension-metadata.yaml",
            'name: "Acme Ext B"\nguide: "https://old.example.com/ext-b"\n',
        )
        self.write("product/pom.xml", pom_xml("acme-quarkus-product", packaging="pom").replace(
            "</project>", "\n    <modules>\n    </modules>\n</project>"
        ))
        self.module("tests", "acme-quarkus-tests", packaging="pom", modules=["it-ext-a"])
        self.module("tests/it-ext-a", "acme-quarkus-it-ext-a", dependencies=[(GROUP, "acme-quarkus-ext-a")])
        self.module("jvm-tests", "acme-quarkus-jvm-tests", packaging="pom", modules=["it-ext-b-jvm"])
        self.module("jvm-tests/it-ext-b-jvm", "acme-quarkus-it-ext-b-jvm",
                    dependencies=[(GROUP, "acme-quarkus-ext-b")])
        self.write("foundation-bom.pom", FOUNDATION_BOM)
        self.write("Jenkinsfile.product", JENKINSFILE)
        self.manifest()
        return self


@pytest.fixture
def tmp_pom(tmp_path):
    """Factory fixture that writes a pom.xml to a temp directory and returns the path."""
    def _write(content: str) -> Path:
        pom = tmp_path / "pom.xml"
        pom.write_text(textwrap.dedent(content), encoding="utf-8")
        return pom
    return _write


@pytest.fixture
def acme_tree(tmp_path):
    """The default acme source tree, built in ``tmp_path / "acme"``."""
    return AcmeTree(tmp_path / "acme").build()
