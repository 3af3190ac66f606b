"""Tests for manifest.py: product manifest validation."""

import json

import pytest

from prodplan.errors import ExitCode, ManifestShapeError, PlannerIOError
from prodplan.manifest import ExtensionEntry, load_manifest
from prodplan.taxonomy import Support


def write_manifest(tmp_path, data):
    path = tmp_path / "product-source.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


MINIMAL = {
    "guideUrlTemplate": "https://docs.example.com/${majorVersion}/${artifactIdBase}.html",
    "extensions": {
        "acme-quarkus-ext-a": {"jvm": "SUPPORTED", "native": "techPreview"},
        "acme-quarkus-ext-b": {"jvm": "COMMUNITY", "native": "COMMUNITY", "allowedMixedTests": ["acme-quarkus-it-ab"]},
    },
}


class TestLoadManifest:
    def test_valid_manifest(self, tmp_path):
        manifest = load_manifest(write_manifest(tmp_path, dict(
            MINIMAL,
            additionalProductizedArtifacts=["acme-quarkus-bom"],
            excludeTests=["acme-quarkus-it-slow"],
            versionTransformations={r"(\d+)\.(\d+)\.(\d+)": "$1.$2.$3.redhat-00001"},
        )))
        ext_a = manifest.extensions["acme-quarkus-ext-a"]
        assert ext_a.jvm is Support.SUPPORTED
        assert ext_a.native is Support.TECH_PREVIEW
        assert manifest.extensions["acme-quarkus-ext-b"].allowed_mixed_tests == ["acme-quarkus-it-ab"]
        assert manifest.additional_productized_artifacts == ["acme-quarkus-bom"]
        assert manifest.exclude_tests == ["acme-quarkus-it-slow"]
        assert list(manifest.version_transformations) == [r"(\d+)\.(\d+)\.(\d+)"]

    def test_optional_sections_default_to_empty(self, tmp_path):
        manifest = load_manifest(write_manifest(tmp_path, {"guideUrlTemplate": "x"}))
        assert manifest.extensions == {}
        assert manifest.additional_productized_artifacts == []
        assert manifest.version_transformations == {}

    def test_unknown_fields_ignored(self, tmp_path):
        data = dict(MINIMAL, owner="team-acme")
        data["extensions"] = {"acme-quarkus-ext-a": {"jvm": "SUPPORTED", "native": "SUPPORTED", "since": "1.0"}}
        manifest = load_manifest(write_manifest(tmp_path, data))
        assert list(manifest.extensions) == ["acme-quarkus-ext-a"]

    def test_documentation_page(self):
        assert ExtensionEntry(jvm="COMMUNITY", native="TECH_PREVIEW").has_product_documentation_page
        assert not ExtensionEntry(jvm="COMMUNITY", native="COMMUNITY").has_product_documentation_page


class TestManifestErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(PlannerIOError):
            load_manifest(tmp_path / "absent.json")

    def test_invalid_json_points_at_position(self, tmp_path):
        path = write_manifest(tmp_path, '{\n  "guideUrlTemplate": "x",\n}')
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(path)
        assert excinfo.value.details["pointer"].startswith("line 3")
        assert excinfo.value.exit_code == ExitCode.FATAL

    def test_not_an_object(self, tmp_path):
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, "[]"))
        assert excinfo.value.details["pointer"] == "/"

    def test_unknown_support_level(self, tmp_path):
        data = dict(MINIMAL)
        data["extensions"] = {"acme-quarkus-ext-a": {"jvm": "SOMETIMES", "native": "SUPPORTED"}}
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, data))
        assert excinfo.value.details["pointer"] == "/extensions/acme-quarkus-ext-a/jvm"
        assert "SOMETIMES" in excinfo.value.message

    def test_missing_guide_template(self, tmp_path):
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, {"extensions": {}}))
        assert excinfo.value.details["pointer"] == "/guideUrlTemplate"

    def test_invalid_transformation_regex(self, tmp_path):
        data = dict(MINIMAL, versionTransformations={"(unclosed": "x"})
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, data))
        assert excinfo.value.details["pointer"] == "/versionTransformations/(unclosed"

    @pytest.mark.parametrize("replacement", ["$5", r"\g<name>", "\\"])
    def test_invalid_transformation_replacement(self, tmp_path, replacement):
        data = dict(MINIMAL, versionTransformations={r"^(\d+)\.(\d+)\.(\d+)$": replacement})
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, data))
        assert excinfo.value.details["pointer"] == r"/versionTransformations/^(\d+)\.(\d+)\.(\d+)$"
        assert "Invalid replacement" in excinfo.value.message

    def test_pointer_escapes_slashes(self, tmp_path):
        data = dict(MINIMAL, versionTransformations={"a/b(": "x"})
        with pytest.raises(ManifestShapeError) as excinfo:
            load_manifest(write_manifest(tmp_path, data))
        assert excinfo.value.details["pointer"] == "/versionTransformations/a~1b("

    def test_replacement_with_group_references(self, tmp_path):
        data = dict(MINIMAL, versionTransformations={r"^(\d+)\.(\d+)$": r"$1.\2.redhat"})
        assert load_manifest(write_manifest(tmp_path, data)).version_transformations

    def test_allowed_mixed_test_also_excluded(self, tmp_path):
        data = dict(MINIMAL, excludeTests=["acme-quarkus-it-ab"])
        with pytest.raises(ManifestShapeError, match="acme-quarkus-it-ab"):
            load_manifest(write_manifest(tmp_path, data))
