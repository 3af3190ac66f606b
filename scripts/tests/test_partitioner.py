"""Tests for partitioner.py: test groups, group aggregators and CI stages."""

from types import SimpleNamespace

import pytest

from conftest import GROUP, JENKINSFILE
from prodplan.errors import GraphInvariantError
from prodplan.partitioner import (
    TestGroup,
    clear_product_tests,
    group_sizes,
    max_tests_per_group,
    partition,
    relative_test_path,
    update_ci_file,
    write_group_poms,
)
from prodplan.pom_models import Ga
from prodplan.source_tree import SourceTree
from prodplan.taxonomy import TestCategory


def ga(artifact_id):
    return Ga(GROUP, artifact_id)


def fake_tree(paths):
    """Stand-in exposing only ``modules_by_ga`` for the given test paths."""
    return SimpleNamespace(modules_by_ga={
        ga(path.split("/")[1]): SimpleNamespace(pom_path=path) for path in paths
    })


ACME_CATEGORIES = {
    ga("acme-quarkus-it-ext-a"): TestCategory.PURE_PRODUCT,
    ga("acme-quarkus-it-ext-b-jvm"): TestCategory.MIXED_JVM,
}


class TestGroupMath:
    def test_max_tests_per_group(self):
        assert max_tests_per_group(10, 4) == 4
        assert max_tests_per_group(0, 10) == 1
        assert max_tests_per_group(9, 10) == 2

    @pytest.mark.parametrize("count, max_per_group, expected", [
        (10, 4, [4, 3, 3]),
        (8, 4, [4, 4]),
        (3, 4, [3]),
        (1, 1, [1]),
        (7, 2, [2, 2, 2, 1]),
    ])
    def test_group_sizes(self, count, max_per_group, expected):
        sizes = group_sizes(count, max_per_group)
        assert sizes == expected
        assert sum(sizes) == count

    def test_relative_test_path(self):
        assert relative_test_path("tests/it-a/pom.xml") == "../../../tests/it-a"
        assert relative_test_path("test-groups/foo/it-b/pom.xml") == "../../../test-groups/foo/it-b"

    def test_group_names(self):
        group = TestGroup(TestCategory.MIXED_NATIVE, 1)
        assert group.human_name == "Mixed Native :: Group 02"
        assert group.group_directory == "product/tests-mixed-native/group-02"


class TestPartition:
    def test_ten_native_tests_on_four_nodes(self):
        paths = [f"tests/it-{i:02d}/pom.xml" for i in range(10)]
        tree = fake_tree(paths)
        categories = {ga_: TestCategory.MIXED_NATIVE for ga_ in tree.modules_by_ga}
        groups = partition(tree, categories, 4)
        assert [len(g.tests) for g in groups] == [4, 3, 3]
        assert [g.directory_name for g in groups] == ["group-01", "group-02", "group-03"]
        assert groups[0].tests == [f"../../../tests/it-{i:02d}" for i in range(4)]
        assert groups[2].tests[-1] == "../../../tests/it-09"

    def test_jvm_tests_form_one_group(self):
        native = [f"tests/it-{i:02d}/pom.xml" for i in range(4)]
        jvm = [f"jvm-tests/it-{i:02d}-jvm/pom.xml" for i in range(5)]
        tree = fake_tree(native + jvm)
        categories = {
            ga_: TestCategory.MIXED_JVM if "jvm" in ga_.artifact_id else TestCategory.PURE_PRODUCT
            for ga_ in tree.modules_by_ga
        }
        groups = partition(tree, categories, 3)
        assert [(g.category, len(g.tests)) for g in groups] == [
            (TestCategory.PURE_PRODUCT, 2),
            (TestCategory.PURE_PRODUCT, 2),
            (TestCategory.MIXED_JVM, 5),
        ]

    def test_native_count_spans_categories(self):
        paths = [f"tests/it-{i:02d}/pom.xml" for i in range(6)]
        tree = fake_tree(paths)
        categories = {
            ga_: TestCategory.PURE_PRODUCT if i % 2 else TestCategory.MIXED_NATIVE
            for i, ga_ in enumerate(sorted(tree.modules_by_ga))
        }
        groups = partition(tree, categories, 3)
        assert max_tests_per_group(6, 3) == 4
        assert [(g.category, len(g.tests)) for g in groups] == [
            (TestCategory.PURE_PRODUCT, 3),
            (TestCategory.MIXED_NATIVE, 3),
        ]

    def test_no_tests(self):
        assert partition(fake_tree([]), {}, 4) == []


class TestGroupPoms:
    def test_write_group_poms(self, acme_tree):
        tree = SourceTree.load(acme_tree.root)
        write_group_poms(tree, partition(tree, ACME_CATEGORIES, 10), acme_tree.config())

        product = acme_tree.read("product/pom.xml")
        assert (
            "    <modules>\n"
            "        <module>tests-mixed-jvm</module>\n"
            "        <module>tests-product</module>\n"
            "    </modules>\n"
        ) in product

        category = acme_tree.read("product/tests-product/pom.xml")
        assert "<artifactId>acme-quarkus-product-tests-product</artifactId>" in category
        assert "<name>Tests :: Product</name>" in category
        assert "    <modules>\n        <module>group-01</module>\n    </modules>\n" in category

        group = acme_tree.read("product/tests-product/group-01/pom.xml")
        assert "<artifactId>acme-quarkus-product-tests-product-group-01</artifactId>" in group
        assert "<artifactId>acme-quarkus-product-tests-product</artifactId>" in group
        assert "<version>3.2.0</version>" in group
        assert "<groupId>org.acme.quarkus</groupId>" in group
        assert "        <module>../../../tests/it-ext-a</module>\n" in group

    def test_mixed_groups_in_profile(self, acme_tree):
        tree = SourceTree.load(acme_tree.root)
        write_group_poms(tree, partition(tree, ACME_CATEGORIES, 10), acme_tree.config())
        category = acme_tree.read("product/tests-mixed-jvm/pom.xml")
        assert "    <modules>\n    </modules>\n" in category
        assert (
            "    <profiles>\n"
            "        <profile>\n"
            "            <id>mixed</id>\n"
            "            <modules>\n"
            "                <module>group-01</module>\n"
            "            </modules>\n"
            "        </profile>\n"
            "    </profiles>\n"
        ) in category

    def test_generated_tree_loads(self, acme_tree):
        tree = SourceTree.load(acme_tree.root)
        write_group_poms(tree, partition(tree, ACME_CATEGORIES, 10), acme_tree.config())
        loaded = SourceTree.load(acme_tree.root)
        assert ga("acme-quarkus-product-tests-product-group-01") in loaded.modules_by_ga
        assert ga("acme-quarkus-product-tests-mixed-jvm-group-01") in loaded.modules_by_ga

    def test_clear_product_tests(self, acme_tree):
        before = acme_tree.snapshot()
        tree = SourceTree.load(acme_tree.root)
        write_group_poms(tree, partition(tree, ACME_CATEGORIES, 10), acme_tree.config())
        clear_product_tests(acme_tree.root, acme_tree.config())
        assert not (acme_tree.root / "product" / "tests-product").exists()
        assert acme_tree.snapshot() == before


class TestCiFile:
    def groups(self, acme_tree):
        tree = SourceTree.load(acme_tree.root)
        return partition(tree, ACME_CATEGORIES, 10)

    def test_stages_with_bundled_template(self, acme_tree):
        ci_file = acme_tree.root / "Jenkinsfile.product"
        assert update_ci_file(ci_file, self.groups(acme_tree), acme_tree.config())
        content = ci_file.read_text(encoding="utf-8")
        product = content.index("stage('Product :: Group 01')")
        jvm = content.index("stage('Mixed JVM :: Group 01')")
        assert product < jvm
        assert "-f product/tests-product/group-01/pom.xml" in content
        assert "\n                // %generated-stages-end%\n            }" in content
        assert not update_ci_file(ci_file, self.groups(acme_tree), acme_tree.config())

    def test_custom_stage_template(self, acme_tree, tmp_path):
        template = tmp_path / "stage.txt"
        template.write_text("X ${stageName} ${groupDirectory}\n", encoding="utf-8")
        ci_file = acme_tree.root / "Jenkinsfile.product"
        update_ci_file(ci_file, self.groups(acme_tree), acme_tree.config(), template)
        assert ci_file.read_text(encoding="utf-8") == JENKINSFILE.replace(
            "                // %generated-stages-start%\n",
            "                // %generated-stages-start%\n"
            "X Product :: Group 01 product/tests-product/group-01\n"
            "X Mixed JVM :: Group 01 product/tests-mixed-jvm/group-01\n",
        )

    def test_stages_replaced_not_appended(self, acme_tree, tmp_path):
        template = tmp_path / "stage.txt"
        template.write_text("X ${stageName}\n", encoding="utf-8")
        ci_file = acme_tree.root / "Jenkinsfile.product"
        update_ci_file(ci_file, self.groups(acme_tree), acme_tree.config(), template)
        update_ci_file(ci_file, self.groups(acme_tree)[:1], acme_tree.config(), template)
        content = ci_file.read_text(encoding="utf-8")
        assert content.count("X ") == 1

    def test_missing_markers(self, acme_tree):
        ci_file = acme_tree.write("Jenkinsfile.product", "pipeline {}\n")
        with pytest.raises(GraphInvariantError, match="generated-stages-start"):
            update_ci_file(ci_file, self.groups(acme_tree), acme_tree.config())
