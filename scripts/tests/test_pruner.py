"""Tests for pruner.py: disabling and re-enabling module entries."""

from conftest import GROUP
from prodplan.pom_editor import commented_modules
from prodplan.pom_models import Ga
from prodplan.pruner import COMMENT_MARK, enable_product_module, needed_paths, prune, relink
from prodplan.source_tree import SourceTree


def ga(artifact_id):
    return Ga(GROUP, artifact_id)


KEEP = {
    ga("acme-quarkus"), ga("acme-quarkus-bom"), ga("acme-quarkus-extensions"),
    ga("acme-quarkus-ext-a"), ga("acme-quarkus-ext-a-deployment"),
}


def disable(acme_tree, rel_path, entry):
    acme_tree.write(rel_path, acme_tree.read(rel_path).replace(
        f"<module>{entry}</module>", f"<!-- <module>{entry}</module> {COMMENT_MARK} -->"
    ))


class TestRelink:
    def test_nested_disabled_entries(self, acme_tree):
        before = acme_tree.snapshot()
        disable(acme_tree, "pom.xml", "extensions")
        disable(acme_tree, "extensions/pom.xml", "ext-b")
        tree = relink(acme_tree.root, acme_tree.config())
        assert acme_tree.snapshot() == before
        assert ga("acme-quarkus-ext-b") in tree.modules_by_ga

    def test_foreign_comments_are_kept(self, acme_tree):
        acme_tree.write("extensions/pom.xml", acme_tree.read("extensions/pom.xml").replace(
            "<module>ext-b</module>", "<!-- <module>ext-b</module> broken upstream -->"
        ).replace(
            "<module>ext-b-deployment</module>", "<!-- <module>ext-b-deployment</module> broken upstream -->"
        ))
        before = acme_tree.snapshot()
        tree = relink(acme_tree.root, acme_tree.config())
        assert acme_tree.snapshot() == before
        assert ga("acme-quarkus-ext-b") not in tree.modules_by_ga


class TestPrune:
    def test_needed_paths(self, acme_tree):
        tree = SourceTree.load(acme_tree.root)
        assert needed_paths(tree, {ga("acme-quarkus-ext-a")}) == {
            "pom.xml", "extensions/pom.xml", "extensions/ext-a/pom.xml",
        }

    def test_prune(self, acme_tree):
        assert prune(acme_tree.root, KEEP, acme_tree.config()) == 3
        assert set(SourceTree.load(acme_tree.root).modules_by_ga) == KEEP
        assert sorted(commented_modules(acme_tree.read("pom.xml"), COMMENT_MARK)) == [
            "jvm-tests", "product", "tests",
        ]
        assert commented_modules(acme_tree.read("extensions/pom.xml"), COMMENT_MARK) == [
            "ext-b", "ext-b-deployment",
        ]
        assert "<module>ext-a</module>" in acme_tree.read("extensions/pom.xml")

    def test_prune_then_relink_restores_tree(self, acme_tree):
        before = acme_tree.snapshot()
        prune(acme_tree.root, KEEP, acme_tree.config())
        relink(acme_tree.root, acme_tree.config())
        assert acme_tree.snapshot() == before

    def test_enable_product_module(self, acme_tree):
        prune(acme_tree.root, KEEP, acme_tree.config())
        assert enable_product_module(acme_tree.root, acme_tree.config())
        root = acme_tree.read("pom.xml")
        assert "        <module>product</module>\n" in root
        assert sorted(commented_modules(root, COMMENT_MARK)) == ["jvm-tests", "tests"]
        assert not enable_product_module(acme_tree.root, acme_tree.config())
