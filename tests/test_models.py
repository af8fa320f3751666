"""Tests for registry payload parsing and the resolved tree model."""

import pytest

from depresolve.versioning.models import Manifest, PackageMetadata, ResolvedPackage


class TestResolvedPackage:
    """Tree node rendering and traversal."""

    def test_new_node_is_unresolved(self):
        node = ResolvedPackage(name="react")
        assert node.version == ""
        assert node.dependencies == {}

    def test_nodes_do_not_share_dependency_maps(self):
        first, second = ResolvedPackage(name="a"), ResolvedPackage(name="b")
        first.dependencies["x"] = ResolvedPackage(name="x")
        assert second.dependencies == {}

    def test_to_dict_and_back(self):
        tree = ResolvedPackage(
            name="react",
            version="16.13.1",
            dependencies={
                "loose-envify": ResolvedPackage(
                    name="loose-envify",
                    version="1.4.0",
                    dependencies={"js-tokens": ResolvedPackage(name="js-tokens", version="4.0.0")},
                ),
            },
        )
        rendered = tree.to_dict()
        assert rendered["dependencies"]["loose-envify"]["dependencies"]["js-tokens"] == {
            "name": "js-tokens", "version": "4.0.0", "dependencies": {},
        }
        assert ResolvedPackage.from_dict(rendered) == tree

    def test_walk_and_count(self):
        tree = ResolvedPackage(
            name="a",
            version="1.0.0",
            dependencies={
                "b": ResolvedPackage(name="b", version="1.0.0"),
                "c": ResolvedPackage(
                    name="c", version="1.0.0",
                    dependencies={"b": ResolvedPackage(name="b", version="2.0.0")},
                ),
            },
        )
        assert tree.count() == 4
        assert sorted(f"{n.name}@{n.version}" for n in tree.walk()) == [
            "a@1.0.0", "b@1.0.0", "b@2.0.0", "c@1.0.0",
        ]


class TestManifest:
    """Version document parsing."""

    def test_from_payload(self):
        manifest = Manifest.from_payload({
            "name": "loose-envify",
            "version": "1.4.0",
            "dependencies": {"js-tokens": "^3.0.0 || ^4.0.0"},
            "description": "ignored",
        })
        assert manifest.dependencies == {"js-tokens": "^3.0.0 || ^4.0.0"}

    def test_missing_dependencies(self):
        assert Manifest.from_payload({"name": "a", "version": "1.0.0"}).dependencies == {}

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"version": "1.0.0"},
            {"name": "a", "version": 1},
            {"name": "a", "version": "1.0.0", "dependencies": ["b"]},
            {"name": "a", "version": "1.0.0", "dependencies": {"b": 2}},
        ],
    )
    def test_rejects_bad_shapes(self, payload):
        with pytest.raises(ValueError):
            Manifest.from_payload(payload)


class TestPackageMetadata:
    """Packument parsing."""

    def test_from_payload(self):
        metadata = PackageMetadata.from_payload("react", {
            "name": "react",
            "versions": {"16.13.0": {"name": "react", "version": "16.13.0"}},
        })
        assert metadata.version_strings() == ["16.13.0"]

    def test_missing_versions(self):
        assert PackageMetadata.from_payload("react", {"name": "react"}).versions == {}

    def test_name_defaults_to_requested(self):
        assert PackageMetadata.from_payload("react", {"versions": {}}).name == "react"

    @pytest.mark.parametrize("payload", ["react", None, {"versions": ["1.0.0"]}])
    def test_rejects_bad_shapes(self, payload):
        with pytest.raises(ValueError):
            PackageMetadata.from_payload("react", payload)
