"""Tests for resource tree comparison."""

from datetime import datetime, timedelta, timezone

import pytest

from s7webapi.enums import ResourceType, WebAppResourceVisibility
from s7webapi.models import Resource, ResourceTree, WebAppResource
from s7webapi.sync.comparator import ResourceTreeDiffer, diff_webapp_resources

MTIME = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def build_tree(a_size: int = 5, with_css: bool = True) -> ResourceTree:
    tree = ResourceTree(Resource("site", ResourceType.DIR))
    tree.add_file(tree.ROOT, "a.txt", size=a_size, last_modified=MTIME)
    if with_css:
        css = tree.add_directory(tree.ROOT, "css")
        tree.add_file(css, "site.css", size=7, last_modified=MTIME)
    return tree


class TestResourceTreeDiffer:
    """Tests for ResourceTreeDiffer."""

    @pytest.fixture
    def differ(self):
        return ResourceTreeDiffer()

    def test_identical_trees(self, differ):
        """Test a tree compared with itself gives an empty plan."""
        tree = build_tree()
        assert differ.diff(tree, tree).is_empty

    def test_equal_trees_in_different_order(self, differ):
        """Test child order does not matter."""
        observed = ResourceTree(Resource("site", ResourceType.DIR))
        css = observed.add_directory(observed.ROOT, "css")
        observed.add_file(css, "site.css", size=7, last_modified=MTIME)
        observed.add_file(observed.ROOT, "a.txt", size=5, last_modified=MTIME)

        assert differ.diff(build_tree(), observed).is_empty
        assert build_tree() == observed

    def test_size_change_is_update(self, differ):
        """Test a file that grew from 5 to 7 bytes is updated."""
        plan = differ.diff(build_tree(a_size=5), build_tree(a_size=7))

        assert plan.to_update == frozenset({"site/a.txt"})
        assert not plan.to_add
        assert not plan.to_delete

    def test_missing_directory_is_added_once(self, differ):
        """Test only the top-most missing node is listed."""
        plan = differ.diff(build_tree(), build_tree(with_css=False))

        assert plan.to_add == frozenset({"site/css"})

    def test_stray_file_is_deleted(self, differ):
        """Test files only present on the device are deleted."""
        observed = build_tree()
        observed.add_file(observed.ROOT, "stray.log", size=1)

        plan = differ.diff(build_tree(), observed)

        assert plan.to_delete == frozenset({"site/stray.log"})

    def test_type_change_is_update(self, differ):
        """Test a file replaced by a directory of the same name."""
        observed = ResourceTree(Resource("site", ResourceType.DIR))
        observed.add_directory(observed.ROOT, "a.txt")
        css = observed.add_directory(observed.ROOT, "css")
        observed.add_file(css, "site.css", size=7, last_modified=MTIME)

        plan = differ.diff(build_tree(), observed)

        assert plan.to_update == frozenset({"site/a.txt"})

    def test_missing_root(self, differ):
        """Test an absent device tree adds the whole root."""
        plan = differ.diff(build_tree(), None)

        assert plan.to_add == frozenset({"site"})
        assert plan.total == 1

    def test_modification_time(self):
        """Test modification times only matter when requested."""
        observed = ResourceTree(Resource("site", ResourceType.DIR))
        observed.add_file(
            observed.ROOT, "a.txt", size=5, last_modified=MTIME + timedelta(seconds=1)
        )
        desired = build_tree(with_css=False)

        assert ResourceTreeDiffer(True).diff(desired, observed).to_update == {
            "site/a.txt"
        }
        assert ResourceTreeDiffer(False).diff(desired, observed).is_empty

    def test_directory_mtime_ignored(self, differ):
        """Test directories never differ by modification time."""
        desired = ResourceTree(Resource("site", ResourceType.DIR, last_modified=MTIME))
        observed = ResourceTree(Resource("site", ResourceType.DIR))

        assert differ.diff(desired, observed).is_empty


def make_resource(name: str, size: int = 10, **kwargs) -> WebAppResource:
    return WebAppResource(
        name=name, media_type="text/html", last_modified=MTIME, size=size, **kwargs
    )


class TestDiffWebAppResources:
    """Tests for flat WebApp resource comparison."""

    def test_add_delete_update(self):
        """Test missing, stray and changed resources are sorted into the plan."""
        desired = [make_resource("index.html"), make_resource("new.html")]
        observed = [make_resource("index.html", size=11), make_resource("old.html")]

        plan = diff_webapp_resources(desired, observed)

        assert plan.to_add == frozenset({"new.html"})
        assert plan.to_delete == frozenset({"old.html"})
        assert plan.to_update == frozenset({"index.html"})

    def test_bom_difference(self):
        """Test a 3 byte difference is tolerated only when flagged."""
        observed = [make_resource("index.html", size=13)]

        strict = diff_webapp_resources([make_resource("index.html")], observed)
        tolerant = diff_webapp_resources(
            [make_resource("index.html", ignore_bom_difference=True)], observed
        )

        assert strict.to_update == frozenset({"index.html"})
        assert tolerant.is_empty

    def test_visibility_change(self):
        """Test a visibility change is an update."""
        desired = [
            make_resource("admin.html", visibility=WebAppResourceVisibility.PROTECTED)
        ]

        plan = diff_webapp_resources(desired, [make_resource("admin.html")])

        assert plan.to_update == frozenset({"admin.html"})
