"""Resource comparison logic for deployments."""

from typing import Optional

from ..models import ResourceTree, SyncPlan, WebAppResource


class ResourceTreeDiffer:
    """Computes what has to change on the device to match a desired tree.

    Children are matched by name, so the order in which the device lists
    them does not matter. Files that differ are replaced as a whole, the
    device has no partial update.
    """

    def __init__(self, compare_modification_time: bool = True):
        """Initialize tree differ.

        Args:
            compare_modification_time: Treat files with different
                modification times as different
        """
        self.compare_modification_time = compare_modification_time

    def diff(self, desired: ResourceTree, observed: Optional[ResourceTree]) -> SyncPlan:
        """Compare a desired tree with the tree browsed from the device.

        Args:
            desired: Tree that should exist on the device
            observed: Tree found on the device, or None if its root does not
                exist yet (everything is added)

        Returns:
            SyncPlan with top-most missing, stray and differing paths

        Examples:
            >>> differ = ResourceTreeDiffer()
            >>> differ.diff(tree, tree).is_empty
            True
        """
        if observed is None:
            return SyncPlan(to_add=frozenset({desired.path(desired.ROOT)}))

        to_add: set[str] = set()
        to_delete: set[str] = set()
        to_update: set[str] = set()

        if desired.root.name != observed.root.name:
            return SyncPlan(
                to_add=frozenset({desired.path(desired.ROOT)}),
                to_delete=frozenset({observed.path(observed.ROOT)}),
            )

        self._diff_node(
            desired,
            desired.ROOT,
            observed,
            observed.ROOT,
            to_add,
            to_delete,
            to_update,
        )
        return SyncPlan(
            to_add=frozenset(to_add),
            to_delete=frozenset(to_delete),
            to_update=frozenset(to_update),
        )

    def _diff_node(
        self,
        desired: ResourceTree,
        desired_index: int,
        observed: ResourceTree,
        observed_index: int,
        to_add: set[str],
        to_delete: set[str],
        to_update: set[str],
    ) -> None:
        wanted = desired.resource(desired_index)
        found = observed.resource(observed_index)

        # File replaced by directory or the other way round
        if wanted.type != found.type:
            to_update.add(desired.path(desired_index))
            return

        if wanted.is_file:
            if not wanted.matches(found, self.compare_modification_time):
                to_update.add(desired.path(desired_index))
            return

        observed_children = {
            observed.resource(child).name: child
            for child in observed.sorted_children(observed_index)
        }
        desired_names = set()
        for child in desired.sorted_children(desired_index):
            name = desired.resource(child).name
            desired_names.add(name)
            match = observed_children.get(name)
            if match is None:
                to_add.add(desired.path(child))
            else:
                self._diff_node(
                    desired, child, observed, match, to_add, to_delete, to_update
                )

        for name, child in observed_children.items():
            if name not in desired_names:
                to_delete.add(observed.path(child))


def diff_webapp_resources(
    desired: list[WebAppResource], observed: list[WebAppResource]
) -> SyncPlan:
    """Compare the flat resource lists of a WebApp by name.

    Args:
        desired: Resources that should be served
        observed: Resources reported by ``WebApp.BrowseResources``

    Returns:
        SyncPlan keyed by resource name
    """
    wanted = {resource.name: resource for resource in desired}
    found = {resource.name: resource for resource in observed}

    to_update = {
        name
        for name in wanted.keys() & found.keys()
        if wanted[name] != found[name]
    }
    return SyncPlan(
        to_add=frozenset(wanted.keys() - found.keys()),
        to_delete=frozenset(found.keys() - wanted.keys()),
        to_update=frozenset(to_update),
    )
