"""Core sync engine for deploying directory trees to the device."""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Awaitable, Callable, Optional

from ..exceptions import (
    DeploymentCancelledError,
    EntityDoesNotExistError,
    ResourceDeploymentFailedError,
    WebserverAPIError,
    WebserverValidationError,
)
from ..models import Resource, ResourceTree, SyncPlan
from ..protocols import RpcTransportProtocol
from ..transfer import FileTransferHandler
from ..utils import DEFAULT_DEPLOYMENT_TRIES
from .comparator import ResourceTreeDiffer
from .progress import SyncProgressTracker

logger = logging.getLogger(__name__)


def check_tries(tries: int) -> None:
    """Reject a round limit below one before anything is sent."""
    if tries < 1:
        raise WebserverValidationError(
            f"Amount of tries for resource deployment must be at least 1, got {tries}"
        )


@dataclass
class DeploymentStep:
    """One unit of work inside an apply round."""

    action: str
    """"deploy", "update" or "delete" """

    path: str
    """Tree path or resource name the step works on"""

    run: Callable[[], Awaitable[object]]
    """Coroutine function doing the device calls"""

    depends_on: frozenset[str] = field(default_factory=frozenset)
    """Paths whose failure in this round makes the step pointless"""


class RoundExecutor:
    """Runs the steps of one round, best effort and in order.

    A failing step is logged and skipped so the next round's comparison
    picks it up again; the cancellation event is checked before each step.
    """

    def __init__(
        self,
        progress: SyncProgressTracker,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.progress = progress
        self.cancel_event = cancel_event

    def check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise DeploymentCancelledError("Deployment cancelled")

    async def apply(self, round_number: int, steps: list[DeploymentStep]) -> set[str]:
        """Run all steps of a round.

        Returns:
            Paths whose step failed or was skipped
        """
        self.progress.start_round(round_number, len(steps))
        failed: set[str] = set()

        for step in steps:
            self.check_cancelled()

            if step.depends_on & failed:
                failed.add(step.path)
                self.progress.resource_failed(
                    step.path, step.action, "parent could not be processed"
                )
                continue

            try:
                await step.run()
            except (WebserverAPIError, OSError) as e:
                logger.warning(
                    "Round %d: %s of %s failed: %s",
                    round_number,
                    step.action,
                    step.path,
                    e,
                )
                failed.add(step.path)
                self.progress.resource_failed(step.path, step.action, str(e))
            else:
                self.progress.resource_done(step.path, step.action)

        self.progress.finish_round()
        return failed


class DirectorySynchronizer:
    """Reconciles a directory on the device with a desired resource tree.

    Each run probes the device, computes a plan and applies it, then
    probes again, for at most ``tries`` rounds.

    Examples:
        >>> tree = DirectoryScanner().scan_local(Path("./site"), prefix="/")
        >>> sync = DirectorySynchronizer(client)
        >>> rounds = await sync.deploy_or_update(tree, tries=3)
    """

    def __init__(
        self,
        transport: RpcTransportProtocol,
        transfer: Optional[FileTransferHandler] = None,
        compare_modification_time: bool = False,
        progress: Optional[SyncProgressTracker] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize directory synchronizer.

        Args:
            transport: Client used for the Files API calls
            transfer: Transfer handler for uploads (created if not provided)
            compare_modification_time: Also compare file modification times;
                off by default since the Files API stamps its own time
            progress: Progress tracker notified after each resource
            cancel_event: Set it to stop before the next resource
        """
        self.transport = transport
        self.transfer = transfer or FileTransferHandler(transport)
        self.differ = ResourceTreeDiffer(compare_modification_time)
        self.progress = progress or SyncProgressTracker()
        self.executor = RoundExecutor(self.progress, cancel_event)

    # =========================
    # Device tree access
    # =========================

    async def browse(self, tree: ResourceTree) -> ResourceTree:
        """Browse the device below the location of ``tree``'s root.

        Raises:
            EntityDoesNotExistError: If the root does not exist on the device
        """
        observed = ResourceTree(
            Resource(name=tree.root.name, type=tree.root.type), prefix=tree.prefix
        )
        await self._browse_into(observed, observed.ROOT)
        return observed

    async def _browse_into(self, tree: ResourceTree, index: int) -> None:
        for entry in await self.transport.files_browse(tree.device_path(index)):
            child = tree.add(index, entry)
            if entry.is_dir:
                await self._browse_into(tree, child)

    async def probe(self, desired: ResourceTree) -> Optional[ResourceTree]:
        """Browse the device, returning None if the root does not exist yet."""
        try:
            return await self.browse(desired)
        except EntityDoesNotExistError:
            logger.debug("%s does not exist on the device", desired.device_path(0))
            return None

    # =========================
    # Single resource operations
    # =========================

    async def _deploy_node(self, tree: ResourceTree, index: int) -> None:
        resource = tree.resource(index)
        device_path = tree.device_path(index)
        if resource.is_dir:
            await self.transport.files_create_directory(device_path)
            logger.debug("Created directory %s", device_path)
            return

        local_file = tree.local_path(index)
        if local_file is None:
            raise WebserverValidationError(f"No local file for {tree.path(index)}")
        await self.transfer.deploy_file(device_path, local_file)
        logger.debug("Uploaded %s to %s", local_file, device_path)

    async def _delete_node(self, tree: ResourceTree, index: int) -> None:
        device_path = tree.device_path(index)
        try:
            if tree.resource(index).is_dir:
                await self.transport.files_delete_directory(device_path)
            else:
                await self.transport.files_delete(device_path)
        except EntityDoesNotExistError:
            logger.debug("%s was already gone", device_path)
            return
        logger.debug("Deleted %s", device_path)

    async def deploy(self, tree: ResourceTree, index: int = ResourceTree.ROOT) -> None:
        """Create a subtree on the device, directories before their content."""
        for node in tree.walk(index):
            await self._deploy_node(tree, node)

    async def delete(self, tree: ResourceTree, index: int = ResourceTree.ROOT) -> None:
        """Delete a subtree from the device, content before its directory.

        Resources that are already gone are skipped.
        """
        for node in tree.walk_leaves_first(index):
            await self._delete_node(tree, node)

    async def update_file(
        self,
        desired: ResourceTree,
        desired_index: int,
        observed: ResourceTree,
        observed_index: int,
    ) -> bool:
        """Replace a device file if it differs from the desired one.

        Returns:
            True if the file was replaced

        Raises:
            WebserverValidationError: If either side is not a file
        """
        wanted = desired.resource(desired_index)
        found = observed.resource(observed_index)
        if not (wanted.is_file and found.is_file):
            raise WebserverValidationError(
                f"update_file needs two files, got {wanted.type.value} "
                f"'{wanted.name}' and {found.type.value} '{found.name}'"
            )
        if wanted.matches(found, self.differ.compare_modification_time):
            return False
        await self._delete_node(observed, observed_index)
        await self._deploy_node(desired, desired_index)
        return True

    # =========================
    # Reconciliation
    # =========================

    def _deploy_steps(self, tree: ResourceTree, index: int) -> list[DeploymentStep]:
        return [
            DeploymentStep(
                action="deploy",
                path=tree.path(node),
                run=partial(self._deploy_node, tree, node),
                depends_on=frozenset(tree.path(a) for a in tree.ancestors(node)),
            )
            for node in tree.walk(index)
        ]

    def _delete_steps(self, tree: ResourceTree, index: int) -> list[DeploymentStep]:
        return [
            DeploymentStep(
                action="delete",
                path=tree.path(node),
                run=partial(self._delete_node, tree, node),
            )
            for node in tree.walk_leaves_first(index)
        ]

    def build_steps(
        self,
        plan: SyncPlan,
        desired: ResourceTree,
        observed: Optional[ResourceTree],
    ) -> list[DeploymentStep]:
        """Turn a plan into ordered steps: deletes, then updates, then adds."""
        steps: list[DeploymentStep] = []

        if observed is not None:
            for path in sorted(plan.to_delete):
                index = observed.find(path)
                if index is not None:
                    steps.extend(self._delete_steps(observed, index))

            for path in sorted(plan.to_update):
                desired_index = desired.find(path)
                observed_index = observed.find(path)
                if desired_index is None or observed_index is None:
                    continue
                if (
                    desired.resource(desired_index).is_file
                    and observed.resource(observed_index).is_file
                ):
                    steps.append(
                        DeploymentStep(
                            action="update",
                            path=path,
                            run=partial(
                                self.update_file,
                                desired,
                                desired_index,
                                observed,
                                observed_index,
                            ),
                        )
                    )
                else:
                    steps.extend(self._delete_steps(observed, observed_index))
                    steps.extend(self._deploy_steps(desired, desired_index))

        for path in sorted(plan.to_add):
            index = desired.find(path)
            if index is not None:
                steps.extend(self._deploy_steps(desired, index))

        return steps

    async def deploy_or_update(
        self, desired: ResourceTree, tries: int = DEFAULT_DEPLOYMENT_TRIES
    ) -> int:
        """Make the device match ``desired``.

        Args:
            desired: Tree to deploy; its root must be a directory
            tries: Maximum number of apply rounds (at least 1)

        Returns:
            Number of apply rounds used, 0 if the device already matched

        Raises:
            WebserverValidationError: If ``tries`` is below 1 or the root is a file
            ResourceDeploymentFailedError: If resources still differ after
                ``tries`` rounds
            DeploymentCancelledError: If the cancellation event was set
        """
        check_tries(tries)
        if not desired.root.is_dir:
            raise WebserverValidationError(
                f"Root of a deployed tree must be a directory: {desired.root.name}"
            )

        observed = await self.probe(desired)
        plan = self.differ.diff(desired, observed)
        if plan.is_empty:
            logger.debug("%s is already up to date", desired.device_path(0))
            self.progress.converged()
            return 0

        for round_number in range(1, tries + 1):
            logger.debug(
                "Round %d/%d: %d to add, %d to update, %d to delete",
                round_number,
                tries,
                len(plan.to_add),
                len(plan.to_update),
                len(plan.to_delete),
            )
            steps = self.build_steps(plan, desired, observed)
            await self.executor.apply(round_number, steps)

            observed = await self.probe(desired)
            plan = self.differ.diff(desired, observed)
            if plan.is_empty:
                logger.debug("Converged after %d round(s)", round_number)
                self.progress.converged()
                return round_number

        raise ResourceDeploymentFailedError(
            unexpected=sorted(plan.to_delete),
            missing=sorted(plan.to_add | plan.to_update),
            tries=tries,
        )
