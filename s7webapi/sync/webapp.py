"""Deployment of WebApps and their resources."""

import asyncio
import logging
from functools import partial
from typing import Optional

from ..exceptions import (
    ApplicationDoesNotExistError,
    ResourceDeploymentFailedError,
    ResourceDoesNotExistError,
    WebAppConfigurationFailedError,
)
from ..models import SyncPlan, WebAppData, WebAppResource
from ..protocols import RpcTransportProtocol
from ..transfer import FileTransferHandler
from ..utils import DEFAULT_DEPLOYMENT_TRIES
from .comparator import diff_webapp_resources
from .engine import DeploymentStep, RoundExecutor, check_tries
from .progress import SyncProgressTracker

logger = logging.getLogger(__name__)


class WebAppDeployer:
    """Creates or updates a WebApp so that it matches a local definition.

    Examples:
        >>> webapp = WebAppConfigParser(Path("./site")).parse()
        >>> deployer = WebAppDeployer(client)
        >>> await deployer.deploy_or_update(webapp, tries=3)
    """

    def __init__(
        self,
        transport: RpcTransportProtocol,
        transfer: Optional[FileTransferHandler] = None,
        progress: Optional[SyncProgressTracker] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        """Initialize WebApp deployer.

        Args:
            transport: Client used for the WebApp API calls
            transfer: Transfer handler for resource uploads
            progress: Progress tracker notified after each resource
            cancel_event: Set it to stop before the next resource
        """
        self.transport = transport
        self.transfer = transfer or FileTransferHandler(transport)
        self.progress = progress or SyncProgressTracker()
        self.executor = RoundExecutor(self.progress, cancel_event)

    async def browse(self, name: str) -> Optional[WebAppData]:
        """Fetch an application and its resources, None if it does not exist."""
        try:
            found = await self.transport.webapp_browse(name)
        except ApplicationDoesNotExistError:
            return None
        webapp = next((app for app in found if app.name == name), None)
        if webapp is None:
            return None
        webapp.application_resources = await self.transport.webapp_browse_resources(
            name
        )
        return webapp

    async def _delete_resource(self, app_name: str, name: str) -> None:
        try:
            await self.transport.webapp_delete_resource(app_name, name)
        except ResourceDoesNotExistError:
            logger.debug("Resource %s of %s was already gone", name, app_name)

    async def _set_pages(self, webapp: WebAppData, observed: Optional[WebAppData]) -> None:
        setters = {
            "default_page": self.transport.webapp_set_default_page,
            "not_found_page": self.transport.webapp_set_not_found_page,
            "not_authorized_page": self.transport.webapp_set_not_authorized_page,
        }
        for attribute in WebAppData.PAGE_ATTRIBUTES:
            wanted = getattr(webapp, attribute)
            if observed is not None and getattr(observed, attribute) == wanted:
                continue
            if observed is None and wanted is None:
                continue
            logger.debug("Setting %s of %s to %r", attribute, webapp.name, wanted)
            await setters[attribute](webapp.name, wanted)

    async def deploy(self, webapp: WebAppData) -> None:
        """Create the application, upload every resource and set its pages.

        Raises:
            ApplicationAlreadyExistsError: If an application with the name exists
        """
        await self.transport.webapp_create(webapp.name, webapp.state)
        for resource in sorted(webapp.application_resources, key=lambda r: r.name):
            self.executor.check_cancelled()
            await self.transfer.deploy_resource(webapp.name, resource)
        await self._set_pages(webapp, None)

    def build_steps(
        self, webapp: WebAppData, plan: SyncPlan
    ) -> list[DeploymentStep]:
        """Deletes of stray or changed resources first, then uploads."""
        wanted = {resource.name: resource for resource in webapp.application_resources}
        steps = [
            DeploymentStep(
                action="delete",
                path=name,
                run=partial(self._delete_resource, webapp.name, name),
            )
            for name in sorted(plan.to_delete | plan.to_update)
        ]
        for name in sorted(plan.to_add | plan.to_update):
            steps.append(
                DeploymentStep(
                    action="deploy" if name in plan.to_add else "update",
                    path=name,
                    run=partial(self.transfer.deploy_resource, webapp.name, wanted[name]),
                    depends_on=frozenset({name}) if name in plan.to_update else frozenset(),
                )
            )
        return steps

    async def reconcile_resources(
        self,
        webapp: WebAppData,
        observed: list[WebAppResource],
        tries: int = DEFAULT_DEPLOYMENT_TRIES,
    ) -> int:
        """Bring the resource list of an existing application in line.

        Returns:
            Number of apply rounds used, 0 if nothing differed

        Raises:
            ResourceDeploymentFailedError: If resources still differ after
                ``tries`` rounds
        """
        check_tries(tries)
        plan = diff_webapp_resources(webapp.application_resources, observed)
        if plan.is_empty:
            return 0

        for round_number in range(1, tries + 1):
            logger.debug(
                "%s round %d/%d: %d to add, %d to update, %d to delete",
                webapp.name,
                round_number,
                tries,
                len(plan.to_add),
                len(plan.to_update),
                len(plan.to_delete),
            )
            await self.executor.apply(round_number, self.build_steps(webapp, plan))

            observed = await self.transport.webapp_browse_resources(webapp.name)
            plan = diff_webapp_resources(webapp.application_resources, observed)
            if plan.is_empty:
                return round_number

        raise ResourceDeploymentFailedError(
            unexpected=sorted(plan.to_delete),
            missing=sorted(plan.to_add | plan.to_update),
            tries=tries,
        )

    @staticmethod
    def _attributes_match(webapp: WebAppData, observed: WebAppData) -> bool:
        expected = webapp.attributes()
        found = observed.attributes()
        for key, value in expected.items():
            # Only checked when the local definition sets them
            if key in ("version", "redirect_mode") and value is None:
                continue
            if found.get(key) != value:
                return False
        return True

    async def deploy_or_update(
        self, webapp: WebAppData, tries: int = DEFAULT_DEPLOYMENT_TRIES
    ) -> int:
        """Make the application on the device match ``webapp``.

        Args:
            webapp: Application definition with its resources
            tries: Maximum number of resource rounds (at least 1)

        Returns:
            Number of resource rounds used, 0 if no resource differed

        Raises:
            WebserverValidationError: If ``tries`` is below 1
            ResourceDeploymentFailedError: If resources still differ after
                ``tries`` rounds
            WebAppConfigurationFailedError: If attributes still differ after
                they were set
        """
        check_tries(tries)

        observed = await self.browse(webapp.name)
        if observed is None:
            logger.debug("Creating WebApp %s", webapp.name)
            await self.transport.webapp_create(webapp.name, webapp.state)
            observed_resources: list[WebAppResource] = []
        else:
            observed_resources = observed.application_resources

        rounds = await self.reconcile_resources(webapp, observed_resources, tries)

        observed = await self.browse(webapp.name)
        if observed is None or not self._attributes_match(webapp, observed):
            await self._set_pages(webapp, observed)
            if observed is None or observed.state != webapp.state:
                await self.transport.webapp_set_state(webapp.name, webapp.state)

            observed = await self.browse(webapp.name)
            if observed is None or not self._attributes_match(webapp, observed):
                raise WebAppConfigurationFailedError(
                    webapp.attributes(),
                    observed.attributes() if observed is not None else {},
                )

        self.progress.converged()
        logger.debug("WebApp %s is up to date after %d round(s)", webapp.name, rounds)
        return rounds
