"""File transfers over the ticketing endpoint."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Optional

from .exceptions import (
    DirectoryNotFoundError,
    EmptyContentError,
    WebserverValidationError,
)
from .models import Ticket, WebAppResource
from .protocols import RpcTransportProtocol
from .ticketing import TicketHandler, TicketHandlerConfig
from .utils import get_non_colliding_path

logger = logging.getLogger(__name__)


class FileTransferHandler:
    """Moves bytes between local files and device tickets.

    Every ticket passed in or opened here is closed before the call
    returns, whatever the outcome.
    """

    def __init__(
        self,
        transport: RpcTransportProtocol,
        ticket_handler: Optional[TicketHandler] = None,
        config: Optional[TicketHandlerConfig] = None,
    ):
        """Initialize file transfer handler.

        Args:
            transport: Client used for the ticket and file calls
            ticket_handler: Shared ticket handler (created if not provided)
            config: Completion check settings for a created ticket handler
        """
        self.transport = transport
        self.tickets = ticket_handler or TicketHandler(transport, config)

    # =========================
    # Ticket level
    # =========================

    async def download(
        self,
        ticket_id: str,
        directory: Path,
        file_name: Optional[str] = None,
        overwrite: bool = False,
    ) -> tuple[Optional[Ticket], Path]:
        """Download the content of a ticket into a directory.

        Args:
            ticket_id: Download ticket
            directory: Existing target directory
            file_name: Target name; may contain "/" to create subdirectories.
                Defaults to the name sent by the device, then the ticket id.
            overwrite: Replace an existing file instead of picking ``name(N).ext``

        Returns:
            Tuple of (completed ticket or None if the check is disabled, written path)

        Raises:
            InvalidTicketIdError: Before anything is sent
            DirectoryNotFoundError: If ``directory`` does not exist
            EmptyContentError: If the device sent no bytes
            WebserverValidationError: If the name points outside ``directory``
            TicketNotCompletedError: If the device did not complete the ticket
        """
        async with self.tickets.scope(ticket_id):
            if not directory.is_dir():
                raise DirectoryNotFoundError(directory)

            payload = await self.transport.download_ticket(ticket_id)
            if not payload.content:
                raise EmptyContentError(ticket_id)

            name = file_name or payload.file_name or ticket_id
            target = directory.joinpath(*PurePosixPath(name.lstrip("/")).parts)
            if directory.resolve() not in target.resolve().parents:
                raise WebserverValidationError(
                    f"Ticket {ticket_id}: name '{name}' leaves {directory}"
                )
            if target.parent != directory:
                target.parent.mkdir(parents=True, exist_ok=True)
            if not overwrite:
                target = get_non_colliding_path(target)

            target.write_bytes(payload.content)
            logger.debug(
                "Ticket %s: wrote %d bytes to %s",
                ticket_id,
                len(payload.content),
                target,
            )
            ticket = await self.tickets.check_after_download(ticket_id)
        return ticket, target

    async def upload(self, ticket_id: str, local_file: Path) -> Optional[Ticket]:
        """Send a local file as the content of an upload ticket.

        Returns:
            The completed ticket, or None if the check is disabled

        Raises:
            InvalidTicketIdError: Before anything is sent
            FileNotFoundError: If ``local_file`` does not exist
            TicketNotCompletedError: If the device did not complete the ticket
        """
        async with self.tickets.scope(ticket_id):
            content = local_file.read_bytes()
            await self.transport.upload_ticket(ticket_id, content)
            logger.debug(
                "Ticket %s: uploaded %d bytes from %s",
                ticket_id,
                len(content),
                local_file,
            )
            ticket = await self.tickets.check_after_upload(ticket_id)
        return ticket

    # =========================
    # Files API
    # =========================

    async def download_file(
        self,
        path: str,
        directory: Path,
        overwrite: bool = False,
        file_name: Optional[str] = None,
    ) -> tuple[Optional[Ticket], Path]:
        """Download a file of the device file system.

        Args:
            path: Device path, e.g. "/DataLogs/log.csv"
            directory: Existing local directory
            overwrite: Replace an existing local file
            file_name: Local name (default: last segment of ``path``)
        """
        ticket_id = await self.tickets.open(lambda: self.transport.files_download(path))
        name = file_name or PurePosixPath(path).name
        return await self.download(ticket_id, directory, name, overwrite)

    async def download_datalog_and_clear(
        self,
        path: str,
        directory: Path,
        overwrite: bool = False,
        file_name: Optional[str] = None,
    ) -> tuple[Optional[Ticket], Path]:
        """Download a data log and clear it on the device."""
        ticket_id = await self.tickets.open(
            lambda: self.transport.datalogs_download_and_clear(path)
        )
        name = file_name or PurePosixPath(path).name
        return await self.download(ticket_id, directory, name, overwrite)

    async def deploy_file(self, path: str, local_file: Path) -> Optional[Ticket]:
        """Create a device file and upload its content.

        Raises:
            FileNotFoundError: If ``local_file`` is missing (no ticket is opened)
        """
        if not local_file.is_file():
            raise FileNotFoundError(f"File not found: {local_file}")
        ticket_id = await self.tickets.open(lambda: self.transport.files_create(path))
        return await self.upload(ticket_id, local_file)

    # =========================
    # WebApp resources
    # =========================

    async def deploy_resource(
        self, app_name: str, resource: WebAppResource
    ) -> Optional[Ticket]:
        """Create a WebApp resource and upload its content from ``resource.source``."""
        if resource.source is None or not resource.source.is_file():
            raise FileNotFoundError(
                f"Source of resource '{resource.name}' not found: {resource.source}"
            )
        ticket_id = await self.tickets.open(
            lambda: self.transport.webapp_create_resource(app_name, resource)
        )
        return await self.upload(ticket_id, resource.source)

    async def download_resource(
        self,
        app_name: str,
        resource_name: str,
        directory: Path,
        overwrite: bool = False,
    ) -> tuple[Optional[Ticket], Path]:
        """Download a WebApp resource, recreating its subdirectories locally."""
        ticket_id = await self.tickets.open(
            lambda: self.transport.webapp_download_resource(app_name, resource_name)
        )
        return await self.download(ticket_id, directory, resource_name, overwrite)
