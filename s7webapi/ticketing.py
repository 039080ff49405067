"""Ticket lifecycle handling.

Every ticket handed out by the device occupies one of a few ticket slots,
so a ticket is closed on every exit path of the operation that opened it.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from .api import check_ticket_id
from .exceptions import (
    TicketClosedError,
    TicketNotCompletedError,
    TicketNotFoundError,
    WebserverAPIError,
)
from .models import Ticket
from .protocols import RpcTransportProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TicketHandlerConfig:
    """When to verify that the device finished processing a ticket."""

    check_after_download: bool = True
    """Require the completed state after a download"""

    check_after_upload: bool = True
    """Require the completed state after an upload (some firmwares complete later)"""


class TicketHandler:
    """Opens, verifies and closes tickets on one device session.

    Ids of closed tickets are remembered for the lifetime of the handler so
    that reuse is rejected; create one handler per session.
    """

    def __init__(
        self,
        transport: RpcTransportProtocol,
        config: Optional[TicketHandlerConfig] = None,
    ):
        """Initialize ticket handler.

        Args:
            transport: Client used for the ticket calls
            config: Completion check settings (default: check both directions)
        """
        self.transport = transport
        self.config = config or TicketHandlerConfig()
        self._closed: set[str] = set()

    def validate(self, ticket_id: str) -> None:
        """Check a ticket id without contacting the device.

        Raises:
            InvalidTicketIdError: If the id does not have 28 characters
            TicketClosedError: If this handler already closed the ticket
        """
        check_ticket_id(ticket_id)
        if ticket_id in self._closed:
            raise TicketClosedError(ticket_id)

    async def open(self, provider_call: Callable[[], Awaitable[str]]) -> str:
        """Run a method that hands out a ticket and return the ticket id.

        Args:
            provider_call: Coroutine function such as
                ``lambda: client.files_create("/data/a.txt")``

        Returns:
            The new ticket id
        """
        ticket_id = await provider_call()
        self.validate(ticket_id)
        logger.debug("Opened ticket %s", ticket_id)
        return ticket_id

    async def browse(self, ticket_id: str) -> Ticket:
        """Fetch the current state of a ticket.

        Raises:
            TicketNotFoundError: If the device does not report the ticket
        """
        self.validate(ticket_id)
        for ticket in await self.transport.browse_tickets(ticket_id):
            if ticket.id == ticket_id:
                return ticket
        raise TicketNotFoundError(f"Ticket '{ticket_id}' not found")

    async def assert_completed(self, ticket_id: str) -> Ticket:
        """Return the ticket if the device finished it.

        Raises:
            TicketNotCompletedError: If the ticket is in any other state
        """
        ticket = await self.browse(ticket_id)
        if not ticket.is_completed:
            raise TicketNotCompletedError(ticket)
        return ticket

    async def check_after_download(self, ticket_id: str) -> Optional[Ticket]:
        if not self.config.check_after_download:
            return None
        return await self.assert_completed(ticket_id)

    async def check_after_upload(self, ticket_id: str) -> Optional[Ticket]:
        if not self.config.check_after_upload:
            return None
        return await self.assert_completed(ticket_id)

    async def close(self, ticket_id: str) -> None:
        """Close a ticket; a ticket the device no longer knows counts as closed.

        The id is never usable again afterwards, even if the call failed.
        """
        self.validate(ticket_id)
        try:
            await self.transport.close_ticket(ticket_id)
        except TicketNotFoundError:
            logger.debug("Ticket %s was already gone on close", ticket_id)
        finally:
            self._closed.add(ticket_id)
        logger.debug("Closed ticket %s", ticket_id)

    async def _close_after_failure(self, ticket_id: str) -> None:
        try:
            await self.close(ticket_id)
        except WebserverAPIError as e:
            logger.warning("Closing ticket %s failed: %s", ticket_id, e)

    @asynccontextmanager
    async def scope(self, ticket_id: str) -> AsyncIterator[str]:
        """Context that closes the ticket exactly once when it is left.

        The id is validated before anything else happens. If the body
        raises (cancellation included), a failing close is only logged so
        that the original error propagates.

        Examples:
            >>> async with handler.scope(ticket_id):
            ...     await client.upload_ticket(ticket_id, data)
            ...     await handler.check_after_upload(ticket_id)
        """
        self.validate(ticket_id)
        try:
            yield ticket_id
        except BaseException:
            await self._close_after_failure(ticket_id)
            raise
        await self.close(ticket_id)
