"""Protocols for the transport the ticket and sync layers depend on."""

from typing import Optional, Protocol

from .enums import WebAppState
from .models import Resource, Ticket, TicketContent, WebAppData, WebAppResource


class RpcTransportProtocol(Protocol):
    """Subset of ``WebserverClient`` used by tickets, transfers and syncs.

    Tests and alternative transports implement this to stand in for the
    HTTP client.
    """

    async def browse_tickets(self, ticket_id: Optional[str] = None) -> list[Ticket]:
        ...

    async def close_ticket(self, ticket_id: str) -> None:
        ...

    async def download_ticket(self, ticket_id: str) -> TicketContent:
        ...

    async def upload_ticket(self, ticket_id: str, content: bytes) -> None:
        ...

    async def files_browse(self, path: str) -> list[Resource]:
        ...

    async def files_create(self, path: str) -> str:
        ...

    async def files_download(self, path: str) -> str:
        ...

    async def files_delete(self, path: str) -> None:
        ...

    async def files_create_directory(self, path: str) -> None:
        ...

    async def files_delete_directory(self, path: str) -> None:
        ...

    async def datalogs_download_and_clear(self, path: str) -> str:
        ...

    async def webapp_browse(self, name: Optional[str] = None) -> list[WebAppData]:
        ...

    async def webapp_browse_resources(
        self, app_name: str, name: Optional[str] = None
    ) -> list[WebAppResource]:
        ...

    async def webapp_create(
        self, name: str, state: Optional[WebAppState] = None
    ) -> None:
        ...

    async def webapp_create_resource(
        self, app_name: str, resource: WebAppResource
    ) -> str:
        ...

    async def webapp_download_resource(self, app_name: str, name: str) -> str:
        ...

    async def webapp_delete_resource(self, app_name: str, name: str) -> None:
        ...

    async def webapp_set_default_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        ...

    async def webapp_set_not_found_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        ...

    async def webapp_set_not_authorized_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        ...

    async def webapp_set_state(self, app_name: str, state: WebAppState) -> None:
        ...
