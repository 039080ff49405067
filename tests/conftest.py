"""Shared fixtures: an in-memory device standing in for the HTTP client."""

import tempfile
from dataclasses import replace
from pathlib import Path, PurePosixPath
from typing import Optional

import pytest

from s7webapi.enums import ResourceType, TicketProvider, TicketState, WebAppState
from s7webapi.exceptions import (
    ApplicationAlreadyExistsError,
    ApplicationDoesNotExistError,
    EntityAlreadyExistsError,
    EntityDoesNotExistError,
    EntityInUseError,
    ResourceAlreadyExistsError,
    ResourceDoesNotExistError,
    TicketNotFoundError,
)
from s7webapi.models import (
    Resource,
    Ticket,
    TicketContent,
    TicketsResult,
    WebAppData,
    WebAppResource,
)


def _parent(path: str) -> str:
    return str(PurePosixPath(path).parent)


class FakeDevice:
    """Device with a file system, tickets and WebApps kept in memory.

    Every call is recorded in ``calls`` as ``(method, *args)``.
    """

    def __init__(self) -> None:
        self.base_url = "https://plc.test"
        self.token: Optional[str] = None
        self.calls: list[tuple] = []
        self.closed: list[str] = []

        self.directories: set[str] = {"/"}
        self.files: dict[str, bytes] = {}
        self.stray_files: dict[str, bytes] = {}
        self.fail_uploads: set[str] = set()
        self.complete_tickets = True
        self.max_tickets = 4

        self.tickets: dict[str, Ticket] = {}
        self._targets: dict[str, tuple] = {}
        self._counter = 0

        self.webapps: dict[str, WebAppData] = {}
        self.webapp_resources: dict[str, dict[str, WebAppResource]] = {}
        self.webapp_contents: dict[tuple[str, str], bytes] = {}
        self.stray_webapp_resources: dict[str, list[WebAppResource]] = {}

    # -------------------------
    # Session
    # -------------------------

    async def __aenter__(self) -> "FakeDevice":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        pass

    async def login(self, user: str, password: str, include_web_application_cookie=None) -> str:
        self.calls.append(("login", user))
        self.token = "token-" + user
        return self.token

    async def logout(self) -> bool:
        self.calls.append(("logout",))
        self.token = None
        return True

    async def ping(self) -> str:
        self.calls.append(("ping",))
        return "runtime-1"

    # -------------------------
    # Tickets
    # -------------------------

    def _new_ticket(self, provider: TicketProvider, target: tuple) -> str:
        self._counter += 1
        ticket_id = f"{self._counter:028d}"
        self.tickets[ticket_id] = Ticket(
            id=ticket_id, state=TicketState.CREATED, provider=provider
        )
        self._targets[ticket_id] = target
        return ticket_id

    def _finish(self, ticket_id: str, failed: bool = False) -> None:
        if failed:
            self.tickets[ticket_id].state = TicketState.FAILED
        elif self.complete_tickets:
            self.tickets[ticket_id].state = TicketState.COMPLETED
        else:
            self.tickets[ticket_id].state = TicketState.BUSY

    def _ticket(self, ticket_id: str) -> Ticket:
        if ticket_id not in self.tickets:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return self.tickets[ticket_id]

    async def browse_tickets(self, ticket_id: Optional[str] = None) -> list[Ticket]:
        self.calls.append(("browse_tickets", ticket_id))
        if ticket_id is None:
            return list(self.tickets.values())
        return [self.tickets[ticket_id]] if ticket_id in self.tickets else []

    async def browse_tickets_result(self, ticket_id: Optional[str] = None) -> TicketsResult:
        return TicketsResult(
            max_tickets=self.max_tickets,
            tickets=await self.browse_tickets(ticket_id),
        )

    async def close_ticket(self, ticket_id: str) -> None:
        self.calls.append(("close_ticket", ticket_id))
        self._ticket(ticket_id)
        del self.tickets[ticket_id]
        self.closed.append(ticket_id)

    async def download_ticket(self, ticket_id: str) -> TicketContent:
        self.calls.append(("download_ticket", ticket_id))
        self._ticket(ticket_id)
        target = self._targets[ticket_id]
        if target[0] == "resource_download":
            _, app_name, name = target
            content = self.webapp_contents[(app_name, name)]
            file_name = PurePosixPath(name).name
        else:
            _, path = target
            content = self.files[path]
            file_name = PurePosixPath(path).name
            if target[0] == "datalog":
                self.files[path] = b""
        self._finish(ticket_id)
        return TicketContent(content=content, file_name=file_name)

    async def upload_ticket(self, ticket_id: str, content: bytes) -> None:
        self.calls.append(("upload_ticket", ticket_id))
        self._ticket(ticket_id)
        target = self._targets[ticket_id]
        if target[0] == "resource_create":
            _, app_name, resource = target
            if resource.name in self.fail_uploads:
                self._finish(ticket_id, failed=True)
                return
            self.webapp_resources[app_name][resource.name] = replace(
                resource, size=len(content), source=None, ignore_bom_difference=False
            )
            self.webapp_contents[(app_name, resource.name)] = content
        else:
            _, path = target
            if path in self.fail_uploads:
                self._finish(ticket_id, failed=True)
                return
            self.files[path] = content
        self._finish(ticket_id)

    # -------------------------
    # Files
    # -------------------------

    def _exists(self, path: str) -> bool:
        return path in self.directories or path in self.files

    async def files_browse(self, path: str) -> list[Resource]:
        self.calls.append(("files_browse", path))
        if path not in self.directories:
            raise EntityDoesNotExistError(f"{path} does not exist")
        for stray, content in self.stray_files.items():
            if _parent(stray) == path:
                self.files[stray] = content
        entries = [
            Resource(name=PurePosixPath(d).name, type=ResourceType.DIR)
            for d in sorted(self.directories)
            if d != "/" and _parent(d) == path
        ]
        entries.extend(
            Resource(name=PurePosixPath(f).name, type=ResourceType.FILE, size=len(c))
            for f, c in sorted(self.files.items())
            if _parent(f) == path
        )
        return entries

    async def files_create(self, path: str) -> str:
        self.calls.append(("files_create", path))
        if _parent(path) not in self.directories:
            raise EntityDoesNotExistError(f"{_parent(path)} does not exist")
        if self._exists(path):
            raise EntityAlreadyExistsError(f"{path} already exists")
        return self._new_ticket(TicketProvider.FILES_CREATE, ("create", path))

    async def files_download(self, path: str) -> str:
        self.calls.append(("files_download", path))
        if path not in self.files:
            raise EntityDoesNotExistError(f"{path} does not exist")
        return self._new_ticket(TicketProvider.FILES_DOWNLOAD, ("download", path))

    async def datalogs_download_and_clear(self, path: str) -> str:
        self.calls.append(("datalogs_download_and_clear", path))
        if path not in self.files:
            raise EntityDoesNotExistError(f"{path} does not exist")
        return self._new_ticket(
            TicketProvider.DATALOGS_DOWNLOAD_AND_CLEAR, ("datalog", path)
        )

    async def files_delete(self, path: str) -> None:
        self.calls.append(("files_delete", path))
        if path not in self.files:
            raise EntityDoesNotExistError(f"{path} does not exist")
        del self.files[path]

    async def files_create_directory(self, path: str) -> None:
        self.calls.append(("files_create_directory", path))
        if _parent(path) not in self.directories:
            raise EntityDoesNotExistError(f"{_parent(path)} does not exist")
        if self._exists(path):
            raise EntityAlreadyExistsError(f"{path} already exists")
        self.directories.add(path)

    async def files_delete_directory(self, path: str) -> None:
        self.calls.append(("files_delete_directory", path))
        if path not in self.directories:
            raise EntityDoesNotExistError(f"{path} does not exist")
        if any(_parent(p) == path for p in self.directories | set(self.files)):
            raise EntityInUseError(f"{path} is not empty")
        self.directories.discard(path)

    # -------------------------
    # WebApps
    # -------------------------

    def _app(self, name: str) -> WebAppData:
        if name not in self.webapps:
            raise ApplicationDoesNotExistError(f"{name} does not exist")
        return self.webapps[name]

    async def webapp_browse(self, name: Optional[str] = None) -> list[WebAppData]:
        self.calls.append(("webapp_browse", name))
        if name is not None:
            return [replace(self._app(name), application_resources=[])]
        return [replace(app, application_resources=[]) for app in self.webapps.values()]

    async def webapp_browse_resources(
        self, app_name: str, name: Optional[str] = None
    ) -> list[WebAppResource]:
        self.calls.append(("webapp_browse_resources", app_name))
        self._app(app_name)
        resources = self.webapp_resources[app_name]
        for stray in self.stray_webapp_resources.get(app_name, []):
            resources[stray.name] = stray
        return [replace(r) for _, r in sorted(resources.items())]

    async def webapp_create(self, name: str, state: Optional[WebAppState] = None) -> None:
        self.calls.append(("webapp_create", name))
        if name in self.webapps:
            raise ApplicationAlreadyExistsError(f"{name} already exists")
        self.webapps[name] = WebAppData(name=name, state=state or WebAppState.DISABLED)
        self.webapp_resources[name] = {}

    async def webapp_create_resource(self, app_name: str, resource: WebAppResource) -> str:
        self.calls.append(("webapp_create_resource", app_name, resource.name))
        self._app(app_name)
        if resource.name in self.webapp_resources[app_name]:
            raise ResourceAlreadyExistsError(f"{resource.name} already exists")
        return self._new_ticket(
            TicketProvider.WEBAPP_CREATE_RESOURCE,
            ("resource_create", app_name, resource),
        )

    async def webapp_download_resource(self, app_name: str, name: str) -> str:
        self.calls.append(("webapp_download_resource", app_name, name))
        if name not in self.webapp_resources[self._app(app_name).name]:
            raise ResourceDoesNotExistError(f"{name} does not exist")
        return self._new_ticket(
            TicketProvider.WEBAPP_DOWNLOAD_RESOURCE,
            ("resource_download", app_name, name),
        )

    async def webapp_delete_resource(self, app_name: str, name: str) -> None:
        self.calls.append(("webapp_delete_resource", app_name, name))
        self._app(app_name)
        if name not in self.webapp_resources[app_name]:
            raise ResourceDoesNotExistError(f"{name} does not exist")
        del self.webapp_resources[app_name][name]

    async def webapp_set_default_page(self, app_name: str, resource_name: Optional[str]) -> None:
        self.calls.append(("webapp_set_default_page", app_name, resource_name))
        self._app(app_name).default_page = resource_name or None

    async def webapp_set_not_found_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        self.calls.append(("webapp_set_not_found_page", app_name, resource_name))
        self._app(app_name).not_found_page = resource_name or None

    async def webapp_set_not_authorized_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        self.calls.append(("webapp_set_not_authorized_page", app_name, resource_name))
        self._app(app_name).not_authorized_page = resource_name or None

    async def webapp_set_state(self, app_name: str, state: WebAppState) -> None:
        self.calls.append(("webapp_set_state", app_name, state))
        self._app(app_name).state = state

    def method_calls(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]


@pytest.fixture
def device():
    """Provide an empty in-memory device."""
    return FakeDevice()


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def site_dir(temp_dir):
    """Create a small local directory tree named "site"."""
    site = temp_dir / "site"
    (site / "css").mkdir(parents=True)
    (site / "index.html").write_text("<html></html>")
    (site / "css" / "site.css").write_text("body {}")
    (site / "a.txt").write_bytes(b"12345")
    return site
