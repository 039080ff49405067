"""API client for the S7 Webserver JSON-RPC interface."""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
import re
from typing import Any, Optional

import httpx

from .config import config
from .enums import WebAppState
from .exceptions import (
    InvalidApplicationNameError,
    InvalidETagError,
    InvalidParamsError,
    InvalidResourceNameError,
    InvalidResponseError,
    InvalidTicketIdError,
    TicketingEndpointError,
    WebserverConfigError,
    WebserverHTTPError,
    WebserverNetworkError,
    raise_for_api_error,
)
from .models import (
    Resource,
    Ticket,
    TicketContent,
    TicketsResult,
    WebAppData,
    WebAppResource,
)
from .utils import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    MAX_ETAG_LENGTH,
    MAX_RESOURCE_NAME_LENGTH,
    MAX_WEBAPP_NAME_LENGTH,
    TICKET_ID_LENGTH,
    format_device_timestamp,
)

logger = logging.getLogger(__name__)

JSONRPC_ENDPOINT = "/api/jsonrpc"
TICKET_ENDPOINT = "/api/ticket"
AUTH_HEADER = "X-Auth-Token"

_FILENAME_RE = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


def check_ticket_id(ticket_id: str) -> None:
    """Raise InvalidTicketIdError unless the id has the device's fixed length."""
    if not isinstance(ticket_id, str) or len(ticket_id) != TICKET_ID_LENGTH:
        raise InvalidTicketIdError(str(ticket_id), TICKET_ID_LENGTH)


def _check_webapp_name(name: str) -> None:
    if not name or len(name) > MAX_WEBAPP_NAME_LENGTH:
        raise InvalidApplicationNameError(
            f"WebApp name must have 1-{MAX_WEBAPP_NAME_LENGTH} characters: {name!r}"
        )


def _check_resource_name(name: str) -> None:
    if not name or len(name) > MAX_RESOURCE_NAME_LENGTH:
        raise InvalidResourceNameError(
            f"Resource name must have 1-{MAX_RESOURCE_NAME_LENGTH} characters: "
            f"{name!r}"
        )


def _check_path(path: str) -> None:
    if not path or not path.strip():
        raise InvalidParamsError("Resource path must not be empty")


class WebserverClient:
    """Asynchronous client for the S7 Webserver API.

    Examples:
        >>> async with WebserverClient("192.168.0.1") as client:
        ...     await client.login("admin", "secret")
        ...     tickets = await client.browse_tickets()
    """

    def __init__(
        self,
        host: Optional[str] = None,
        verify_ssl: Optional[bool] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            host: Device address or base URL (uses config if not provided)
            verify_ssl: Verify the device certificate (uses config if not provided)
            max_retries: Maximum number of connection retries (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (uses config if not provided)
            transport: Optional httpx transport (used by tests)
        """
        host = host or config.host
        if not host:
            raise WebserverConfigError(
                "Device host not configured. Please set S7WEBAPI_HOST or run "
                "'s7webapi init'."
            )
        if "://" not in host:
            host = f"https://{host}"
        self.base_url = host.rstrip("/")
        self.verify_ssl = config.verify_ssl if verify_ssl is None else verify_ssl
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = config.timeout if timeout is None else timeout

        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None
        self._ids = itertools.count(1)

    async def __aenter__(self) -> WebserverClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    @property
    def token(self) -> str | None:
        """Authentication token of the current session."""
        return self._token

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                verify=self.verify_ssl,
                transport=self._transport,
            )
        return self._client

    def _headers(self) -> dict[str, str]:
        if self._token:
            return {AUTH_HEADER: self._token}
        return {}

    async def aclose(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a request should be retried.

        Only failures to establish a connection are retried, a request that
        may have reached the device is never sent twice.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)

        Returns:
            True if the request should be retried, False otherwise
        """
        if attempt >= self.max_retries:
            return False
        return isinstance(exception, (httpx.ConnectError, httpx.ConnectTimeout))

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Any:
        """Make an HTTP request against the JSON-RPC endpoint with retry logic.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Response JSON data

        Raises:
            WebserverHTTPError: If the device answers with an error status
            WebserverNetworkError: If the device cannot be reached
            InvalidResponseError: If the body is not JSON
        """
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.request(
                    method, endpoint, headers=self._headers(), **kwargs
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                raise WebserverHTTPError(
                    status_code,
                    f"Request to {endpoint} failed with status {status_code}",
                ) from e
            except httpx.RequestError as e:
                if self._should_retry(e, attempt):
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        "Connection failed (%s), retry %d/%d in %.2fs",
                        e,
                        attempt + 1,
                        self.max_retries,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise WebserverNetworkError(f"Network error: {e}") from e

            try:
                return response.json()
            except ValueError as e:
                raise InvalidResponseError(
                    "Invalid JSON response from device"
                ) from e

        # Loop always returns or raises
        raise WebserverNetworkError("Request failed after all retry attempts")

    def _build_request(
        self, method: str, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "jsonrpc": "2.0",
            "method": method,
            "id": next(self._ids),
        }
        if params:
            cleaned = {k: v for k, v in params.items() if v is not None}
            if cleaned:
                request["params"] = cleaned
        return request

    async def call(self, method: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Invoke a JSON-RPC method and return its result.

        Args:
            method: Method name, e.g. "Files.Browse"
            params: Parameters; entries with None values are dropped

        Returns:
            The ``result`` member of the response

        Raises:
            WebserverAPIError: Typed subclass for device error codes
        """
        request = self._build_request(method, params)
        logger.debug("-> %s (id %s)", method, request["id"])
        data = await self._request("POST", JSONRPC_ENDPOINT, json=request)

        if not isinstance(data, dict):
            raise InvalidResponseError(f"Unexpected response to {method}: {data!r}")
        error = data.get("error")
        if error:
            shown = dict(request)
            if "password" in shown.get("params", {}):
                shown["params"] = {**shown["params"], "password": "***"}
            raise_for_api_error(error, shown)
        if "result" not in data:
            raise InvalidResponseError(f"Response to {method} has no result: {data}")
        return data["result"]

    # =========================
    # Session
    # =========================

    async def login(
        self,
        user: str,
        password: str,
        include_web_application_cookie: Optional[bool] = None,
    ) -> str:
        """Log in and use the returned token for following requests.

        Args:
            user: User name configured on the device
            password: Password of the user
            include_web_application_cookie: Also request a WebApp cookie

        Returns:
            Authentication token
        """
        result = await self.call(
            "Api.Login",
            {
                "user": user,
                "password": password,
                "include_web_application_cookie": include_web_application_cookie,
            },
        )
        token = result.get("token") if isinstance(result, dict) else None
        if not token:
            raise InvalidResponseError("Api.Login returned no token")
        self._token = str(token)
        logger.debug("Logged in as %s", user)
        return self._token

    async def logout(self) -> bool:
        """End the session and forget the token."""
        result = await self.call("Api.Logout")
        self._token = None
        return bool(result)

    async def ping(self) -> str:
        """Return the device's runtime id (changes on restart)."""
        return str(await self.call("Api.Ping"))

    # =========================
    # Tickets
    # =========================

    async def browse_tickets_result(
        self, ticket_id: Optional[str] = None
    ) -> TicketsResult:
        """Browse tickets including the device's ticket limit."""
        if ticket_id is not None:
            check_ticket_id(ticket_id)
        result = await self.call("Api.BrowseTickets", {"id": ticket_id})
        if not isinstance(result, dict):
            raise InvalidResponseError(f"Unexpected Api.BrowseTickets result: {result}")
        return TicketsResult.from_api_response(result)

    async def browse_tickets(self, ticket_id: Optional[str] = None) -> list[Ticket]:
        """Browse the open tickets of this session.

        Args:
            ticket_id: Only return this ticket

        Returns:
            List of tickets
        """
        return (await self.browse_tickets_result(ticket_id)).tickets

    async def close_ticket(self, ticket_id: str) -> None:
        check_ticket_id(ticket_id)
        await self.call("Api.CloseTicket", {"id": ticket_id})
        logger.debug("Closed ticket %s", ticket_id)

    async def _ticket_request(self, ticket_id: str, content: bytes) -> httpx.Response:
        check_ticket_id(ticket_id)
        client = self._get_client()
        headers = {**self._headers(), "Content-Type": "application/octet-stream"}
        try:
            response = await client.post(
                TICKET_ENDPOINT,
                params={"id": ticket_id},
                content=content,
                headers=headers,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TicketingEndpointError(
                ticket_id, f"ticketing endpoint returned {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise TicketingEndpointError(ticket_id, f"network error: {e}") from e
        return response

    async def download_ticket(self, ticket_id: str) -> TicketContent:
        """Fetch the content of a download ticket.

        Args:
            ticket_id: Ticket handed out by a download method

        Returns:
            Content and, if sent by the device, its file name
        """
        response = await self._ticket_request(ticket_id, b"")
        file_name = None
        disposition = response.headers.get("Content-Disposition")
        if disposition:
            match = _FILENAME_RE.search(disposition)
            if match:
                file_name = match.group(1).strip()
        return TicketContent(content=response.content, file_name=file_name)

    async def upload_ticket(self, ticket_id: str, content: bytes) -> None:
        """Send the content for an upload ticket."""
        await self._ticket_request(ticket_id, content)

    # =========================
    # Files
    # =========================

    async def files_browse(self, path: str) -> list[Resource]:
        """List the entries of a device directory.

        Raises:
            EntityDoesNotExistError: If the path does not exist
        """
        _check_path(path)
        result = await self.call("Files.Browse", {"resource": path})
        entries = result.get("resources") if isinstance(result, dict) else None
        if entries is None:
            raise InvalidResponseError(f"Unexpected Files.Browse result: {result}")
        return [Resource.from_api_response(entry) for entry in entries]

    async def _ticket_id_call(self, method: str, params: dict[str, Any]) -> str:
        ticket_id = await self.call(method, params)
        if not isinstance(ticket_id, str):
            raise InvalidResponseError(f"{method} returned no ticket id: {ticket_id!r}")
        check_ticket_id(ticket_id)
        return ticket_id

    async def files_create(self, path: str) -> str:
        """Create a file; returns the ticket for uploading its content."""
        _check_path(path)
        return await self._ticket_id_call("Files.Create", {"resource": path})

    async def files_download(self, path: str) -> str:
        """Request a file; returns the ticket for downloading its content."""
        _check_path(path)
        return await self._ticket_id_call("Files.Download", {"resource": path})

    async def files_delete(self, path: str) -> None:
        _check_path(path)
        await self.call("Files.Delete", {"resource": path})

    async def files_create_directory(self, path: str) -> None:
        _check_path(path)
        await self.call("Files.CreateDirectory", {"resource": path})

    async def files_delete_directory(self, path: str) -> None:
        _check_path(path)
        await self.call("Files.DeleteDirectory", {"resource": path})

    async def datalogs_download_and_clear(self, path: str) -> str:
        """Request a data log and clear it on the device; returns a ticket id."""
        _check_path(path)
        return await self._ticket_id_call(
            "DataLogs.DownloadAndClear", {"resource": path}
        )

    # =========================
    # WebApps
    # =========================

    async def webapp_browse(self, name: Optional[str] = None) -> list[WebAppData]:
        """List WebApps, or only the one called ``name``.

        Raises:
            ApplicationDoesNotExistError: If ``name`` is given and unknown
        """
        if name is not None:
            _check_webapp_name(name)
        result = await self.call("WebApp.Browse", {"name": name})
        apps = result.get("applications") if isinstance(result, dict) else None
        if apps is None:
            raise InvalidResponseError(f"Unexpected WebApp.Browse result: {result}")
        return [WebAppData.from_api_response(app) for app in apps]

    async def webapp_browse_resources(
        self, app_name: str, name: Optional[str] = None
    ) -> list[WebAppResource]:
        _check_webapp_name(app_name)
        if name is not None:
            _check_resource_name(name)
        result = await self.call(
            "WebApp.BrowseResources", {"app_name": app_name, "name": name}
        )
        entries = result.get("resources") if isinstance(result, dict) else None
        if entries is None:
            raise InvalidResponseError(
                f"Unexpected WebApp.BrowseResources result: {result}"
            )
        return [WebAppResource.from_api_response(entry) for entry in entries]

    async def webapp_create(
        self, name: str, state: Optional[WebAppState] = None
    ) -> None:
        _check_webapp_name(name)
        await self.call(
            "WebApp.Create",
            {"name": name, "state": state.value if state is not None else None},
        )

    async def webapp_delete(self, name: str) -> None:
        _check_webapp_name(name)
        await self.call("WebApp.Delete", {"name": name})

    async def webapp_create_resource(
        self, app_name: str, resource: WebAppResource
    ) -> str:
        """Create a WebApp resource; returns the ticket for its content."""
        _check_webapp_name(app_name)
        _check_resource_name(resource.name)
        if not resource.media_type:
            raise InvalidParamsError(f"Resource '{resource.name}' has no media type")
        if resource.etag is not None and len(resource.etag) > MAX_ETAG_LENGTH:
            raise InvalidETagError(
                f"ETag of '{resource.name}' exceeds {MAX_ETAG_LENGTH} characters"
            )
        return await self._ticket_id_call(
            "WebApp.CreateResource",
            {
                "app_name": app_name,
                "name": resource.name,
                "media_type": resource.media_type,
                "last_modified": format_device_timestamp(resource.last_modified),
                "visibility": resource.visibility.value,
                "etag": resource.etag,
            },
        )

    async def webapp_download_resource(self, app_name: str, name: str) -> str:
        _check_webapp_name(app_name)
        _check_resource_name(name)
        return await self._ticket_id_call(
            "WebApp.DownloadResource", {"app_name": app_name, "name": name}
        )

    async def webapp_delete_resource(self, app_name: str, name: str) -> None:
        _check_webapp_name(app_name)
        _check_resource_name(name)
        await self.call("WebApp.DeleteResource", {"app_name": app_name, "name": name})

    async def _set_page(
        self, method: str, app_name: str, resource_name: Optional[str]
    ) -> None:
        _check_webapp_name(app_name)
        if resource_name:
            _check_resource_name(resource_name)
        # An empty resource name resets the page
        await self.call(method, {"name": app_name, "resource_name": resource_name or ""})

    async def webapp_set_default_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        await self._set_page("WebApp.SetDefaultPage", app_name, resource_name)

    async def webapp_set_not_found_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        await self._set_page("WebApp.SetNotFoundPage", app_name, resource_name)

    async def webapp_set_not_authorized_page(
        self, app_name: str, resource_name: Optional[str]
    ) -> None:
        await self._set_page("WebApp.SetNotAuthorizedPage", app_name, resource_name)

    async def webapp_set_state(self, app_name: str, state: WebAppState) -> None:
        _check_webapp_name(app_name)
        await self.call("WebApp.SetState", {"name": app_name, "state": state.value})
