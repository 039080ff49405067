"""Exceptions raised by the S7 Webserver API client."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from .enums import ApiErrorCode

if TYPE_CHECKING:
    from .models import Ticket


class WebserverAPIError(Exception):
    """Base exception for all S7 Webserver API errors."""

    code: ApiErrorCode | int | None = None

    def __init__(
        self,
        message: str = "",
        code: ApiErrorCode | int | None = None,
        request: dict[str, Any] | None = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        self.request = request
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        text = self.message
        if self.code is not None:
            text = f"[{int(self.code)}] {text}" if text else f"[{int(self.code)}]"
        if self.request is not None:
            text = f"{text}\nRequest: {json.dumps(self.request, default=str)}"
        return text


# =========================
# Device errors
# =========================


class InternalError(WebserverAPIError):
    """The device reported an internal error."""

    code = ApiErrorCode.INTERNAL_ERROR


class PermissionDeniedError(WebserverAPIError):
    """The logged in user lacks the rights for the call."""

    code = ApiErrorCode.PERMISSION_DENIED


class SystemIsBusyError(WebserverAPIError):
    code = ApiErrorCode.SYSTEM_IS_BUSY


class NoResourcesError(WebserverAPIError):
    """The device ran out of resources (e.g. ticket slots)."""

    code = ApiErrorCode.NO_RESOURCES


class SystemIsReadOnlyError(WebserverAPIError):
    code = ApiErrorCode.SYSTEM_IS_READ_ONLY


class LoginFailedError(WebserverAPIError):
    code = ApiErrorCode.LOGIN_FAILED


class AlreadyAuthenticatedError(WebserverAPIError):
    code = ApiErrorCode.ALREADY_AUTHENTICATED


class AddressDoesNotExistError(WebserverAPIError):
    code = ApiErrorCode.ADDRESS_DOES_NOT_EXIST


class InvalidAddressError(WebserverAPIError):
    code = ApiErrorCode.INVALID_ADDRESS


class VariableIsNotAStructureError(WebserverAPIError):
    code = ApiErrorCode.VARIABLE_IS_NOT_A_STRUCTURE


class InvalidArrayIndexError(WebserverAPIError):
    code = ApiErrorCode.INVALID_ARRAY_INDEX


class UnsupportedAddressError(WebserverAPIError):
    code = ApiErrorCode.UNSUPPORTED_ADDRESS


class EntityDoesNotExistError(WebserverAPIError):
    """The requested file or directory does not exist on the device."""

    code = ApiErrorCode.ENTITY_DOES_NOT_EXIST


class EntityInUseError(WebserverAPIError):
    code = ApiErrorCode.ENTITY_IN_USE


class EntityAlreadyExistsError(WebserverAPIError):
    code = ApiErrorCode.ENTITY_ALREADY_EXISTS


class TicketNotFoundError(WebserverAPIError):
    """The device does not know the ticket (expired or already closed)."""

    code = ApiErrorCode.TICKET_NOT_FOUND


class ApplicationAlreadyExistsError(WebserverAPIError):
    code = ApiErrorCode.APPLICATION_NAME_ALREADY_EXISTS


class ApplicationDoesNotExistError(WebserverAPIError):
    code = ApiErrorCode.APPLICATION_DOES_NOT_EXIST


class ApplicationLimitReachedError(WebserverAPIError):
    code = ApiErrorCode.APPLICATION_LIMIT_REACHED


class InvalidApplicationNameError(WebserverAPIError):
    code = ApiErrorCode.INVALID_APPLICATION_NAME


class ResourceContentIsNotReadyError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_CONTENT_IS_NOT_READY


class ResourceVisibilityIsNotPublicError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_VISIBILITY_IS_NOT_PUBLIC


class ResourceDoesNotExistError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_DOES_NOT_EXIST


class ResourceAlreadyExistsError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_ALREADY_EXISTS


class InvalidResourceNameError(WebserverAPIError):
    code = ApiErrorCode.INVALID_RESOURCE_NAME


class ResourceLimitReachedError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_LIMIT_REACHED


class InvalidModificationTimeError(WebserverAPIError):
    code = ApiErrorCode.INVALID_MODIFICATION_TIME


class InvalidMediaTypeError(WebserverAPIError):
    code = ApiErrorCode.INVALID_MEDIA_TYPE


class InvalidETagError(WebserverAPIError):
    code = ApiErrorCode.INVALID_ETAG


class ResourceContentHasBeenCorruptedError(WebserverAPIError):
    code = ApiErrorCode.RESOURCE_CONTENT_HAS_BEEN_CORRUPTED


class MethodNotFoundError(WebserverAPIError):
    code = ApiErrorCode.METHOD_NOT_FOUND


class InvalidParamsError(WebserverAPIError):
    """Parameters were rejected, by the device or by the client-side checks."""

    code = ApiErrorCode.INVALID_PARAMS


_ERROR_CLASSES: dict[int, type[WebserverAPIError]] = {
    cls.code: cls  # type: ignore[misc]
    for cls in (
        InternalError,
        PermissionDeniedError,
        SystemIsBusyError,
        NoResourcesError,
        SystemIsReadOnlyError,
        LoginFailedError,
        AlreadyAuthenticatedError,
        AddressDoesNotExistError,
        InvalidAddressError,
        VariableIsNotAStructureError,
        InvalidArrayIndexError,
        UnsupportedAddressError,
        EntityDoesNotExistError,
        EntityInUseError,
        EntityAlreadyExistsError,
        TicketNotFoundError,
        ApplicationAlreadyExistsError,
        ApplicationDoesNotExistError,
        ApplicationLimitReachedError,
        InvalidApplicationNameError,
        ResourceContentIsNotReadyError,
        ResourceVisibilityIsNotPublicError,
        ResourceDoesNotExistError,
        ResourceAlreadyExistsError,
        InvalidResourceNameError,
        ResourceLimitReachedError,
        InvalidModificationTimeError,
        InvalidMediaTypeError,
        InvalidETagError,
        ResourceContentHasBeenCorruptedError,
        MethodNotFoundError,
        InvalidParamsError,
    )
}


def raise_for_api_error(
    error: dict[str, Any], request: dict[str, Any] | None = None
) -> None:
    """Raise the typed exception for a JSON-RPC error object.

    Args:
        error: The ``error`` member of a JSON-RPC response
        request: The request that produced the error (kept for diagnostics)

    Raises:
        WebserverAPIError: Always; a subclass when the code is known
    """
    raw_code = error.get("code")
    message = str(error.get("message") or "")
    try:
        code = int(raw_code)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise WebserverAPIError(
            message or f"Malformed error object: {error}", request=request
        ) from None

    error_class = _ERROR_CLASSES.get(code)
    if error_class is None:
        raise WebserverAPIError(message, code=code, request=request)
    raise error_class(message, request=request)


# =========================
# Client-side errors
# =========================


class WebserverValidationError(WebserverAPIError, ValueError):
    """Invalid argument detected before anything was sent to the device."""


class InvalidTicketIdError(WebserverValidationError):
    """Ticket id does not have the fixed length the device hands out."""

    def __init__(self, ticket_id: str, expected_length: int):
        self.ticket_id = ticket_id
        super().__init__(
            f"Ticket id '{ticket_id}' has {len(ticket_id)} characters, "
            f"expected {expected_length}"
        )


class TicketClosedError(WebserverValidationError):
    """Ticket was already closed by this client and must not be reused."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket '{ticket_id}' has already been closed")


class TicketNotCompletedError(WebserverAPIError):
    """Ticket did not reach the completed state after a transfer."""

    def __init__(self, ticket: Ticket):
        self.ticket = ticket
        super().__init__(
            f"Ticket '{ticket.id}' from {ticket.provider.value} "
            f"(created {ticket.date_created}) is {ticket.state.value}, "
            "expected completed"
        )


class EmptyContentError(WebserverAPIError):
    """Ticket content downloaded from the device has no bytes."""

    def __init__(self, ticket_id: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket '{ticket_id}' returned empty content")


class DirectoryNotFoundError(WebserverAPIError, FileNotFoundError):
    """Local target directory does not exist."""

    def __init__(self, directory: Any):
        self.directory = directory
        super().__init__(f"Directory not found: {directory}")


class TicketingEndpointError(WebserverAPIError):
    """HTTP transfer against the ticketing endpoint failed."""

    def __init__(self, ticket_id: str, message: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket '{ticket_id}': {message}")


class ResourceDeploymentFailedError(WebserverAPIError):
    """Resources still diverge after all deployment rounds."""

    def __init__(self, unexpected: list[str], missing: list[str], tries: int):
        self.unexpected = list(unexpected)
        self.missing = list(missing)
        self.tries = tries
        lines = [f"Resources still differ after {tries} round(s)."]
        lines.append("Found on the device but should not be there:")
        lines.extend(f"  {path}" for path in self.unexpected or ["(none)"])
        lines.append("Missing or different on the device:")
        lines.extend(f"  {path}" for path in self.missing or ["(none)"])
        super().__init__("\n".join(lines))


class WebAppConfigurationFailedError(WebserverAPIError):
    """WebApp attributes do not match after they were set."""

    def __init__(self, expected: dict[str, Any], observed: dict[str, Any]):
        self.expected = expected
        self.observed = observed
        super().__init__(
            "WebApp configuration differs after update.\n"
            f"Expected: {json.dumps(expected, indent=2, default=str)}\n"
            f"Observed: {json.dumps(observed, indent=2, default=str)}"
        )


class DeploymentCancelledError(WebserverAPIError):
    """Deployment was stopped through its cancellation event."""


class WebserverNetworkError(WebserverAPIError):
    """Network error occurred."""


class WebserverHTTPError(WebserverAPIError):
    """Device answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"HTTP status {status_code}")


class InvalidResponseError(WebserverAPIError):
    """Device answered with a payload the client cannot interpret."""


class WebserverConfigError(WebserverAPIError):
    """Configuration error."""


class ConfigParserError(WebserverConfigError):
    """A deployment configuration file is invalid."""
