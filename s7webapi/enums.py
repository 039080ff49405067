"""Enumerations used by the S7 Webserver API."""

from enum import Enum, IntEnum
from typing import Optional


class _DeviceEnum(str, Enum):
    """String enum that accepts device values in any letter case."""

    @classmethod
    def _missing_(cls, value: object) -> Optional["_DeviceEnum"]:
        if isinstance(value, str):
            lowered = value.lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


class TicketState(_DeviceEnum):
    """States a device-side ticket goes through."""

    CREATED = "created"
    """Ticket was issued, no transfer has started yet"""

    ACTIVE = "active"
    """Client started the transfer"""

    BUSY = "busy"
    """Device is still processing the content"""

    COMPLETED = "completed"
    """Device finished processing successfully"""

    FAILED = "failed"
    """Device rejected or failed to process the content"""


class TicketProvider(_DeviceEnum):
    """JSON-RPC methods that hand out tickets."""

    WEBAPP_CREATE_RESOURCE = "WebApp.CreateResource"
    WEBAPP_DOWNLOAD_RESOURCE = "WebApp.DownloadResource"
    FILES_CREATE = "Files.Create"
    FILES_DOWNLOAD = "Files.Download"
    DATALOGS_DOWNLOAD_AND_CLEAR = "DataLogs.DownloadAndClear"
    PLC_CREATE_BACKUP = "Plc.CreateBackup"
    PLC_RESTORE_BACKUP = "Plc.RestoreBackup"
    SERVICE_DATA_DOWNLOAD = "ServiceData.Download"


class ResourceType(_DeviceEnum):
    """Kind of a resource in the device file system."""

    FILE = "file"
    DIR = "dir"


class ResourceState(_DeviceEnum):
    """Whether a resource is in use by the device."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class WebAppState(_DeviceEnum):
    """Operating state of a WebApp."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class WebAppType(_DeviceEnum):
    """Origin of a WebApp."""

    USER = "user"
    VOT = "vot"


class WebAppRedirectMode(_DeviceEnum):
    """How the device answers requests for the application root."""

    REDIRECT = "redirect"
    FORWARD = "forward"


class WebAppResourceVisibility(_DeviceEnum):
    """Access restriction of a WebApp resource."""

    PUBLIC = "public"
    PROTECTED = "protected"


class ApiErrorCode(IntEnum):
    """Numeric error codes reported in JSON-RPC error objects."""

    INTERNAL_ERROR = 1
    PERMISSION_DENIED = 2
    SYSTEM_IS_BUSY = 3
    NO_RESOURCES = 4
    SYSTEM_IS_READ_ONLY = 5
    LOGIN_FAILED = 100
    ALREADY_AUTHENTICATED = 101
    ADDRESS_DOES_NOT_EXIST = 200
    INVALID_ADDRESS = 201
    VARIABLE_IS_NOT_A_STRUCTURE = 202
    INVALID_ARRAY_INDEX = 203
    UNSUPPORTED_ADDRESS = 204
    ENTITY_DOES_NOT_EXIST = 302
    ENTITY_IN_USE = 303
    ENTITY_ALREADY_EXISTS = 304
    TICKET_NOT_FOUND = 400
    APPLICATION_NAME_ALREADY_EXISTS = 500
    APPLICATION_DOES_NOT_EXIST = 501
    APPLICATION_LIMIT_REACHED = 502
    INVALID_APPLICATION_NAME = 503
    RESOURCE_CONTENT_IS_NOT_READY = 504
    RESOURCE_VISIBILITY_IS_NOT_PUBLIC = 505
    RESOURCE_DOES_NOT_EXIST = 506
    RESOURCE_ALREADY_EXISTS = 507
    INVALID_RESOURCE_NAME = 508
    RESOURCE_LIMIT_REACHED = 509
    INVALID_MODIFICATION_TIME = 511
    INVALID_MEDIA_TYPE = 512
    INVALID_ETAG = 513
    RESOURCE_CONTENT_HAS_BEEN_CORRUPTED = 514
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
