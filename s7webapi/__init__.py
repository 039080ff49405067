"""S7 Webserver API - client, ticket transfers and deployments for S7 PLCs."""

from .api import WebserverClient
from .exceptions import (
    ConfigParserError,
    DeploymentCancelledError,
    DirectoryNotFoundError,
    EmptyContentError,
    InvalidResponseError,
    InvalidTicketIdError,
    ResourceDeploymentFailedError,
    TicketClosedError,
    TicketNotCompletedError,
    WebAppConfigurationFailedError,
    WebserverAPIError,
    WebserverConfigError,
    WebserverHTTPError,
    WebserverNetworkError,
    WebserverValidationError,
)
from .models import Resource, ResourceTree, SyncPlan, Ticket, WebAppData, WebAppResource
from .ticketing import TicketHandler, TicketHandlerConfig
from .transfer import FileTransferHandler

__all__ = [
    "WebserverClient",
    "TicketHandler",
    "TicketHandlerConfig",
    "FileTransferHandler",
    "Ticket",
    "Resource",
    "ResourceTree",
    "SyncPlan",
    "WebAppData",
    "WebAppResource",
    "WebserverAPIError",
    "WebserverValidationError",
    "InvalidTicketIdError",
    "TicketClosedError",
    "TicketNotCompletedError",
    "EmptyContentError",
    "DirectoryNotFoundError",
    "ResourceDeploymentFailedError",
    "WebAppConfigurationFailedError",
    "DeploymentCancelledError",
    "InvalidResponseError",
    "WebserverNetworkError",
    "WebserverHTTPError",
    "WebserverConfigError",
    "ConfigParserError",
]
