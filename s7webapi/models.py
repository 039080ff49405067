"""Data models for S7 Webserver API responses and synchronization."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from .enums import (
    ResourceState,
    ResourceType,
    TicketProvider,
    TicketState,
    WebAppRedirectMode,
    WebAppResourceVisibility,
    WebAppState,
    WebAppType,
)
from .exceptions import InvalidResponseError, WebserverValidationError
from .utils import (
    BOM_SIZE,
    TICKET_ID_LENGTH,
    format_device_timestamp,
    join_device_path,
    parse_device_timestamp,
)


def _parse_enum(enum_class: Any, value: Any, field_name: str) -> Any:
    """Convert a device value to an enum member or raise InvalidResponseError."""
    if value is None:
        raise InvalidResponseError(f"Missing value for '{field_name}'")
    try:
        return enum_class(value)
    except ValueError as e:
        raise InvalidResponseError(
            f"Unknown value for '{field_name}': {value!r}"
        ) from e


# =========================
# Tickets
# =========================


@dataclass
class Ticket:
    """A device-issued handle for a pending transfer."""

    id: str
    """Opaque ticket id (always 28 characters)"""

    state: TicketState
    """Current processing state"""

    provider: TicketProvider
    """Method that created the ticket"""

    date_created: Optional[datetime] = None
    """Creation time reported by the device"""

    data: Any = None
    """Provider-specific payload"""

    @property
    def is_completed(self) -> bool:
        return self.state == TicketState.COMPLETED

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Ticket:
        """Create a Ticket from one entry of ``Api.BrowseTickets``.

        Args:
            data: Ticket object as returned by the device

        Returns:
            Ticket instance

        Raises:
            InvalidResponseError: If id, state or provider are missing or
                unknown, or the id does not have 28 characters
        """
        ticket_id = data.get("id")
        if not ticket_id:
            raise InvalidResponseError(f"Ticket without id: {data}")
        if len(str(ticket_id)) != TICKET_ID_LENGTH:
            raise InvalidResponseError(
                f"Ticket id '{ticket_id}' does not have {TICKET_ID_LENGTH} characters"
            )
        return cls(
            id=str(ticket_id),
            state=_parse_enum(TicketState, data.get("state"), "state"),
            provider=_parse_enum(TicketProvider, data.get("provider"), "provider"),
            date_created=parse_device_timestamp(data.get("date_created")),
            data=data.get("data"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "provider": self.provider.value,
            "date_created": (
                format_device_timestamp(self.date_created)
                if self.date_created
                else None
            ),
            "data": self.data,
        }


@dataclass
class TicketContent:
    """Bytes fetched from the ticketing endpoint."""

    content: bytes
    """Payload of the ticket"""

    file_name: Optional[str] = None
    """File name from the Content-Disposition header, if sent"""


@dataclass
class TicketsResult:
    """Result of ``Api.BrowseTickets``."""

    max_tickets: int
    """Number of tickets the device allows at the same time"""

    tickets: list[Ticket] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> TicketsResult:
        return cls(
            max_tickets=int(data.get("max_tickets") or 0),
            tickets=[Ticket.from_api_response(t) for t in data.get("tickets") or []],
        )


# =========================
# Resources
# =========================


@dataclass
class Resource:
    """A file or directory node.

    Files carry a size and never children; directories never carry a size.
    Children are owned by the ``ResourceTree`` the node belongs to.
    """

    name: str
    """Node name (a single path segment)"""

    type: ResourceType
    """File or directory"""

    size: Optional[int] = None
    """Size in bytes (files only)"""

    last_modified: Optional[datetime] = None
    """Modification time"""

    state: Optional[ResourceState] = None
    """Device-side state (browse results only)"""

    etag: Optional[str] = None
    """Content hash, if known"""

    source: Optional[Path] = None
    """Local file to upload, overriding the tree's local root"""

    def __post_init__(self) -> None:
        if self.type is None:
            raise WebserverValidationError(f"Resource '{self.name}' has no type")
        if not isinstance(self.type, ResourceType):
            self.type = ResourceType(self.type)
        if not self.name or "/" in self.name:
            raise WebserverValidationError(
                f"Invalid resource name '{self.name}': must be one non-empty segment"
            )
        if self.type == ResourceType.FILE:
            if self.size is None or self.size < 0:
                raise WebserverValidationError(
                    f"File resource '{self.name}' needs a non-negative size"
                )
        elif self.size is not None:
            raise WebserverValidationError(
                f"Directory resource '{self.name}' cannot have a size"
            )

    @property
    def is_file(self) -> bool:
        return self.type == ResourceType.FILE

    @property
    def is_dir(self) -> bool:
        return self.type == ResourceType.DIR

    def matches(self, other: Resource, compare_modification_time: bool = True) -> bool:
        """Compare the semantic attributes of two nodes (children excluded).

        Directories match on name alone. For files, etags and modification
        times are only compared when both sides report them.
        """
        if self.name != other.name or self.type != other.type:
            return False
        if self.is_dir:
            return True
        if self.size != other.size:
            return False
        if (
            compare_modification_time
            and self.last_modified is not None
            and other.last_modified is not None
            and self.last_modified != other.last_modified
        ):
            return False
        if self.etag and other.etag and self.etag != other.etag:
            return False
        return True

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> Resource:
        """Create a Resource from one entry of ``Files.Browse``.

        Raises:
            InvalidResponseError: If the entry has no usable name, type or size
        """
        name = data.get("name")
        if not name:
            raise InvalidResponseError(f"Resource without name: {data}")
        resource_type = _parse_enum(ResourceType, data.get("type"), "type")
        size = data.get("size")
        if resource_type == ResourceType.FILE:
            if size is None:
                raise InvalidResponseError(f"File resource '{name}' without size")
            size = int(size)
        else:
            size = None
        state = data.get("state")
        return cls(
            name=str(name),
            type=resource_type,
            size=size,
            last_modified=parse_device_timestamp(data.get("last_modified")),
            state=_parse_enum(ResourceState, state, "state") if state else None,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "type": self.type.value}
        if self.size is not None:
            result["size"] = self.size
        if self.last_modified is not None:
            result["last_modified"] = format_device_timestamp(self.last_modified)
        if self.state is not None:
            result["state"] = self.state.value
        if self.etag:
            result["etag"] = self.etag
        return result


@dataclass
class _TreeNode:
    resource: Resource
    parent: Optional[int]
    children: list[int] = field(default_factory=list)


class ResourceTree:
    """Rooted tree of resources stored in a flat node list.

    Nodes are addressed by their index; index 0 is always the root.
    Parent links are lookups only, the node list owns every node.

    Examples:
        >>> tree = ResourceTree(Resource("app", ResourceType.DIR), prefix="/")
        >>> css = tree.add_directory(tree.ROOT, "css")
        >>> tree.add_file(css, "site.css", size=120)
        2
        >>> tree.device_path(2)
        '/app/css/site.css'
    """

    ROOT = 0

    def __init__(
        self,
        root: Resource,
        prefix: str = "/",
        local_root: Optional[Path] = None,
    ):
        """Initialize a tree with its root node.

        Args:
            root: Root resource (usually a directory)
            prefix: Device path of the directory that contains the root
            local_root: Local path that corresponds to the root resource
        """
        self.prefix = prefix
        self.local_root = local_root
        self._nodes: list[_TreeNode] = [_TreeNode(resource=root, parent=None)]

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResourceTree):
            return NotImplemented
        return self._subtrees_equal(self.ROOT, other, other.ROOT)

    def __repr__(self) -> str:
        return (
            f"ResourceTree(root={self.root.name!r}, prefix={self.prefix!r}, "
            f"nodes={len(self)})"
        )

    @property
    def root(self) -> Resource:
        return self._nodes[self.ROOT].resource

    # -------------------------
    # Construction
    # -------------------------

    def add(self, parent: int, resource: Resource) -> int:
        """Attach a resource below a directory node.

        Args:
            parent: Index of the parent directory
            resource: Resource to attach

        Returns:
            Index of the new node

        Raises:
            WebserverValidationError: If the parent is a file or the name is
                already taken among its siblings
        """
        parent_node = self._nodes[parent]
        if not parent_node.resource.is_dir:
            raise WebserverValidationError(
                f"Cannot add '{resource.name}' below file "
                f"'{parent_node.resource.name}'"
            )
        if self.find_child(parent, resource.name) is not None:
            raise WebserverValidationError(
                f"'{resource.name}' already exists in '{self.path(parent)}'"
            )
        index = len(self._nodes)
        self._nodes.append(_TreeNode(resource=resource, parent=parent))
        parent_node.children.append(index)
        return index

    def add_file(
        self,
        parent: int,
        name: str,
        size: int,
        last_modified: Optional[datetime] = None,
        **attributes: Any,
    ) -> int:
        return self.add(
            parent,
            Resource(
                name=name,
                type=ResourceType.FILE,
                size=size,
                last_modified=last_modified,
                **attributes,
            ),
        )

    def add_directory(self, parent: int, name: str, **attributes: Any) -> int:
        return self.add(
            parent, Resource(name=name, type=ResourceType.DIR, **attributes)
        )

    # -------------------------
    # Navigation
    # -------------------------

    def resource(self, index: int) -> Resource:
        return self._nodes[index].resource

    def children(self, index: int) -> list[int]:
        return list(self._nodes[index].children)

    def sorted_children(self, index: int) -> list[int]:
        """Children ordered by type, then size, then name."""
        return sorted(
            self._nodes[index].children,
            key=lambda i: (
                self._nodes[i].resource.type.value,
                self._nodes[i].resource.size or 0,
                self._nodes[i].resource.name,
            ),
        )

    def parent(self, index: int) -> Optional[int]:
        return self._nodes[index].parent

    def ancestors(self, index: int) -> list[int]:
        """Indices from the direct parent up to the root."""
        result = []
        current = self._nodes[index].parent
        while current is not None:
            result.append(current)
            current = self._nodes[current].parent
        return result

    def find_child(self, parent: int, name: str) -> Optional[int]:
        for child in self._nodes[parent].children:
            if self._nodes[child].resource.name == name:
                return child
        return None

    def path(self, index: int) -> str:
        """Slash-separated path of a node, starting with the root name."""
        names = [self._nodes[index].resource.name]
        names.extend(self._nodes[i].resource.name for i in self.ancestors(index))
        return "/".join(reversed(names))

    def device_path(self, index: int) -> str:
        return join_device_path(self.prefix, self.path(index))

    def local_path(self, index: int) -> Optional[Path]:
        """Local file backing a node, if the tree was built from disk."""
        resource = self._nodes[index].resource
        if resource.source is not None:
            return resource.source
        if self.local_root is None:
            return None
        parts = self.path(index).split("/")[1:]
        return self.local_root.joinpath(*parts)

    def find(self, path: str) -> Optional[int]:
        """Resolve a path produced by ``path()`` back to its index."""
        parts = [part for part in path.strip("/").split("/") if part]
        if not parts or parts[0] != self.root.name:
            return None
        current = self.ROOT
        for name in parts[1:]:
            child = self.find_child(current, name)
            if child is None:
                return None
            current = child
        return current

    def walk(self, index: int = ROOT) -> Iterator[int]:
        """Yield a subtree parents first (pre-order, sorted siblings)."""
        yield index
        for child in self.sorted_children(index):
            yield from self.walk(child)

    def walk_leaves_first(self, index: int = ROOT) -> Iterator[int]:
        """Yield a subtree children first (post-order, sorted siblings)."""
        for child in self.sorted_children(index):
            yield from self.walk_leaves_first(child)
        yield index

    def subtree(self, index: int) -> ResourceTree:
        """Copy a node and its descendants into a new tree.

        The copy keeps device and local locations, so ``device_path`` and
        ``local_path`` of a copied node match the original.
        """
        parent = self._nodes[index].parent
        prefix = self.prefix if parent is None else self.device_path(parent)
        local_root = self.local_path(index) if self.local_root else None
        tree = ResourceTree(
            self._nodes[index].resource, prefix=prefix, local_root=local_root
        )
        self._copy_children(index, tree, tree.ROOT)
        return tree

    def _copy_children(self, source: int, tree: ResourceTree, target: int) -> None:
        for child in self._nodes[source].children:
            new_index = tree.add(target, self._nodes[child].resource)
            self._copy_children(child, tree, new_index)

    # -------------------------
    # Comparison and rendering
    # -------------------------

    def _subtrees_equal(
        self,
        index: int,
        other: ResourceTree,
        other_index: int,
        compare_modification_time: bool = True,
    ) -> bool:
        mine = self._nodes[index]
        theirs = other._nodes[other_index]
        if not mine.resource.matches(theirs.resource, compare_modification_time):
            return False
        if len(mine.children) != len(theirs.children):
            return False
        for child in mine.children:
            name = self._nodes[child].resource.name
            match = other.find_child(other_index, name)
            if match is None:
                return False
            if not self._subtrees_equal(
                child, other, match, compare_modification_time
            ):
                return False
        return True

    def equals(self, other: ResourceTree, compare_modification_time: bool = True) -> bool:
        """Structural, order-independent comparison of two trees."""
        return self._subtrees_equal(
            self.ROOT, other, other.ROOT, compare_modification_time
        )

    def to_dict(self, index: int = ROOT) -> dict[str, Any]:
        result = self._nodes[index].resource.to_dict()
        if self._nodes[index].resource.is_dir:
            result["resources"] = [
                self.to_dict(child) for child in self.sorted_children(index)
            ]
        return result


@dataclass(frozen=True)
class SyncPlan:
    """Differences between a desired and an observed resource tree.

    Paths are relative tree paths starting with the root name. For missing
    or stray directories only the top-most node is listed.
    """

    to_add: frozenset[str] = frozenset()
    """Present in desired, absent in observed"""

    to_delete: frozenset[str] = frozenset()
    """Present in observed, absent in desired"""

    to_update: frozenset[str] = frozenset()
    """Present in both but differing"""

    def __post_init__(self) -> None:
        overlap = (
            (self.to_add & self.to_delete)
            | (self.to_add & self.to_update)
            | (self.to_delete & self.to_update)
        )
        if overlap:
            raise WebserverValidationError(
                f"Plan sets must be disjoint, shared: {sorted(overlap)}"
            )

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_delete or self.to_update)

    @property
    def total(self) -> int:
        return len(self.to_add) + len(self.to_delete) + len(self.to_update)

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "to_add": sorted(self.to_add),
            "to_delete": sorted(self.to_delete),
            "to_update": sorted(self.to_update),
        }


# =========================
# WebApps
# =========================


@dataclass(eq=False)
class WebAppResource:
    """A single file served by a WebApp."""

    name: str
    """Resource name, a POSIX path relative to the application root"""

    media_type: str
    """MIME type"""

    last_modified: datetime
    """Modification time in device precision"""

    visibility: WebAppResourceVisibility = WebAppResourceVisibility.PUBLIC
    """Public or protected (login required)"""

    size: int = 0
    """Size in bytes"""

    etag: Optional[str] = None
    """Optional entity tag"""

    source: Optional[Path] = None
    """Local file that holds the content"""

    ignore_bom_difference: bool = False
    """Accept a size difference of exactly one UTF-8 byte order mark"""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WebAppResource):
            return NotImplemented
        if (
            self.name != other.name
            or self.media_type != other.media_type
            or self.visibility != other.visibility
            or self.last_modified != other.last_modified
            or (self.etag or None) != (other.etag or None)
        ):
            return False
        if self.size == other.size:
            return True
        tolerant = self.ignore_bom_difference or other.ignore_bom_difference
        return tolerant and abs(self.size - other.size) == BOM_SIZE

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> WebAppResource:
        """Create a WebAppResource from one entry of ``WebApp.BrowseResources``."""
        name = data.get("name")
        if not name:
            raise InvalidResponseError(f"WebApp resource without name: {data}")
        last_modified = parse_device_timestamp(data.get("last_modified"))
        if last_modified is None:
            raise InvalidResponseError(
                f"WebApp resource '{name}' without valid last_modified"
            )
        visibility = data.get("visibility")
        return cls(
            name=str(name),
            media_type=str(data.get("media_type") or ""),
            last_modified=last_modified,
            visibility=(
                _parse_enum(WebAppResourceVisibility, visibility, "visibility")
                if visibility
                else WebAppResourceVisibility.PUBLIC
            ),
            size=int(data.get("size") or 0),
            etag=data.get("etag") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "media_type": self.media_type,
            "last_modified": format_device_timestamp(self.last_modified),
            "visibility": self.visibility.value,
            "size": self.size,
            "etag": self.etag,
        }


@dataclass
class WebAppData:
    """A WebApp and the resources it should serve."""

    name: str
    """Application name"""

    state: WebAppState = WebAppState.ENABLED
    """Enabled or disabled"""

    type: WebAppType = WebAppType.USER
    """User application or generated VoT application"""

    version: Optional[str] = None
    redirect_mode: Optional[WebAppRedirectMode] = None
    default_page: Optional[str] = None
    not_found_page: Optional[str] = None
    not_authorized_page: Optional[str] = None

    application_resources: list[WebAppResource] = field(default_factory=list)
    """Resources of the application (not part of the browse response)"""

    directory: Optional[Path] = None
    """Local directory the resources were built from"""

    # Attributes that WebApp.Browse reports and deployment can change
    PAGE_ATTRIBUTES = ("default_page", "not_found_page", "not_authorized_page")

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> WebAppData:
        """Create WebAppData from one entry of ``WebApp.Browse``."""
        name = data.get("name")
        if not name:
            raise InvalidResponseError(f"WebApp without name: {data}")
        redirect_mode = data.get("redirect_mode")
        return cls(
            name=str(name),
            state=_parse_enum(WebAppState, data.get("state"), "state"),
            type=_parse_enum(WebAppType, data.get("type") or "user", "type"),
            version=data.get("version") or None,
            redirect_mode=(
                _parse_enum(WebAppRedirectMode, redirect_mode, "redirect_mode")
                if redirect_mode
                else None
            ),
            default_page=data.get("default_page") or None,
            not_found_page=data.get("not_found_page") or None,
            not_authorized_page=data.get("not_authorized_page") or None,
        )

    def attributes(self) -> dict[str, Any]:
        """Application attributes compared after a deployment."""
        return {
            "name": self.name,
            "state": self.state.value,
            "type": self.type.value,
            "version": self.version,
            "redirect_mode": self.redirect_mode.value if self.redirect_mode else None,
            "default_page": self.default_page,
            "not_found_page": self.not_found_page,
            "not_authorized_page": self.not_authorized_page,
        }

    def to_dict(self) -> dict[str, Any]:
        result = self.attributes()
        result["application_resources"] = [
            r.to_dict() for r in sorted(self.application_resources, key=lambda r: r.name)
        ]
        return result
