"""Directory scanning utilities for deployments."""

import logging
from pathlib import Path
from typing import Optional

from ..enums import ResourceType, WebAppResourceVisibility
from ..exceptions import DirectoryNotFoundError
from ..models import Resource, ResourceTree, WebAppResource
from ..utils import guess_media_type, mtime_to_datetime
from .config import DirectoryBuilderConfiguration

logger = logging.getLogger(__name__)


class DirectoryScanner:
    """Builds resource trees from local directories.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> tree = scanner.scan_local(Path("/deploy/app"), prefix="/")
        >>> tree.device_path(tree.ROOT)
        '/app'

        >>> # With ignore rules
        >>> config = DirectoryBuilderConfiguration(file_extensions_to_ignore=[".tmp"])
        >>> tree = DirectoryScanner(config).scan_local(Path("/deploy/app"))
    """

    def __init__(self, configuration: Optional[DirectoryBuilderConfiguration] = None):
        """Initialize directory scanner.

        Args:
            configuration: Ignore rules (default: nothing is ignored)
        """
        self.configuration = configuration or DirectoryBuilderConfiguration()

    def should_ignore(
        self,
        path: Path,
        base_path: Path,
        is_dir: bool = False,
    ) -> bool:
        """Check if a path should be left out.

        Args:
            path: Path to check
            base_path: Root of the scan, for relative path calculation
            is_dir: Whether the path is a directory

        Returns:
            True if path should be ignored
        """
        if is_dir:
            return path.name in self.configuration.directories_to_ignore

        if path.suffix.lower() in self.configuration.file_extensions_to_ignore:
            return True
        relative_path = path.relative_to(base_path).as_posix()
        ignored = self.configuration.resources_to_ignore
        return relative_path in ignored or path.name in ignored

    def scan_local(self, directory: Path, prefix: str = "/") -> ResourceTree:
        """Recursively scan a local directory into a resource tree.

        Args:
            directory: Directory that becomes the root node
            prefix: Device path of the directory the root is deployed into

        Returns:
            ResourceTree whose local root is ``directory``

        Raises:
            DirectoryNotFoundError: If ``directory`` does not exist
        """
        if not directory.is_dir():
            raise DirectoryNotFoundError(directory)

        tree = ResourceTree(
            Resource(name=directory.name, type=ResourceType.DIR),
            prefix=prefix,
            local_root=directory,
        )
        self._scan_into(tree, tree.ROOT, directory, directory)
        logger.debug("Scanned %s: %d node(s)", directory, len(tree))
        return tree

    def _scan_into(
        self, tree: ResourceTree, parent: int, directory: Path, base_path: Path
    ) -> None:
        try:
            items = sorted(directory.iterdir())
        except PermissionError as e:
            logger.warning("Skipping unreadable directory %s: %s", directory, e)
            return

        for item in items:
            is_dir = item.is_dir()
            if self.should_ignore(item, base_path, is_dir=is_dir):
                logger.debug("Ignoring: %s", item)
                continue

            if is_dir:
                index = tree.add_directory(parent, item.name)
                self._scan_into(tree, index, item, base_path)
            elif item.is_file():
                stat = item.stat()
                tree.add_file(
                    parent,
                    item.name,
                    size=stat.st_size,
                    last_modified=mtime_to_datetime(stat.st_mtime),
                )


class WebAppResourceBuilder:
    """Builds the flat resource list of a WebApp directory."""

    def __init__(
        self,
        configuration: Optional[DirectoryBuilderConfiguration] = None,
        protected_resources: Optional[list[str]] = None,
        ignore_bom_difference: bool = False,
    ):
        """Initialize WebApp resource builder.

        Args:
            configuration: Ignore rules
            protected_resources: Resource names that get protected visibility
            ignore_bom_difference: Flag copied onto every resource
        """
        self.scanner = DirectoryScanner(configuration)
        self.protected_resources = set(protected_resources or [])
        self.ignore_bom_difference = ignore_bom_difference

    def build_resource(self, file_path: Path, webapp_directory: Path) -> WebAppResource:
        """Describe a single file as a WebApp resource.

        Raises:
            FileNotFoundError: If ``file_path`` does not exist
        """
        if not file_path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        stat = file_path.stat()
        name = file_path.relative_to(webapp_directory).as_posix()
        visibility = (
            WebAppResourceVisibility.PROTECTED
            if name in self.protected_resources
            else WebAppResourceVisibility.PUBLIC
        )
        return WebAppResource(
            name=name,
            media_type=guess_media_type(file_path.name),
            last_modified=mtime_to_datetime(stat.st_mtime),
            visibility=visibility,
            size=stat.st_size,
            source=file_path,
            ignore_bom_difference=self.ignore_bom_difference,
        )

    def build(
        self, directory: Path, config_file_name: Optional[str] = None
    ) -> list[WebAppResource]:
        """Collect every resource below ``directory``.

        Args:
            directory: WebApp root directory
            config_file_name: Configuration file in the root, never a resource

        Raises:
            DirectoryNotFoundError: If ``directory`` does not exist
        """
        tree = self.scanner.scan_local(directory)
        resources = []
        for index in tree.walk():
            if not tree.resource(index).is_file:
                continue
            file_path = directory.joinpath(*tree.path(index).split("/")[1:])
            if config_file_name and file_path == directory / config_file_name:
                continue
            resources.append(self.build_resource(file_path, directory))
        return resources
