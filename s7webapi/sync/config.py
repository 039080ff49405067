"""Configuration files for directory and WebApp deployments.

Keys are matched case-insensitively and without underscores, so both the
PascalCase files written for other S7 tooling (``DirectoriesToIgnoreForUpload``)
and snake_case files (``directories_to_ignore``) are accepted.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..enums import WebAppRedirectMode, WebAppState, WebAppType
from ..exceptions import ConfigParserError
from ..models import WebAppData

logger = logging.getLogger(__name__)

DEFAULT_WEBAPP_CONFIG_FILE = "WebAppConfig.json"


def _normalize_key(key: str) -> str:
    return key.replace("_", "").replace("-", "").lower()


def _normalize(data: dict[str, Any]) -> dict[str, Any]:
    return {_normalize_key(str(k)): v for k, v in data.items()}


def _read_json_object(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigParserError(f"Config file not found: {path}")
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigParserError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigParserError(f"Config file {path} must contain a JSON object")
    return data


def _string_list(data: dict[str, Any], *keys: str) -> list[str]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigParserError(f"'{key}' must be a list of strings")
        return list(value)
    return []


@dataclass
class DirectoryBuilderConfiguration:
    """What to leave out when building a resource tree from disk."""

    directories_to_ignore: list[str] = field(default_factory=list)
    """Directory names skipped at any depth"""

    resources_to_ignore: list[str] = field(default_factory=list)
    """File names or root-relative POSIX paths that are skipped"""

    file_extensions_to_ignore: list[str] = field(default_factory=list)
    """Extensions (with or without the leading dot) that are skipped"""

    def __post_init__(self) -> None:
        self.file_extensions_to_ignore = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.file_extensions_to_ignore
        ]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DirectoryBuilderConfiguration":
        normalized = _normalize(data)
        return cls(
            directories_to_ignore=_string_list(
                normalized, "directoriestoignoreforupload", "directoriestoignore"
            ),
            resources_to_ignore=_string_list(
                normalized, "resourcestoignoreforupload", "resourcestoignore"
            ),
            file_extensions_to_ignore=_string_list(
                normalized,
                "fileextensionstoignoreforupload",
                "fileextensionstoignore",
            ),
        )


def load_builder_configuration(path: Path) -> DirectoryBuilderConfiguration:
    """Load a DirectoryBuilderConfiguration from a JSON file.

    Raises:
        ConfigParserError: If the file is missing or malformed
    """
    return DirectoryBuilderConfiguration.from_dict(_read_json_object(path))


@dataclass
class WebAppConfiguration:
    """Parsed WebApp configuration file."""

    webapp: WebAppData
    """Application attributes and resources"""

    protected_resources: list[str] = field(default_factory=list)
    """Resource names that require a login"""

    ignore: DirectoryBuilderConfiguration = field(
        default_factory=DirectoryBuilderConfiguration
    )
    """Files left out of the resource list"""


class WebAppConfigParser:
    """Parses a WebApp directory and its configuration file.

    Examples:
        >>> parser = WebAppConfigParser(Path("./site"), "WebAppConfig.json")
        >>> webapp = parser.parse()
        >>> webapp.name, len(webapp.application_resources)
        ('site', 12)
    """

    def __init__(
        self,
        directory: Path,
        config_file_name: str = DEFAULT_WEBAPP_CONFIG_FILE,
        ignore_bom_difference: bool = False,
    ):
        """Initialize WebApp config parser.

        Args:
            directory: WebApp root directory
            config_file_name: Name of the JSON file inside ``directory``
            ignore_bom_difference: Tolerate byte order mark size differences
        """
        self.directory = directory
        self.config_file_name = config_file_name
        self.ignore_bom_difference = ignore_bom_difference

    def parse_configuration(self) -> WebAppConfiguration:
        """Read the configuration file without scanning resources.

        Raises:
            ConfigParserError: If the file is missing, malformed, or lacks
                a name, state or type
        """
        data = _normalize(_read_json_object(self.directory / self.config_file_name))

        name = data.get("name")
        if not name or not isinstance(name, str):
            raise ConfigParserError("Missing parameter 'name'")
        state = self._enum(data, "state", WebAppState, required=True)
        app_type = self._enum(data, "type", WebAppType, required=True)
        redirect_mode = self._enum(
            data, "redirectmode", WebAppRedirectMode, required=False
        )

        webapp = WebAppData(
            name=name,
            state=state,
            type=app_type,
            version=data.get("version") or None,
            redirect_mode=redirect_mode,
            default_page=data.get("defaultpage") or None,
            not_found_page=data.get("notfoundpage") or None,
            not_authorized_page=data.get("notauthorizedpage") or None,
            directory=self.directory,
        )
        return WebAppConfiguration(
            webapp=webapp,
            protected_resources=_string_list(data, "protectedresources"),
            ignore=DirectoryBuilderConfiguration.from_dict(data),
        )

    def parse(self) -> WebAppData:
        """Read the configuration file and build the resource list from disk."""
        # Imported here, the scanner depends on this module
        from .scanner import WebAppResourceBuilder

        configuration = self.parse_configuration()
        builder = WebAppResourceBuilder(
            configuration.ignore,
            protected_resources=configuration.protected_resources,
            ignore_bom_difference=self.ignore_bom_difference,
        )
        configuration.webapp.application_resources = builder.build(
            self.directory, config_file_name=self.config_file_name
        )
        logger.debug(
            "Parsed WebApp %s with %d resource(s)",
            configuration.webapp.name,
            len(configuration.webapp.application_resources),
        )
        return configuration.webapp

    @staticmethod
    def _enum(
        data: dict[str, Any], key: str, enum_class: Any, required: bool
    ) -> Optional[Any]:
        value = data.get(key)
        if value is None or value == "" or value == 0 or str(value).lower() == "none":
            if required:
                raise ConfigParserError(
                    f"Missing parameter '{key}' or it was invalid => 'None'"
                )
            return None
        try:
            if isinstance(value, int) and not isinstance(value, bool):
                # Numeric values count from 1 in declaration order
                members = list(enum_class)
                if not 1 <= value <= len(members):
                    raise ValueError(value)
                return members[value - 1]
            return enum_class(value)
        except ValueError as e:
            raise ConfigParserError(f"Invalid value for '{key}': {value!r}") from e
