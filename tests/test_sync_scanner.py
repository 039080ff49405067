"""Tests for local directory scanning and WebApp configuration files."""

import json

import pytest

from s7webapi.enums import (
    WebAppRedirectMode,
    WebAppResourceVisibility,
    WebAppState,
    WebAppType,
)
from s7webapi.exceptions import ConfigParserError, DirectoryNotFoundError
from s7webapi.sync import (
    DirectoryBuilderConfiguration,
    DirectoryScanner,
    WebAppConfigParser,
    WebAppResourceBuilder,
    load_builder_configuration,
)


class TestDirectoryScanner:
    """Tests for DirectoryScanner."""

    def test_scan_local(self, site_dir):
        """Test a directory becomes a tree rooted at its name."""
        tree = DirectoryScanner().scan_local(site_dir, prefix="/UserFiles")

        assert tree.root.name == "site"
        assert tree.device_path(tree.ROOT) == "/UserFiles/site"
        a_txt = tree.find("site/a.txt")
        assert tree.resource(a_txt).size == 5
        assert tree.local_path(a_txt) == site_dir / "a.txt"
        assert tree.device_path(tree.find("site/css/site.css")) == (
            "/UserFiles/site/css/site.css"
        )

    def test_missing_directory(self, temp_dir):
        """Test scanning a missing directory raises."""
        with pytest.raises(DirectoryNotFoundError):
            DirectoryScanner().scan_local(temp_dir / "missing")

    def test_ignore_rules(self, site_dir):
        """Test directories, extensions and names are skipped."""
        (site_dir / "notes.tmp").write_text("x")
        (site_dir / ".git").mkdir()
        (site_dir / ".git" / "HEAD").write_text("ref")
        config = DirectoryBuilderConfiguration(
            directories_to_ignore=[".git"],
            resources_to_ignore=["css/site.css"],
            file_extensions_to_ignore=["TMP"],
        )

        tree = DirectoryScanner(config).scan_local(site_dir)

        assert tree.find("site/.git") is None
        assert tree.find("site/notes.tmp") is None
        assert tree.find("site/css/site.css") is None
        assert tree.find("site/css") is not None
        assert tree.find("site/index.html") is not None


class TestBuilderConfiguration:
    """Tests for ignore configuration files."""

    def test_pascal_case_keys(self, temp_dir):
        """Test the PascalCase keys of the device tooling are accepted."""
        path = temp_dir / "ignore.json"
        path.write_text(
            json.dumps(
                {
                    "DirectoriesToIgnoreForUpload": ["node_modules"],
                    "FileExtensionsToIgnoreForUpload": ["map"],
                }
            )
        )

        config = load_builder_configuration(path)

        assert config.directories_to_ignore == ["node_modules"]
        assert config.file_extensions_to_ignore == [".map"]
        assert config.resources_to_ignore == []

    def test_invalid_list(self, temp_dir):
        """Test a non-list value is rejected."""
        path = temp_dir / "ignore.json"
        path.write_text(json.dumps({"directories_to_ignore": "node_modules"}))

        with pytest.raises(ConfigParserError):
            load_builder_configuration(path)

    def test_missing_file(self, temp_dir):
        """Test a missing file raises ConfigParserError."""
        with pytest.raises(ConfigParserError, match="not found"):
            load_builder_configuration(temp_dir / "missing.json")


class TestWebAppConfigParser:
    """Tests for WebApp configuration parsing."""

    def write_config(self, site_dir, **values):
        config = {"Name": "hmi", "State": "enabled", "Type": "user"}
        config.update(values)
        (site_dir / "WebAppConfig.json").write_text(json.dumps(config))

    def test_parse(self, site_dir):
        """Test attributes and resources are read."""
        self.write_config(
            site_dir,
            DefaultPage="index.html",
            RedirectMode="forward",
            ProtectedResources=["a.txt"],
        )

        webapp = WebAppConfigParser(site_dir).parse()

        assert webapp.name == "hmi"
        assert webapp.state == WebAppState.ENABLED
        assert webapp.type == WebAppType.USER
        assert webapp.redirect_mode == WebAppRedirectMode.FORWARD
        assert webapp.default_page == "index.html"
        names = {r.name: r for r in webapp.application_resources}
        assert sorted(names) == ["a.txt", "css/site.css", "index.html"]
        assert names["a.txt"].visibility == WebAppResourceVisibility.PROTECTED
        assert names["index.html"].visibility == WebAppResourceVisibility.PUBLIC
        assert names["css/site.css"].media_type == "text/css"

    def test_numeric_enums(self, site_dir):
        """Test numeric values count from 1 in declaration order."""
        self.write_config(site_dir, State=2, Type=2)

        configuration = WebAppConfigParser(site_dir).parse_configuration()

        assert configuration.webapp.state == WebAppState.DISABLED
        assert configuration.webapp.type == WebAppType.VOT

    @pytest.mark.parametrize("value", [None, "None", 0])
    def test_missing_state(self, site_dir, value):
        """Test a missing state is rejected."""
        self.write_config(site_dir, State=value)

        with pytest.raises(ConfigParserError, match="state"):
            WebAppConfigParser(site_dir).parse()

    def test_invalid_type(self, site_dir):
        """Test an unknown type is rejected."""
        self.write_config(site_dir, Type="server")

        with pytest.raises(ConfigParserError, match="type"):
            WebAppConfigParser(site_dir).parse()

    def test_bom_flag_inherited(self, site_dir):
        """Test every resource inherits the BOM flag."""
        self.write_config(site_dir)

        webapp = WebAppConfigParser(site_dir, ignore_bom_difference=True).parse()

        assert all(r.ignore_bom_difference for r in webapp.application_resources)

    def test_config_with_bom_marker(self, site_dir):
        """Test a config file saved with a byte order mark is readable."""
        data = json.dumps({"name": "hmi", "state": "disabled", "type": "user"})
        (site_dir / "WebAppConfig.json").write_bytes(b"\xef\xbb\xbf" + data.encode())

        configuration = WebAppConfigParser(site_dir).parse_configuration()

        assert configuration.webapp.state == WebAppState.DISABLED


class TestWebAppResourceBuilder:
    """Tests for WebAppResourceBuilder."""

    def test_config_file_is_not_a_resource(self, site_dir):
        """Test the configuration file is left out."""
        (site_dir / "WebAppConfig.json").write_text("{}")

        resources = WebAppResourceBuilder().build(
            site_dir, config_file_name="WebAppConfig.json"
        )

        assert "WebAppConfig.json" not in [r.name for r in resources]

    def test_unknown_extension_media_type(self, site_dir):
        """Test files without a known type get the octet-stream fallback."""
        (site_dir / "blob.s7data").write_bytes(b"\x00")

        resource = WebAppResourceBuilder().build_resource(
            site_dir / "blob.s7data", site_dir
        )

        assert resource.media_type == "application/octet-stream"
        assert resource.source == site_dir / "blob.s7data"
        assert resource.last_modified.microsecond % 1000 == 0

    def test_nested_resources_keep_their_source(self, site_dir):
        """Test nested files are named by relative path and point at their file."""
        resources = {r.name: r for r in WebAppResourceBuilder().build(site_dir)}

        assert set(resources) == {"a.txt", "css/site.css", "index.html"}
        assert resources["css/site.css"].source == site_dir / "css" / "site.css"
        assert resources["css/site.css"].size == len("body {}")
