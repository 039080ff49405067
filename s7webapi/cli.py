"""CLI interface for the S7 Webserver API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional

import click

from .api import WebserverClient
from .cli_progress import run_with_progress
from .config import config
from .exceptions import (
    ResourceDeploymentFailedError,
    WebAppConfigurationFailedError,
    WebserverAPIError,
)
from .output import OutputFormatter
from .sync import (
    DEFAULT_WEBAPP_CONFIG_FILE,
    DirectoryBuilderConfiguration,
    DirectoryScanner,
    DirectorySynchronizer,
    WebAppConfigParser,
    WebAppDeployer,
    load_builder_configuration,
)
from .transfer import FileTransferHandler
from .utils import DEFAULT_DEPLOYMENT_TRIES, format_device_timestamp

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_session(ctx: Any) -> AsyncIterator[WebserverClient]:
    """Connect to the device and log in if a user is configured.

    Without a user the session stays anonymous, which is enough for
    devices that grant rights to the anonymous user.
    """
    obj = ctx.obj
    async with WebserverClient(host=obj["host"], verify_ssl=obj["verify_ssl"]) as client:
        user = obj["user"] or config.user
        if user:
            await client.login(user, obj["password"] or config.password or "")
        try:
            yield client
        finally:
            if client.token:
                try:
                    await client.logout()
                except WebserverAPIError as e:
                    logger.debug("Logout failed: %s", e)


def _show_progress(out: OutputFormatter) -> bool:
    return not (out.quiet or out.json_output)


@click.group()
@click.option("--host", "-H", envvar="S7WEBAPI_HOST", help="Device address or URL")
@click.option("--user", "-u", envvar="S7WEBAPI_USER", help="Device user name")
@click.option(
    "--password", "-p", envvar="S7WEBAPI_PASSWORD", help="Password of the user"
)
@click.option(
    "--insecure", is_flag=True, help="Do not verify the device certificate"
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="s7webapi")
@click.pass_context
def main(
    ctx: Any,
    host: Optional[str],
    user: Optional[str],
    password: Optional[str],
    insecure: bool,
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """S7 Webserver API - transfer files and deploy WebApps to S7 PLCs."""
    ctx.ensure_object(dict)
    ctx.obj["host"] = host
    ctx.obj["user"] = user
    ctx.obj["password"] = password
    ctx.obj["verify_ssl"] = False if insecure else None
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("s7webapi").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--host", "-H", prompt="Device address", help="Device address or URL")
@click.option("--user", "-u", prompt="User name", default="", help="Device user name")
@click.option(
    "--password",
    "-p",
    prompt="Password",
    default="",
    hide_input=True,
    help="Password of the user",
)
@click.option(
    "--insecure", is_flag=True, help="Do not verify the device certificate"
)
@click.pass_context
def init(ctx: Any, host: str, user: str, password: str, insecure: bool) -> None:
    """Initialize the device configuration.

    Stores the connection settings in ~/.config/s7webapi/config.json.
    """
    out: OutputFormatter = ctx.obj["out"]

    async def _check() -> str:
        verify_ssl = False if insecure else None
        async with WebserverClient(host=host, verify_ssl=verify_ssl) as client:
            if user:
                await client.login(user, password)
            return await client.ping()

    try:
        out.info("Checking connection...")
        try:
            asyncio.run(_check())
            out.success("Device reachable")
        except WebserverAPIError as e:
            out.error(f"Connection check failed: {e}")
            if not click.confirm("Save configuration anyway?", default=False):
                out.warning("Configuration cancelled.")
                ctx.exit(1)

        config.save(
            host,
            user=user or None,
            password=password or None,
            verify_ssl=False if insecure else None,
        )
        out.print_summary(
            "Initialization Complete",
            [
                ("Config file", str(config.get_config_path())),
                ("Host", host),
                ("User", user or "(anonymous)"),
            ],
        )
    except OSError as e:
        out.error(f"Initialization failed: {e}")
        ctx.exit(1)


@main.command()
@click.pass_context
def status(ctx: Any) -> None:
    """Check the connection and the login."""
    out: OutputFormatter = ctx.obj["out"]

    async def _status() -> dict[str, Any]:
        async with open_session(ctx) as client:
            runtime_id = await client.ping()
            return {
                "host": client.base_url,
                "user": ctx.obj["user"] or config.user or "(anonymous)",
                "authenticated": client.token is not None,
                "runtime_id": runtime_id,
            }

    try:
        info = asyncio.run(_status())
    except WebserverAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(info)
        return
    out.print_summary(
        "Device Status",
        [
            ("Host", info["host"]),
            ("User", info["user"]),
            ("Authenticated", "yes" if info["authenticated"] else "no"),
            ("Runtime id", info["runtime_id"]),
        ],
    )


@main.command()
@click.pass_context
def tickets(ctx: Any) -> None:
    """List the tickets the device currently holds."""
    out: OutputFormatter = ctx.obj["out"]

    async def _browse() -> Any:
        async with open_session(ctx) as client:
            return await client.browse_tickets_result()

    try:
        result = asyncio.run(_browse())
    except WebserverAPIError as e:
        out.error(f"API error: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            {
                "max_tickets": result.max_tickets,
                "tickets": [t.to_dict() for t in result.tickets],
            }
        )
        return

    if not result.tickets:
        out.info(f"No open tickets (limit {result.max_tickets})")
        return

    table_data = [
        {
            "id": t.id,
            "state": t.state.value,
            "provider": t.provider.value,
            "date_created": (
                format_device_timestamp(t.date_created) if t.date_created else ""
            ),
        }
        for t in result.tickets
    ]
    out.output_table(
        table_data,
        ["id", "state", "provider", "date_created"],
        {
            "id": "Ticket",
            "state": "State",
            "provider": "Provider",
            "date_created": "Created",
        },
    )
    out.info(f"{len(result.tickets)} of {result.max_tickets} ticket(s) in use")


@main.command()
@click.argument("resource")
@click.option(
    "--dir",
    "-d",
    "directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Local directory to download into",
)
@click.option(
    "--overwrite", is_flag=True, help="Replace an existing local file"
)
@click.option(
    "--clear-datalog",
    is_flag=True,
    help="Download a data log and clear it on the device",
)
@click.pass_context
def download(
    ctx: Any, resource: str, directory: Path, overwrite: bool, clear_datalog: bool
) -> None:
    """Download RESOURCE from the device file system.

    Without --overwrite an existing file is kept and the download is
    stored as name(0).ext, name(1).ext, ...

    Examples:
        s7webapi download /DataLogs/log.csv --dir ./logs
    """
    out: OutputFormatter = ctx.obj["out"]

    async def _download() -> Path:
        async with open_session(ctx) as client:
            transfer = FileTransferHandler(client)
            if clear_datalog:
                _, target = await transfer.download_datalog_and_clear(
                    resource, directory, overwrite=overwrite
                )
            else:
                _, target = await transfer.download_file(
                    resource, directory, overwrite=overwrite
                )
            return target

    try:
        target = asyncio.run(_download())
    except KeyboardInterrupt:
        out.warning("\nDownload cancelled by user")
        ctx.exit(130)
        return
    except WebserverAPIError as e:
        out.error(f"Download failed: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"resource": resource, "path": str(target)})
    else:
        out.success(
            f"Downloaded {resource} to {target} "
            f"({out.format_size(target.stat().st_size)})"
        )


@main.command()
@click.argument(
    "local_file", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.argument("resource")
@click.pass_context
def upload(ctx: Any, local_file: Path, resource: str) -> None:
    """Upload LOCAL_FILE to the device path RESOURCE.

    Examples:
        s7webapi upload ./recipe.csv /Recipes/recipe.csv
    """
    out: OutputFormatter = ctx.obj["out"]

    async def _upload() -> None:
        async with open_session(ctx) as client:
            await FileTransferHandler(client).deploy_file(resource, local_file)

    try:
        out.progress_message(
            f"Uploading {local_file} ({out.format_size(local_file.stat().st_size)})"
        )
        asyncio.run(_upload())
    except KeyboardInterrupt:
        out.warning("\nUpload cancelled by user")
        ctx.exit(130)
        return
    except (WebserverAPIError, OSError) as e:
        out.error(f"Upload failed: {e}")
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"resource": resource, "path": str(local_file)})
    else:
        out.success(f"Uploaded {local_file} to {resource}")


def _report_deployment_failure(out: OutputFormatter, e: WebserverAPIError) -> None:
    if out.json_output and isinstance(e, ResourceDeploymentFailedError):
        out.output_json(
            {
                "success": False,
                "tries": e.tries,
                "unexpected": e.unexpected,
                "missing": e.missing,
            }
        )
    elif out.json_output and isinstance(e, WebAppConfigurationFailedError):
        out.output_json(
            {"success": False, "expected": e.expected, "observed": e.observed}
        )
    else:
        out.error(str(e))


@main.command("deploy-dir")
@click.argument(
    "local_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--remote-parent",
    "-r",
    default="/",
    show_default=True,
    help="Device directory that receives LOCAL_DIR",
)
@click.option(
    "--tries",
    "-t",
    type=int,
    default=DEFAULT_DEPLOYMENT_TRIES,
    show_default=True,
    help="Maximum number of deployment rounds",
)
@click.option(
    "--ignore-config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with directories, resources and extensions to skip",
)
@click.option(
    "--compare-mtime",
    is_flag=True,
    help="Also replace files whose modification time differs",
)
@click.pass_context
def deploy_dir(
    ctx: Any,
    local_dir: Path,
    remote_parent: str,
    tries: int,
    ignore_config: Optional[Path],
    compare_mtime: bool,
) -> None:
    """Make a device directory match LOCAL_DIR.

    Missing files and directories are created, changed files replaced and
    files that only exist on the device deleted.

    Examples:
        s7webapi deploy-dir ./recipes --remote-parent /UserFiles
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        builder_config = (
            load_builder_configuration(ignore_config)
            if ignore_config
            else DirectoryBuilderConfiguration()
        )
        tree = DirectoryScanner(builder_config).scan_local(
            local_dir.resolve(), prefix=remote_parent
        )
    except WebserverAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    out.info(f"Deploying {len(tree)} resource(s) to {tree.device_path(tree.ROOT)}")

    async def _deploy(tracker: Any) -> int:
        async with open_session(ctx) as client:
            synchronizer = DirectorySynchronizer(
                client,
                compare_modification_time=compare_mtime,
                progress=tracker,
            )
            return await synchronizer.deploy_or_update(tree, tries=tries)

    try:
        rounds = asyncio.run(run_with_progress(_deploy, _show_progress(out)))
    except KeyboardInterrupt:
        out.warning("\nDeployment cancelled by user")
        ctx.exit(130)
        return
    except WebserverAPIError as e:
        _report_deployment_failure(out, e)
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json(
            {
                "success": True,
                "path": tree.device_path(tree.ROOT),
                "rounds": rounds,
            }
        )
    else:
        out.print_summary(
            "Deployment Complete",
            [
                ("Device path", tree.device_path(tree.ROOT)),
                ("Rounds", str(rounds) if rounds else "0 (already up to date)"),
            ],
        )


@main.command("deploy-webapp")
@click.argument(
    "webapp_dir", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--config-file",
    "-c",
    default=DEFAULT_WEBAPP_CONFIG_FILE,
    show_default=True,
    help="Configuration file inside WEBAPP_DIR",
)
@click.option(
    "--tries",
    "-t",
    type=int,
    default=DEFAULT_DEPLOYMENT_TRIES,
    show_default=True,
    help="Maximum number of deployment rounds",
)
@click.option(
    "--ignore-bom",
    is_flag=True,
    help="Treat files differing only by a UTF-8 byte order mark as equal",
)
@click.pass_context
def deploy_webapp(
    ctx: Any, webapp_dir: Path, config_file: str, tries: int, ignore_bom: bool
) -> None:
    """Create or update the WebApp defined in WEBAPP_DIR.

    Examples:
        s7webapi deploy-webapp ./hmi --tries 5
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        webapp = WebAppConfigParser(
            webapp_dir.resolve(), config_file, ignore_bom_difference=ignore_bom
        ).parse()
    except WebserverAPIError as e:
        out.error(str(e))
        ctx.exit(1)
        return

    out.info(
        f"Deploying WebApp {webapp.name} with "
        f"{len(webapp.application_resources)} resource(s)"
    )

    async def _deploy(tracker: Any) -> int:
        async with open_session(ctx) as client:
            return await WebAppDeployer(client, progress=tracker).deploy_or_update(
                webapp, tries=tries
            )

    try:
        rounds = asyncio.run(run_with_progress(_deploy, _show_progress(out)))
    except KeyboardInterrupt:
        out.warning("\nDeployment cancelled by user")
        ctx.exit(130)
        return
    except WebserverAPIError as e:
        _report_deployment_failure(out, e)
        ctx.exit(1)
        return

    if out.json_output:
        out.output_json({"success": True, "webapp": webapp.name, "rounds": rounds})
    else:
        out.print_summary(
            "WebApp Deployment Complete",
            [
                ("WebApp", webapp.name),
                ("Resources", str(len(webapp.application_resources))),
                ("Rounds", str(rounds)),
            ],
        )


if __name__ == "__main__":
    main()
