"""Click CLI for Metascope."""

import asyncio
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import NoReturn, Optional

import click
from trogon import tui

from metascope import __version__
from metascope.client import AzureCliCredential, DataverseClient, StaticCredential
from metascope.config import (
    AVAILABLE_THEMES,
    EXPORT_FORMAT_OPTIONS,
    KEY_MODE_OPTIONS,
    MetascopeConfig,
)
from metascope.errors import MetascopeError, UserInputInvalid
from metascope.export import EXPORT_FORMATS, export_table, render_table
from metascope.logging_config import setup_logging
from metascope.models import Environment, QueryResult


logger = logging.getLogger(__name__)


def _fail(error: MetascopeError) -> NoReturn:
    """Report a startup/command failure and exit with status 1."""
    click.echo(f"Error: {error.message}", err=True)
    if error.hint:
        click.echo(f"Hint: {error.hint}", err=True)
    raise SystemExit(1)


def make_client(token: Optional[str], config: MetascopeConfig) -> DataverseClient:
    """Client authenticating with *token*, or through the Azure CLI."""
    credentials = StaticCredential(token) if token else AzureCliCredential()
    return DataverseClient(credentials, timeout=config.request_timeout)


def _save(config: MetascopeConfig) -> None:
    try:
        config.save()
    except OSError as e:
        logger.warning("Could not save config: %s", e)
        click.echo(f"Warning: could not save config: {e}", err=True)


def _resolve_env_url(env_url: Optional[str], config: MetascopeConfig) -> str:
    url = env_url or config.current_environment
    if not url:
        click.echo(
            "Error: No environment given. Use --env URL or set DATAVERSE_URL.",
            err=True,
        )
        raise SystemExit(1)
    return url


async def _connect(client: DataverseClient, env: Environment) -> str:
    try:
        return await client.check_connection(env)
    finally:
        await client.close()


@tui()
@click.group(invoke_without_command=True)
@click.option(
    "--env", "-e", "env_url", envvar="DATAVERSE_URL",
    help="Environment URL, e.g. https://org.crm.dynamics.com",
)
@click.option("--vim", is_flag=True, help="Use vim keys (h/j/k/l) for this session")
@click.option(
    "--token", envvar="DATAVERSE_TOKEN",
    help="Bearer token to use instead of the Azure CLI",
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, path_type=Path),
    help="Log file (default: ~/.metascope/metascope.log)",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version=__version__, prog_name="metascope")
@click.pass_context
def cli(
    ctx: click.Context,
    env_url: Optional[str],
    vim: bool,
    token: Optional[str],
    log_file: Optional[Path],
    debug: bool,
) -> None:
    """Metascope - Dataverse metadata browser.

    Browse entities, attributes, relationships, solutions, layers,
    users, teams and security roles of a Dataverse environment.

    Quick start:
        metascope --env URL       Open the browser for an environment
        metascope envs list       List known environments
        metascope discover        Find environments you can access
        metascope fetch q.xml     Run a FetchXML query
        metascope tui             Launch command explorer (Trogon)
    """
    setup_logging(logging.DEBUG if debug else logging.INFO, log_file)
    ctx.ensure_object(dict)
    config = MetascopeConfig.load()
    ctx.obj.update(config=config, env_url=env_url, token=token)

    if ctx.invoked_subcommand is None:
        browse(config, env_url, token, vim)


def browse(
    config: MetascopeConfig,
    env_url: Optional[str],
    token: Optional[str],
    vim: bool,
) -> None:
    """Check the environment is reachable, then run the TUI."""
    from metascope.core.keymap import KeyMode
    from metascope.tui import MetascopeApp

    env = Environment.create(_resolve_env_url(env_url, config))
    client = make_client(token, config)
    click.echo(f"Connecting to {env.host}...")
    try:
        user_id = asyncio.run(_connect(client, env))
    except MetascopeError as e:
        logger.error("Startup failed for %s: %s", env.url, e.describe())
        _fail(e)
    logger.info("Connected to %s as %s", env.url, user_id)

    config.add_environment(env.url)
    _save(config)

    app = MetascopeApp(client, env, config=config, mode=KeyMode.VIM if vim else None)
    app.run()


# =============================================================================
# Environments Commands - Manage known environments
# =============================================================================


@cli.group()
def envs() -> None:
    """Manage known environments.

    Environments are remembered in ~/.metascope/config.json and offered
    by the environment switcher (E) inside the browser.
    """
    pass


@envs.command("list")
@click.pass_obj
def envs_list(obj: dict) -> None:
    """List known environments (* marks the current one)."""
    config: MetascopeConfig = obj["config"]
    if not config.environments:
        click.echo("No environments configured.")
        return
    for url in config.environments:
        marker = "*" if url == config.current_environment else " "
        click.echo(f"{marker} {url}")


@envs.command("add")
@click.argument("url")
@click.pass_obj
def envs_add(obj: dict, url: str) -> None:
    """Add an environment and make it current.

    URL: Environment URL, e.g. https://org.crm.dynamics.com
    """
    if not url.startswith(("http://", "https://")):
        raise click.BadParameter("URL must start with http:// or https://", param_hint="URL")
    config: MetascopeConfig = obj["config"]
    url = config.add_environment(url)
    _save(config)
    click.echo(f"✓ Added environment: {url}")


@envs.command("remove")
@click.argument("url")
@click.pass_obj
def envs_remove(obj: dict, url: str) -> None:
    """Forget an environment.

    URL: Environment URL to remove
    """
    config: MetascopeConfig = obj["config"]
    if not config.remove_environment(url):
        click.echo(f"Error: Environment '{url}' not found.", err=True)
        raise SystemExit(1)
    _save(config)
    click.echo(f"✓ Removed environment: {url}")


# =============================================================================
# Remote Commands - Discovery and FetchXML
# =============================================================================


@cli.command()
@click.option("--add", "add_all", is_flag=True, help="Remember every discovered environment")
@click.pass_obj
def discover(obj: dict, add_all: bool) -> None:
    """List environments available to the signed-in Azure CLI user."""
    config: MetascopeConfig = obj["config"]
    client = make_client(obj["token"], config)

    async def run():
        try:
            return await client.discover()
        finally:
            await client.close()

    try:
        instances = asyncio.run(run())
    except MetascopeError as e:
        _fail(e)

    if not instances:
        click.echo("No environments found.")
        return
    for instance in instances:
        region = f" [{instance.region}]" if instance.region else ""
        click.echo(f"{instance.display_name}{region}")
        click.echo(f"  {instance.url}")
        if add_all:
            config.add_environment(instance.url)
    if add_all:
        _save(config)
        click.echo(f"\n✓ Added {len(instances)} environments")


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option(
    "--format", "-f", "fmt", type=click.Choice(list(EXPORT_FORMATS)),
    default=None, help="Output format (default: configured export format)",
)
@click.option(
    "--output", "-o", type=click.Path(dir_okay=False, path_type=Path),
    help="Write to a file instead of stdout",
)
@click.pass_obj
def fetch(obj: dict, source, fmt: Optional[str], output: Optional[Path]) -> None:
    """Run a FetchXML query and print or export the result.

    SOURCE: File containing the FetchXML query ('-' for stdin)
    """
    config: MetascopeConfig = obj["config"]
    fetch_xml = source.read()
    env = Environment.create(_resolve_env_url(obj["env_url"], config))
    client = make_client(obj["token"], config)
    fmt = fmt or config.export_format

    async def run() -> QueryResult:
        try:
            return await client.execute_fetch_xml(env, fetch_xml)
        finally:
            await client.close()

    try:
        result = asyncio.run(run())
    except UserInputInvalid as e:
        raise click.BadParameter(e.message, param_hint="SOURCE") from e
    except MetascopeError as e:
        _fail(e)

    if output:
        path = export_table(result.columns, result.rows, fmt=fmt, path=output)
        click.echo(f"✓ Exported {result.row_count} rows to {path}")
    else:
        click.echo(render_table(result.columns, result.rows, fmt), nl=False)


# =============================================================================
# Config Commands - Inspect and change settings
# =============================================================================

SETTABLE = {
    "theme": [value for value, _ in AVAILABLE_THEMES],
    "key_mode": [value for value, _ in KEY_MODE_OPTIONS],
    "export_format": [value for value, _ in EXPORT_FORMAT_OPTIONS],
    "business_unit_policy": ["own", "ancestors", "none"],
    "fuzzy_search": ["true", "false"],
}


@cli.group("config")
def config_group() -> None:
    """Inspect and change settings."""
    pass


@config_group.command("show")
@click.pass_obj
def config_show(obj: dict) -> None:
    """Show the current configuration."""
    config: MetascopeConfig = obj["config"]
    click.echo(f"# {MetascopeConfig.get_config_path()}")
    click.echo(json.dumps(asdict(config), indent=2))


@config_group.command("set")
@click.argument("key", type=click.Choice(sorted(SETTABLE)))
@click.argument("value")
@click.pass_obj
def config_set(obj: dict, key: str, value: str) -> None:
    """Change one setting.

    KEY: Setting name
    VALUE: New value
    """
    allowed = SETTABLE[key]
    if value not in allowed:
        raise click.BadParameter(f"must be one of: {', '.join(allowed)}", param_hint="VALUE")
    config: MetascopeConfig = obj["config"]
    setattr(config, key, value == "true" if key == "fuzzy_search" else value)
    _save(config)
    click.echo(f"✓ {key} = {value}")


@config_group.command("reset")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def config_reset(obj: dict, yes: bool) -> None:
    """Reset all settings (including known environments)."""
    if not yes:
        click.confirm("Reset configuration to defaults?", abort=True)
    config: MetascopeConfig = obj["config"]
    config.reset()
    _save(config)
    click.echo("✓ Configuration reset")
