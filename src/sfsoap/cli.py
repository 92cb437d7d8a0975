from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

import click

from . import __version__
from .client import Client
from .env_loader import load_env_files
from .exceptions import MissingCredentialsError, SoapForceError
from .headers import mask_token
from .logging_config import configure_logging

_logger = logging.getLogger(__name__)

# Load .env very early, so everything else sees env vars
load_env_files()


def _connect() -> Client:
    """Build a client from the environment and authenticate it.

    SF_ACCESS_TOKEN (with optional SF_SERVER_URL) is used as-is; otherwise
    SF_USERNAME/SF_PASSWORD log in, through OAuth when SF_CLIENT_ID is set.
    """
    client = Client.from_env()
    ctx = click.get_current_context(silent=True)
    if ctx is not None and (ctx.find_root().obj or {}).get("trace"):
        client.set_debug(True)
    if client.session_id:
        server_url = os.getenv("SF_SERVER_URL")
        if server_url:
            client.set_server_url(server_url)
        _logger.debug("Using SF_ACCESS_TOKEN from environment")
        return client

    missing = [k for k in ("SF_USERNAME", "SF_PASSWORD") if not os.getenv(k)]
    if missing:
        raise MissingCredentialsError(missing)

    username = os.environ["SF_USERNAME"]
    password = os.environ["SF_PASSWORD"]
    if client.config.client_id:
        _logger.info("Logging in via OAuth password grant as %s", username)
        client.login_with_oauth(username, password)
    else:
        _logger.info("Logging in via SOAP login as %s", username)
        client.login(username, password)
    return client


def _echo_json(data: Any, pretty: bool) -> None:
    click.echo(json.dumps(data, indent=2 if pretty else None, default=str))


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.version_option(__version__, "--version", prog_name="sfsoap")
@click.option(
    "-v",
    "--verbose",
    "loglevel",
    flag_value=logging.INFO,
    default=None,
    help="Enable INFO logs.",
)
@click.option(
    "-vv",
    "--very-verbose",
    "loglevel",
    flag_value=logging.DEBUG,
    help="Enable DEBUG logs.",
)
@click.option("--trace", is_flag=True, help="Log SOAP envelopes (secrets masked).")
@click.pass_context
def cli(ctx: click.Context, loglevel: Optional[int], trace: bool) -> None:
    """Salesforce SOAP API CLI. Use subcommands like 'login' or 'query'."""
    configure_logging(loglevel, wire=trace)
    ctx.ensure_object(dict)["trace"] = trace
    _logger.debug("CLI start, version=%s", __version__)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("login")
def cmd_login() -> None:
    """Log in and show the resulting session."""
    try:
        client = _connect()
    except SoapForceError as e:
        click.echo(f"❌  Login failed: {e}", err=True)
        raise click.Abort() from None

    click.echo("✅  Logged in to Salesforce.")
    click.echo(f"Server URL: {client.transport.server_url}")
    click.echo(f"Session: {mask_token(client.session_id)}")
    if client.user_info:
        click.echo(f"User: {client.user_info.get('userName')}")


@cli.command("whoami")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_whoami(pretty: bool) -> None:
    """Show getUserInfo for the logged-in user."""
    try:
        _echo_json(_connect().get_user_info(), pretty)
    except SoapForceError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from None


@cli.command("query")
@click.argument("soql")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
@click.option("--all", "include_deleted", is_flag=True, help="Use queryAll (deleted rows too).")
@click.option("--batch-size", type=click.IntRange(min=0), default=0, help="QueryOptions batch size.")
def cmd_query(soql: str, pretty: bool, include_deleted: bool, batch_size: int) -> None:
    """Run a SOQL query and print the result as JSON."""
    try:
        client = _connect()
        if batch_size:
            client.set_batch_size(batch_size)
        res = client.query_all(soql) if include_deleted else client.query(soql)
        _echo_json(res, pretty)
    except SoapForceError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from None


@cli.command("describe")
@click.argument("sobject")
@click.option("--fields", "fields_only", is_flag=True, help="Only list field names.")
@click.option("--pretty", is_flag=True, help="Pretty-print JSON.")
def cmd_describe(sobject: str, fields_only: bool, pretty: bool) -> None:
    """Describe an sObject type."""
    try:
        res = _connect().describe_sobject(sobject)
    except SoapForceError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from None

    if fields_only:
        for f in res.get("fields", []):
            click.echo(f.get("name"))
    else:
        _echo_json(res, pretty)


@cli.command("limits")
def cmd_limits() -> None:
    """Show API usage reported in the LimitInfoHeader."""
    try:
        client = _connect()
        client.get_user_info()
    except SoapForceError as e:
        click.echo(f"Error: {e}", err=True)
        raise click.Abort() from None

    info = client.get_info()
    if not info:
        click.echo("No limit information returned by the server.")
        return
    items = info.get("limitInfo")
    if isinstance(items, dict):
        items = [items]
    for item in items or []:
        click.echo(f"{item.get('type')}: {item.get('current')} / {item.get('limit')}")


@cli.command("logout")
def cmd_logout() -> None:
    """Invalidate the session (useful with SF_ACCESS_TOKEN)."""
    try:
        client = _connect()
        client.logout()
    except SoapForceError as e:
        click.echo(f"❌  Logout failed: {e}", err=True)
        raise click.Abort() from None
    click.echo("✅  Logged out.")
