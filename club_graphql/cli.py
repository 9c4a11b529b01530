#!/usr/bin/env python3
"""
club-graphql CLI

Command-line interface for running GraphQL queries, streaming subscriptions
and inspecting the resolved configuration.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from pydantic import ValidationError

from .config.loader import ConfigLoader
from .config.models import GlobalConfig, LogLevel, TransportConfig
from .exceptions import ClubGraphQLError
from .logging import setup_logging
from .provider import GraphQLProvider
from .subscriptions.bridge import subscribe_iter


def _read_document(document: str) -> str:
    """Resolve ``-`` to stdin and ``@path`` to a file's contents."""
    if document == "-":
        return sys.stdin.read()
    if document.startswith("@"):
        return Path(document[1:]).read_text(encoding="utf-8")
    return document


def _parse_variables(variables: Optional[str]) -> Optional[Dict[str, Any]]:
    if not variables:
        return None
    try:
        parsed = json.loads(variables)
    except ValueError as e:
        raise click.BadParameter(f"Invalid JSON: {e}", param_hint="--variables")
    if not isinstance(parsed, dict):
        raise click.BadParameter("Variables must be a JSON object", param_hint="--variables")
    return parsed


def _parse_headers(headers: Tuple[str, ...]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for header in headers:
        name, sep, value = header.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"Expected 'Name: value', got {header!r}", param_hint="--header")
        result[name.strip()] = value.strip()
    return result


def _load_config(ctx: click.Context) -> GlobalConfig:
    obj = ctx.obj
    try:
        config = ConfigLoader().load_config(obj.get("config_file"))
        http_endpoint = obj.get("endpoint")
        socket_endpoint = obj.get("socket_endpoint")
        if http_endpoint or socket_endpoint:
            current = config.transport
            transport = TransportConfig(
                http_endpoint=http_endpoint or (current.http_endpoint if current else ""),
                socket_endpoint=socket_endpoint
                or (current.socket_endpoint if current else None),
            )
            config = config.model_copy(update={"transport": transport})
    except (ClubGraphQLError, ValidationError) as e:
        click.echo(f"✗ Invalid configuration: {e}", err=True)
        sys.exit(1)

    if obj.get("verbose"):
        config = config.model_copy(
            update={"logging": config.logging.model_copy(update={"level": LogLevel.DEBUG})}
        )
    setup_logging(config.logging)
    return config


def _provider(ctx: click.Context) -> GraphQLProvider:
    config = _load_config(ctx)
    try:
        return GraphQLProvider.from_config(config)
    except ClubGraphQLError as e:
        click.echo(f"✗ {e.message}. Pass --endpoint or set CLUB_GRAPHQL_HTTP_ENDPOINT.", err=True)
        sys.exit(1)


@click.group()
@click.version_option(package_name="club-graphql-client")
@click.option('--config', '-c', type=click.Path(exists=True), help='Configuration file path')
@click.option('--endpoint', '-e', help='GraphQL HTTP endpoint')
@click.option('--socket-endpoint', '-s', help='GraphQL WebSocket endpoint')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[str],
    endpoint: Optional[str],
    socket_endpoint: Optional[str],
    verbose: bool,
) -> None:
    """club-graphql - run GraphQL operations against a club API."""
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['endpoint'] = endpoint
    ctx.obj['socket_endpoint'] = socket_endpoint
    ctx.obj['verbose'] = verbose


@cli.command()
@click.argument('document')
@click.option('--variables', '-V', help='Variables as a JSON object')
@click.option('--header', '-H', 'headers', multiple=True, help="Extra header 'Name: value'")
@click.pass_context
def query(ctx: click.Context, document: str, variables: Optional[str], headers: Tuple[str, ...]) -> None:
    """Run a query or mutation and print the data as JSON.

    DOCUMENT is the document text, '@file.graphql', or '-' for stdin.
    """
    text = _read_document(document)
    parsed_variables = _parse_variables(variables)
    parsed_headers = _parse_headers(headers)
    provider = _provider(ctx)

    async def run_query() -> Any:
        async with provider:
            return await provider.execute(text, parsed_variables, parsed_headers)

    try:
        data = asyncio.run(run_query())
    except ClubGraphQLError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)

    click.echo(json.dumps(data, indent=2))


@cli.command()
@click.argument('document')
@click.option('--variables', '-V', help='Variables as a JSON object')
@click.option('--count', '-n', type=int, default=0, help='Stop after N events (0 streams until completion)')
@click.pass_context
def subscribe(ctx: click.Context, document: str, variables: Optional[str], count: int) -> None:
    """Stream a subscription, printing one JSON line per event.

    DOCUMENT is the document text, '@file.graphql', or '-' for stdin.
    """
    text = _read_document(document)
    parsed_variables = _parse_variables(variables)
    provider = _provider(ctx)

    async def run_subscription() -> int:
        received = 0
        async with provider:
            if provider.registry.current_socket_client() is None:
                click.echo("✗ Subscriptions unavailable: no socket endpoint configured", err=True)
                return -1
            async for data in subscribe_iter(provider.registry, text, parsed_variables):
                click.echo(json.dumps(data))
                received += 1
                if count and received >= count:
                    break
        return received

    try:
        received = asyncio.run(run_subscription())
    except KeyboardInterrupt:
        click.echo("Interrupted", err=True)
        return
    except ClubGraphQLError as e:
        click.echo(f"✗ {e.message}", err=True)
        sys.exit(1)

    if received < 0:
        sys.exit(1)
    if ctx.obj['verbose']:
        click.echo(f"Received {received} event(s)", err=True)


@cli.group()
def config() -> None:
    """Configuration inspection."""
    pass


@config.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show the resolved configuration as JSON."""
    resolved = _load_config(ctx)
    click.echo(json.dumps(resolved.model_dump(mode="json"), indent=2))


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == '__main__':
    main()
