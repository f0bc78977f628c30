"""Command line front end for the resilient HTTP client.

Usage:
    # Fetch JSON with two retries, 200ms apart
    resilient-http get https://httpbin.org/get --retries 2 --backoff 200ms

    # Post a JSON body with a 5 second overall deadline
    resilient-http post https://httpbin.org/post --data '{"a": 1}' --timeout 5s

    # Take transport settings from a config file ([http] table)
    resilient-http get https://example.com/api --config client.toml -v
"""

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from .client import ResilientHTTPClient
from .config import load_config, parse_duration
from .context import Context
from .encoding import MIME_JSON, MIME_TEXT
from .errors import ClientError, ConfigurationError
from .utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _client_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every request command."""
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path),
                     default=None, help="JSON or TOML file with client options"),
        click.option("--dial-timeout", default=None, help="Connect timeout (e.g. 2s, 500ms)"),
        click.option("--read-timeout", default=None, help="Overall timeout of each attempt (e.g. 10s)"),
        click.option("--keep-alive", default=None, help="TCP keep-alive probe interval"),
        click.option("--backoff", default=None, help="Delay between retries (e.g. 100ms)"),
        click.option("--retries", "-r", default=None, type=int, help="Retries after the first failure"),
        click.option("--timeout", "-t", default=None, help="Overall deadline for the request"),
        click.option("--header", "-H", "headers", multiple=True, help="Extra header, 'Name: value'"),
        click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging"),
        click.option("--json-logs", is_flag=True, help="Output logs in JSON format"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_client(
    config_path: Path | None,
    dial_timeout: str | None,
    read_timeout: str | None,
    keep_alive: str | None,
    backoff: str | None,
    retries: int | None,
) -> ResilientHTTPClient:
    options = load_config(config_path).model_dump()
    overrides = {
        "dial_timeout": dial_timeout,
        "read_timeout": read_timeout,
        "keep_alive": keep_alive,
        "backoff_interval": backoff,
        "retry_count": retries,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    return ResilientHTTPClient(options, logger=logger)


def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _context(timeout: str | None) -> Context:
    if timeout is None:
        return Context.background()
    try:
        return Context.with_timeout(parse_duration(timeout))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--timeout") from e


def _run(request: Callable[[ResilientHTTPClient, Context, dict[str, str]], Any], kwargs: dict) -> None:
    setup_logging(
        log_level="DEBUG" if kwargs.pop("verbose") else "WARNING",
        json_logs=kwargs.pop("json_logs"),
    )
    headers = _parse_headers(kwargs.pop("headers"))
    ctx = _context(kwargs.pop("timeout"))

    try:
        with _build_client(**kwargs) as client:
            result = request(client, ctx, headers)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        # Same status click uses for a bad option value
        sys.exit(2)
    except ClientError as e:
        click.echo(f"Error: {e} (attempts: {e.attempts}, elapsed: {e.elapsed:.2f}s)", err=True)
        sys.exit(1)

    click.echo(json.dumps(result, indent=2, default=str))


@click.group()
def main() -> None:
    """Issue HTTP requests with retry and backoff, printing the JSON response."""


@main.command()
@click.argument("url")
@_client_options
def get(url: str, **kwargs: Any) -> None:
    """GET a URL and print the decoded JSON body."""
    _run(lambda client, ctx, headers: client.get(url, headers, ctx=ctx), kwargs)


@main.command()
@click.argument("url")
@click.option("--data", "-d", default=None, help="Request body (JSON unless --text is given)")
@click.option("--text", is_flag=True, help="Send the body as text/plain")
@_client_options
def post(url: str, data: str | None, text: bool, **kwargs: Any) -> None:
    """POST a body to a URL and print the decoded JSON response."""
    if text:
        content_type, body = MIME_TEXT, data
    else:
        content_type = MIME_JSON
        try:
            body = json.loads(data) if data is not None else None
        except ValueError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data") from e

    _run(lambda client, ctx, headers: client.post(url, content_type, headers, body, ctx=ctx), kwargs)


if __name__ == "__main__":
    main()
