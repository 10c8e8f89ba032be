"""Command-line interface for Twirp services.

Provides ``call`` for invoking a method in JSON mode, ``codes`` for printing
the error-code table, and ``serve`` for running a WSGI app with waitress.

Usage::

    twirp-rpc codes
    twirp-rpc --url http://localhost:8000 call twitch.twirp.example.Haberdasher MakeHat --json '{"inches": 12}'
    twirp-rpc serve myservice.app:app --port 8000

"""

from __future__ import annotations

import importlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Annotated, Any

import httpx
import typer

from twirp_rpc.errors import ErrorCode, TwirpError, encode_error, status_for
from twirp_rpc.http._client import ClientConfig, TwirpClient
from twirp_rpc.logging_utils import configure_json_logging
from twirp_rpc.service import DEFAULT_PREFIX

# ---------------------------------------------------------------------------
# Output format enum
# ---------------------------------------------------------------------------


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    json = "json"
    table = "table"


# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    url: str | None = None
    prefix: str = DEFAULT_PREFIX
    format: OutputFormat = OutputFormat.json
    timeout: float = 30.0
    verbose: bool = False


app = typer.Typer(
    name="twirp-rpc",
    help="CLI for Twirp services.",
    add_completion=False,
    no_args_is_help=True,
)


@app.callback()
def _main(
    ctx: typer.Context,
    url: Annotated[str | None, typer.Option("--url", "-u", help="HTTP base URL")] = None,
    prefix: Annotated[str, typer.Option("--prefix", "-p", help="URL path prefix")] = DEFAULT_PREFIX,
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.json,
    timeout: Annotated[float, typer.Option("--timeout", help="Request timeout in seconds")] = 30.0,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log wire traffic to stderr")] = False,
) -> None:
    """Configure transport and output options."""
    if verbose:
        logging.basicConfig(level=logging.WARNING, format="%(name)s: %(message)s")
        logging.getLogger("twirp_rpc.wire").setLevel(logging.DEBUG)
    ctx.obj = _CliConfig(url=url, prefix=prefix, format=fmt, timeout=timeout, verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_http_client(config: _CliConfig) -> Any:
    """Create the HTTP client used by ``call``; tests substitute an in-process client."""
    return httpx.Client(timeout=config.timeout)


def _format_table(rows: list[dict[str, object]]) -> str:
    """Format rows as an aligned text table."""
    if not rows:
        return ""
    columns = list(rows[0].keys())
    str_rows = [{col: str(row.get(col, "")) for col in columns} for row in rows]
    widths = {col: max(len(col), *(len(sr[col]) for sr in str_rows)) for col in columns}
    lines = ["  ".join(col.ljust(widths[col]) for col in columns)]
    lines.append("  ".join("-" * widths[col] for col in columns))
    lines.extend("  ".join(sr[col].ljust(widths[col]) for col in columns) for sr in str_rows)
    return "\n".join(lines)


def _emit_twirp_error(e: TwirpError) -> None:
    """Write a TwirpError to stderr as its wire envelope."""
    typer.echo(encode_error(e).decode("ascii"), err=True)


def _load_app(target: str) -> Callable[..., Any]:
    """Import ``module:attribute`` and return the WSGI application it names."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"Expected MODULE:ATTRIBUTE, got {target!r}")
    module = importlib.import_module(module_name)
    wsgi_app = getattr(module, attr, None)
    if wsgi_app is None:
        raise typer.BadParameter(f"Module {module_name!r} has no attribute {attr!r}")
    if not callable(wsgi_app):
        raise typer.BadParameter(f"{target} is not a WSGI application")
    return wsgi_app


# ---------------------------------------------------------------------------
# codes command
# ---------------------------------------------------------------------------


@app.command()
def codes(ctx: typer.Context) -> None:
    """Print every Twirp error code with the HTTP status it maps to."""
    config: _CliConfig = ctx.obj
    rows: list[dict[str, object]] = [{"code": code.value, "http_status": status_for(code)} for code in ErrorCode]
    if config.format == OutputFormat.table:
        typer.echo(_format_table(rows))
    else:
        typer.echo(json.dumps(rows))


# ---------------------------------------------------------------------------
# call command
# ---------------------------------------------------------------------------


@app.command()
def call(
    ctx: typer.Context,
    service: Annotated[str, typer.Argument(help="Fully-qualified service name (package.Service)")],
    method: Annotated[str, typer.Argument(help="Method name to call (e.g. MakeHat)")],
    json_input: Annotated[str | None, typer.Option("--json", "-j", help="JSON request body")] = None,
    snake: Annotated[bool, typer.Option("--snake", help="Keep snake_case keys in the response")] = False,
) -> None:
    """Call a method on a Twirp service using the JSON encoding."""
    config: _CliConfig = ctx.obj
    if not config.url:
        raise typer.BadParameter("--url is required")

    try:
        payload: object = json.loads(json_input) if json_input else {}
    except ValueError as e:
        raise typer.BadParameter(f"--json is not valid JSON: {e}") from None

    client = TwirpClient(
        service,
        config.url,
        prefix=config.prefix,
        client=_make_http_client(config),
        config=ClientConfig(timeout=config.timeout, camel_case_json=not snake),
    )
    try:
        result = client.call_json(method, payload)
    except TwirpError as e:
        _emit_twirp_error(e)
        raise typer.Exit(1) from None
    except httpx.TransportError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        client.close()

    if config.format == OutputFormat.table and isinstance(result, dict):
        typer.echo(_format_table([result]))
    else:
        typer.echo(json.dumps(result, indent=2))


# ---------------------------------------------------------------------------
# serve command
# ---------------------------------------------------------------------------


@app.command()
def serve(
    target: Annotated[str, typer.Argument(help="WSGI app to serve, as MODULE:ATTRIBUTE")],
    host: Annotated[str, typer.Option("--host", help="Interface to bind")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", help="Port to bind")] = 8000,
    threads: Annotated[int, typer.Option("--threads", help="Worker threads")] = 4,
    log_json: Annotated[bool, typer.Option("--log-json", help="Emit structured JSON logs on stderr")] = False,
) -> None:
    """Serve a Twirp WSGI app (from ``make_wsgi_app``) with waitress."""
    try:
        import waitress
    except ImportError:
        typer.echo("Error: serving requires waitress (pip install twirp-rpc[serve])", err=True)
        raise typer.Exit(1) from None

    wsgi_app = _load_app(target)
    if log_json:
        configure_json_logging(logging.INFO)
    typer.echo(f"Serving {target} on http://{host}:{port}")
    waitress.serve(wsgi_app, host=host, port=port, threads=threads, _quiet=True)


def main() -> None:
    """Entry point for the ``twirp-rpc`` console script."""
    app()


if __name__ == "__main__":
    main()
