"""Command line interface for mcp-web-capture-server.

This module provides a command-line interface for starting the MCP web
capture server and for running a single tool call from the shell, which
is handy for checking a browser install without an MCP client.
"""

import asyncio
import json
import logging
import os
import sys
from typing import Optional

import click
from dotenv import load_dotenv
from pythonjsonlogger import jsonlogger


def _import_server():
    """Lazily import server functions to avoid early logging configuration."""
    from server.server import init_configuration
    from server.server import main as server_main

    return init_configuration, server_main


# Configure logging for CLI
logger = logging.getLogger()
logger.handlers = []  # Remove any existing handlers
handler = logging.StreamHandler(sys.stderr)
formatter = jsonlogger.JsonFormatter(
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"name":"%(name)s","message":"%(message)s"}'
)
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(logging.INFO)


def log_error(message: str, error: Optional[Exception] = None):
    """Log error in JSON format to stderr"""
    error_data = {"error": message, "traceback": str(error) if error else None}
    print(json.dumps(error_data), file=sys.stderr)


def _apply_log_level(log_level: Optional[str]) -> int:
    # CLI flag > LOG_LEVEL env var > INFO default
    effective_log_level = log_level or os.getenv("LOG_LEVEL") or "INFO"
    lvl = getattr(logging, effective_log_level.upper(), logging.INFO)
    logger.setLevel(lvl)
    logging.getLogger("playwright").setLevel(lvl)
    return lvl


@click.group()
def cli():
    """MCP web capture server command line interface."""


@cli.command()
@click.argument("subcommand")
@click.option("--port", default=8081, help="Port to listen on")
@click.option("--host", default="0.0.0.0", help="Interface to bind")  # nosec
@click.option("--chrome-path", default=None, help="Path to Chrome executable")
@click.option(
    "--headless/--no-headless",
    default=None,
    help="Run browsers in headless mode (default: from BROWSER_HEADLESS env)",
)
@click.option(
    "--log-level",
    default=None,
    help="Logging level for server (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
def run(subcommand, port, host, chrome_path, headless, log_level):
    """Run the web capture MCP server.

    SUBCOMMAND: should be 'server'
    """
    if subcommand != "server":
        log_error(
            f"Unknown subcommand: {subcommand}. Only 'server' is supported."
        )
        sys.exit(1)

    try:
        # Load .env early to respect LOG_LEVEL setting
        load_dotenv(override=False)

        # We need to construct the command line arguments to pass to the
        # server's Click command
        old_argv = sys.argv.copy()

        new_argv = [
            "server",  # Program name
            "--port",
            str(port),
            "--host",
            host,
        ]

        if chrome_path:
            new_argv.extend(["--chrome-path", chrome_path])

        if headless is True:
            new_argv.append("--headless")
        elif headless is False:
            new_argv.append("--no-headless")

        effective_log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
        new_argv.extend(["--log-level", effective_log_level])

        sys.argv = new_argv

        try:
            # Import server main lazily here so CLI logging config takes effect
            _, server_main = _import_server()
            return server_main()
        finally:
            sys.argv = old_argv

    except SystemExit:
        raise
    except Exception as e:
        log_error("Error starting server", e)
        sys.exit(1)


@cli.command("call-tool")
@click.option(
    "--env-file",
    "env_file",
    "-e",
    default=None,
    help="Path to a .env file to load configurations from.",
)
@click.option(
    "--log-level",
    "-l",
    default=None,
    help="Override the logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.option(
    "--arguments",
    "-a",
    "arguments_json",
    default="{}",
    help="Tool arguments as a JSON object.",
)
@click.option(
    "--restricted",
    is_flag=True,
    default=False,
    help="Use the restricted search/retrieve catalog.",
)
@click.argument("name", required=True)
def call_tool(
    env_file: Optional[str],
    log_level: Optional[str],
    arguments_json: str,
    restricted: bool,
    name: str,
):
    """Runs one tool call and prints the JSON-RPC response.

    NAME: The tool to call (e.g. take_screenshot, extract_text, search).
    """
    try:
        load_dotenv(override=False)
        if env_file:
            load_dotenv(dotenv_path=env_file, override=True)

        _apply_log_level(log_level)

        try:
            arguments = json.loads(arguments_json)
        except ValueError as e:
            raise click.BadParameter(
                f"--arguments is not valid JSON: {e}"
            ) from e

        init_configuration, _ = _import_server()
        from server.server import create_app

        # Re-apply logging level in case server import changed handlers/levels
        _apply_log_level(log_level)

        app = create_app(init_configuration())
        dispatcher = app.state.compliant if restricted else app.state.automation

        response = asyncio.run(
            dispatcher.handle(
                {
                    "jsonrpc": "2.0",
                    "id": 1,
                    "method": "tools/call",
                    "params": {"name": name, "arguments": arguments},
                }
            )
        )

        print(json.dumps(response))
        if "error" in response:
            sys.exit(1)

    except SystemExit:
        raise
    except click.ClickException:
        raise
    except Exception as e:
        log_error("CLI call-tool command failed", e)
        sys.exit(1)


if __name__ == "__main__":
    cli()
