"""Balanghay library server.

The UI shell starts this process and talks to it over stdio: it calls
tools for anything that changes state (borrowing, returning, catalog
edits, sign-in) and reads resources under ``library://`` for everything
it displays. stdout carries the protocol, so logging goes to stderr.

Startup runs the idempotent migration before the first request is
accepted, so an old database file is upgraded in place.
"""

import logging
import signal
import sys
from typing import Any

from fastmcp import FastMCP

from balanghay.config import LibraryConfig, get_config
from balanghay.database.migration import initialize
from balanghay.resources import all_resources
from balanghay.tools import all_tools
from balanghay.tools.common import LibraryTool

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)

logger = logging.getLogger(__name__)


def create_server(config: LibraryConfig | None = None) -> FastMCP:
    """Build the FastMCP server with every tool and resource registered."""
    config = config or get_config()

    server = FastMCP(
        name=config.app_name,
        version=config.app_version,
        instructions=(
            "Balanghay library backend. Read books, copies, shelves, members, loans and "
            "reports through library:// resources. Use tools to borrow and return copies, "
            "print receipts, edit the catalog and sign in. Every tool answers with "
            "success, message and data."
        ),
    )

    for tool in all_tools:
        server.add_tool(LibraryTool.from_definition(tool))
    logger.info("Registered %d tools", len(all_tools))

    for resource in all_resources:
        server.resource(
            resource["uri"],
            name=resource["name"],
            description=resource["description"],
            mime_type=resource["mime_type"],
        )(resource["handler"])
    logger.info("Registered %d resources", len(all_resources))

    return server


mcp = create_server()


def _configure_logging(config: LibraryConfig) -> None:
    if config.is_development:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.debug("Debug logging enabled")
    else:
        logging.getLogger().setLevel(config.log_level)
        logging.getLogger("fastmcp").setLevel(logging.WARNING)


def run_stdio_server() -> None:
    config = get_config()
    _configure_logging(config)
    logger.info("Starting %s v%s on %s", config.app_name, config.app_version, config.transport)

    def signal_handler(signum: int, _frame: Any) -> None:
        logger.info("Received signal %s, shutting down", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        result = initialize()
        logger.info(
            "Database ready at %s (%s)",
            config.database_path,
            "migrated" if result.changed else "up to date",
        )
        mcp.run(transport="stdio")
    except Exception:
        logger.exception("Fatal error in library server")
        sys.exit(1)


def main() -> None:
    run_stdio_server()


if __name__ == "__main__":
    main()
