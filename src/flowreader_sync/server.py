"""MCP server entry point for the FlowReader sync client.

Runs FastMCP with Streamable HTTP transport. The event stream is started
in the server lifespan so cached listings stay in sync while it runs.
"""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastmcp import FastMCP

from .cache import PagedCollectionCache
from .client import FlowReaderClient
from .config import Config, load_config
from .coordinator import SyncCoordinator
from .events import EventStreamClient
from .tools import register_tools

logger = logging.getLogger(__name__)


def build_coordinator(config: Config, client: FlowReaderClient) -> SyncCoordinator:
    """Construct a fresh cache, event stream and coordinator around ``client``."""
    events = EventStreamClient(
        config.ws_url,
        reconnect_delay=config.reconnect_delay,
        session_token=lambda: client.session_token,
    )
    return SyncCoordinator(
        client,
        PagedCollectionCache(page_size=config.page_size),
        events=events,
        mutation_timeout=config.request_timeout,
    )


def create_server(config: Config) -> FastMCP:
    client = FlowReaderClient(config)
    coordinator = build_coordinator(config, client)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        if config.flowreader_email and config.flowreader_password:
            await client.login(config.flowreader_email, config.flowreader_password.get_secret_value())
        coordinator.start()
        try:
            yield
        finally:
            logger.info("Shutting down, closing connections...")
            await coordinator.stop()
            await client.aclose()

    mcp = FastMCP("flowreader-sync", lifespan=lifespan)
    register_tools(mcp, coordinator, client)
    return mcp


def main() -> None:
    """Run the FlowReader MCP server."""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    config = load_config()
    mcp = create_server(config)

    logger.info(
        "Starting FlowReader MCP server on %s:%d (streamable-http)",
        config.server_host,
        config.server_port,
    )
    mcp.run(
        transport="streamable-http",
        host=config.server_host,
        port=config.server_port,
    )


if __name__ == "__main__":
    main()
