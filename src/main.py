"""
Main entry point for certsync.

This module wires the source and destination plugins into the controller
and runs it alongside the status API.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from api import StatusServer
from config import get_config
from controller import Controller, ControllerConfig
from events import EventBus
from plugins.destinations.base import DestinationPlugin
from plugins.registry import get_registry, register_builtin_plugins
from plugins.sources.base import SourceAuthorizationError, SourcePlugin

logger = logging.getLogger(__name__)

# Chatty client libraries, kept quiet unless debugging
_NOISY_LOGGERS = ("kubernetes", "botocore", "urllib3")


def configure_logging(level_name: str) -> None:
    """Configure root logging at the given level name."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    if level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class Application:
    """Main application that orchestrates the controller and plugins."""

    def __init__(self):
        self.config = get_config()
        self.source: Optional[SourcePlugin] = None
        self.destination: Optional[DestinationPlugin] = None
        self.controller: Optional[Controller] = None
        self.event_bus: Optional[EventBus] = None
        self.status_server: Optional[StatusServer] = None
        self.running = False

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing certsync")

        # Register built-in plugins
        register_builtin_plugins()
        registry = get_registry()

        # Initialize event bus
        self.event_bus = EventBus()

        # Plugins define their own env loading; the config file overrides it
        plugins = self.config.plugins

        source_config = registry.get_source_plugin_config(plugins.source)
        source_config.update(plugins.get_plugin_config(plugins.source))
        self.source = await registry.get_source_plugin(plugins.source, source_config)
        self.source.set_event_bus(self.event_bus)

        destination_config = registry.get_destination_plugin_config(
            plugins.destination
        )
        destination_config.update(plugins.get_plugin_config(plugins.destination))
        self.destination = await registry.get_destination_plugin(
            plugins.destination, destination_config
        )

        # Create controller configuration
        ctrl_config = self.config.controller
        controller_config = ControllerConfig(
            pacing_delay=ctrl_config.pacing_delay,
            history_size=ctrl_config.history_size,
            backoff_base_delay=ctrl_config.backoff_base_delay,
            backoff_max_delay=ctrl_config.backoff_max_delay,
            backoff_jitter_factor=ctrl_config.backoff_jitter_factor,
        )

        self.controller = Controller(
            source=self.source,
            destination=self.destination,
            config=controller_config,
            event_bus=self.event_bus,
        )

        api_config = self.config.api
        if api_config.enabled:
            self.status_server = StatusServer(
                self.controller,
                registry=registry,
                event_bus=self.event_bus,
                host=api_config.host,
                port=api_config.port,
                log_level=api_config.log_level,
            )

        logger.info(
            f"All components initialized (source={plugins.source}, "
            f"destination={plugins.destination})"
        )

    async def start(self):
        """Start the application."""
        if not self.controller:
            await self.initialize()

        self.running = True
        logger.info("Starting certsync")

        # Start controller and status API concurrently
        tasks = [asyncio.create_task(self.controller.start())]
        if self.status_server:
            tasks.append(asyncio.create_task(self.status_server.start()))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            logger.info("Application tasks cancelled")

    async def stop(self):
        """Stop the application gracefully."""
        if not self.running:
            return
        logger.info("Stopping certsync")
        self.running = False

        if self.controller:
            await self.controller.stop()

        if self.status_server:
            await self.status_server.stop()

        logger.info("certsync stopped")


async def main():
    """Main entry point."""
    configure_logging(get_config().api.log_level)
    app = Application()

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(app.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await app.stop()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except SourceAuthorizationError:
        # Already logged by the controller
        sys.exit(1)


if __name__ == "__main__":
    run()
