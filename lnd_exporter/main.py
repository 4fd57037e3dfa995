"""Main application entry point for the LND Prometheus exporter."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from .collectors.node_collector import NodeCollector
from .config.loader import ConfigLoader
from .config.models import ExporterSystemConfig
from .config.settings import Settings
from .services.auth import authenticate
from .services.exposition import ExpositionServer, create_app, render
from .services.lnd_client import LndClient
from .services.registry import MetricRegistry
from .services.scheduler import PollScheduler
from .utils.errors import ConfigError
from .utils.logger import setup_logger


SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ExporterApp:
    """
    LND exporter application.

    Owns the registry, scheduler and scrape server for the process lifetime
    and handles graceful shutdown.
    """

    def __init__(self, config: ExporterSystemConfig, logger: logging.Logger):
        """
        Initialize exporter application.

        Args:
            config: Validated configuration
            logger: Root application logger
        """
        self.config = config
        self.logger = logger
        self.registry = MetricRegistry(logger)
        self.client: Optional[LndClient] = None
        self.scheduler: Optional[PollScheduler] = None
        self.server: Optional[ExpositionServer] = None
        self._startup: Optional[asyncio.Future] = None
        self._stopping = False

    async def connect(self) -> NodeCollector:
        """
        Authenticate against the node and build the collector.

        Raises:
            ConfigError: Credential files or handshake failed
        """
        lnd = self.config.lnd
        collection = self.config.collection

        credentials = await authenticate(
            lnd.tls_cert_path,
            lnd.macaroon_path,
            lnd.endpoint,
            timeout=collection.rpc_timeout_seconds,
            logger=self.logger
        )
        self.client = LndClient(credentials, collection.rpc_timeout_seconds, self.logger)
        return NodeCollector(
            self.client,
            collection.endpoints,
            collection.rpc_timeout_seconds,
            credentials.node_pubkey,
            self.logger
        )

    def request_shutdown(self, signum: int) -> None:
        """Signal handler: stop serving and scheduling."""
        if self._stopping:
            return
        self._stopping = True
        self.logger.info(f"Received {signal.Signals(signum).name}, initiating graceful shutdown...")
        if self._startup is not None and not self._startup.done():
            self._startup.cancel()
        if self.server is not None:
            self.server.should_exit = True

    async def serve(self) -> int:
        """
        Run scheduler and scrape server until a shutdown signal arrives.

        Returns:
            int: Process exit code
        """
        loop = asyncio.get_running_loop()
        for signum in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(signum, self.request_shutdown, signum)

        try:
            self._startup = asyncio.ensure_future(self.connect())
            try:
                collector = await self._startup
            except asyncio.CancelledError:
                if not self._stopping:
                    raise
                self.logger.info("Shutdown requested during startup, exiting")
                return 0

            host, port = self.config.exporter.host_port
            self.server = ExpositionServer.for_app(create_app(self.registry, self.logger), host, port)

            self.scheduler = PollScheduler(
                collector,
                self.registry,
                self.config.collection.poll_interval_seconds,
                self.logger
            )
            self.scheduler.start()

            self.logger.info(f"Exporter listening at {host}:{port}")
            await self.server.serve()
        finally:
            if self.scheduler is not None:
                self.scheduler.shutdown()
            if self.client is not None:
                await self.client.aclose()
            for signum in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(signum)

        if not self._stopping:
            # uvicorn returned on its own, e.g. the port was taken
            self.logger.error("Scrape server stopped unexpectedly")
            return 1
        self.logger.info("Exporter stopped")
        return 0

    async def run_once(self) -> int:
        """
        Authenticate, run a single pass and print the exposition to stdout.

        Returns:
            int: 0 on success, 1 if the pass produced no snapshot
        """
        collector = await self.connect()
        try:
            scheduler = PollScheduler(
                collector,
                self.registry,
                self.config.collection.poll_interval_seconds,
                self.logger
            )
            snapshot = await scheduler.run_pass()
        finally:
            await self.client.aclose()

        if snapshot is None:
            return 1
        sys.stdout.write(render(snapshot).decode("utf-8"))
        return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Prometheus exporter for an LND node',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve metrics (default)
  lnd-exporter --config config/config.yaml

  # Run one collection pass and print the exposition
  lnd-exporter --run-once
        """
    )

    parser.add_argument(
        '--config',
        default=Settings.config_path(),
        help='Path to configuration file (default: config/config.yaml or LND_EXPORTER_CONFIG)'
    )

    parser.add_argument(
        '--run-once',
        action='store_true',
        help='Run one collection pass, print it and exit'
    )

    parser.add_argument(
        '--log-level',
        default=Settings.log_level() or None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: from config file or LOG_LEVEL env var)'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        int: 0 on graceful shutdown, 1 on configuration or authentication
        failure, 130 if a --run-once pass is interrupted
    """
    args = parse_args(argv)
    logger = setup_logger("lnd_exporter", args.log_level or "INFO")

    try:
        config = ConfigLoader.load_from_file(args.config)
    except ConfigError as e:
        logger.error(str(e))
        return 1

    if not args.log_level:
        logger = setup_logger("lnd_exporter", config.logging.level)

    app = ExporterApp(config, logger)
    try:
        if args.run_once:
            return asyncio.run(app.run_once())
        return asyncio.run(app.serve())
    except ConfigError as e:
        logger.error(f"Startup failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
