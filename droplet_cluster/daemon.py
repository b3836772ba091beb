"""Runs one isolated scheduler per topology, with signal handling."""

from __future__ import annotations

import logging
import signal
import threading
from types import FrameType

from .config import AppConfig, TopologyConfig
from .connection.agent_client import AgentClient
from .discovery.digitalocean_client import DigitalOceanClient
from .exceptions import ConfigError
from .scheduler import Scheduler

logger = logging.getLogger(__name__)


class Daemon:
    """Owns the schedulers; each topology polls in its own thread with its own known set."""

    def __init__(self, config: AppConfig, only: str | None = None):
        self._config = config
        topologies = self._select(config, only)
        self.schedulers: list[Scheduler] = [self._build_scheduler(config, t) for t in topologies]
        self._threads: list[threading.Thread] = []

    @staticmethod
    def _select(config: AppConfig, only: str | None) -> list[TopologyConfig]:
        if only is None:
            return list(config.topologies.values())
        if only not in config.topologies:
            raise ConfigError(f"Unknown topology: {only}")
        return [config.topologies[only]]

    @staticmethod
    def _build_scheduler(config: AppConfig, topology: TopologyConfig) -> Scheduler:
        return Scheduler(
            topology,
            provider=DigitalOceanClient(topology),
            manager=AgentClient(config.connection),
        )

    def run_once(self) -> None:
        """Execute a single cycle for every topology, one after another."""
        for scheduler in self.schedulers:
            scheduler.run_once()

    def run(self) -> None:
        """Run every scheduler until a shutdown signal arrives."""
        self._install_signal_handlers()
        logger.info("Daemon started with %d topologies", len(self.schedulers))

        for scheduler in self.schedulers:
            thread = threading.Thread(
                target=scheduler.run,
                name=f"topology-{scheduler.name}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

        # Short joins keep the main thread responsive to signals
        while any(t.is_alive() for t in self._threads):
            for thread in self._threads:
                thread.join(timeout=1.0)

        logger.info("Daemon stopped")

    def stop(self) -> None:
        for scheduler in self.schedulers:
            scheduler.stop()

    def _install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown)
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGHUP, self._handle_poll)

    def _handle_shutdown(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("Received %s, shutting down", sig_name)
        self.stop()

    def _handle_poll(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received SIGHUP, polling all topologies now")
        for scheduler in self.schedulers:
            scheduler.poll_now()
