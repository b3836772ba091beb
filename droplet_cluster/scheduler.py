"""Per-topology polling loop: fetch -> reconcile -> store -> re-arm."""

from __future__ import annotations

import enum
import logging
import threading
import time

from .config import TopologyConfig
from .connection import ConnectionManager
from .discovery import DiscoveryProvider
from .discovery.models import PeerId
from .exceptions import DiscoveryError
from .membership.reconciler import Reconciler, ReconcileResult
from .membership.store import MembershipStore

logger = logging.getLogger(__name__)


class State(enum.Enum):
    IDLE = "idle"
    RECONCILING = "reconciling"


class Trigger(enum.Enum):
    LOAD = "load"
    TIMEOUT = "timeout"


class Scheduler:
    """Owns one topology's known peer set and polls on a fixed interval.

    Only one cycle is ever in flight; the next one is armed after the store
    has been replaced. There is no backoff: failed cycles re-arm with the
    same interval as successful ones.
    """

    def __init__(
        self,
        config: TopologyConfig,
        provider: DiscoveryProvider,
        manager: ConnectionManager,
        store: MembershipStore | None = None,
    ):
        self._config = config
        self._provider = provider
        self._reconciler = Reconciler(manager, topology=config.name)
        self._store = store or MembershipStore()
        # Startup polls immediately
        self._state = State.RECONCILING
        self._shutdown = False
        self._wake = False
        self._cycle_lock = threading.Lock()
        self.cycles = 0

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def state(self) -> State:
        return self._state

    @property
    def known(self) -> frozenset[PeerId]:
        return self._store.current()

    def run(self, max_cycles: int | None = None) -> None:
        """Poll until stop() is called, or until ``max_cycles`` cycles have run."""
        logger.info(
            "Topology %s started, polling every %dms", self.name, self._config.polling_interval,
            extra={"topology": self.name},
        )

        self._run_cycle()
        while not self._shutdown and (max_cycles is None or self.cycles < max_cycles):
            self._interruptible_sleep(self._config.polling_interval_seconds)
            if self._shutdown:
                break
            self.handle(Trigger.TIMEOUT)

        logger.info("Topology %s stopped", self.name, extra={"topology": self.name})

    def run_once(self) -> ReconcileResult | None:
        """Execute a single cycle regardless of the timer; a no-op while one is in flight."""
        return self._run_cycle()

    def handle(self, trigger: object) -> bool:
        """Start a cycle for a timer trigger while idle; ignore anything else."""
        if self._state is not State.IDLE or not isinstance(trigger, Trigger):
            logger.debug(
                "Ignoring trigger %r in state %s", trigger, self._state.value,
                extra={"topology": self.name},
            )
            return False
        self._run_cycle()
        return True

    def stop(self) -> None:
        """Stop after the in-flight cycle, if any; an in-flight cycle is never cancelled."""
        self._shutdown = True

    def poll_now(self) -> None:
        """Cut the current wait short so the next cycle starts immediately."""
        self._wake = True

    # ── Cycle ───────────────────────────────────────────────────────

    def _run_cycle(self) -> ReconcileResult | None:
        if not self._cycle_lock.acquire(blocking=False):
            logger.debug("Cycle already in flight, not starting another", extra={"topology": self.name})
            return None

        self._state = State.RECONCILING
        try:
            return self._cycle()
        except Exception:
            logger.exception("Cycle failed, known peers left unchanged", extra={"topology": self.name})
            return None
        finally:
            self.cycles += 1
            self._state = State.IDLE
            self._cycle_lock.release()

    def _cycle(self) -> ReconcileResult:
        """One full fetch-to-store cycle."""
        start = time.monotonic()

        try:
            candidate = self._provider.fetch()
        except DiscoveryError as exc:
            logger.warning(
                "Discovery failed, treating candidate set as empty: %s", exc,
                extra={"topology": self.name},
            )
            candidate = set()

        result = self._reconciler.reconcile(self._store.current(), candidate)
        self._store.replace(result.known)

        elapsed = time.monotonic() - start
        logger.info(
            "Cycle complete",
            extra={
                "topology": self.name,
                "candidates": len(candidate),
                "known": len(result.known),
                "added": len(result.added),
                "removed": len(result.removed),
                "failed": len(result.connect_failures) + len(result.disconnect_failures),
                "elapsed_seconds": round(elapsed, 2),
            },
        )
        return result

    def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep in short increments so we can respond to stop() and poll_now()."""
        end = time.monotonic() + seconds
        while not self._shutdown and not self._wake and time.monotonic() < end:
            remaining = end - time.monotonic()
            time.sleep(min(remaining, 1.0))
        self._wake = False
