"""
certsync Controller - Main reconciliation loop.

Pulls certificate bundles from a source plugin and publishes them, one at
a time, to a destination plugin. The watch is re-established whenever it
ends.
"""

import asyncio
import logging
import random
from collections import deque
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from certificate import CertificateBundle
from events import EventBus, ReconcileEvent
from plugins.base import PublishResult, PublishStatus
from plugins.destinations.base import DestinationPlugin
from plugins.sources.base import SourceAuthorizationError, SourceError, SourcePlugin

logger = logging.getLogger(__name__)


@dataclass
class ControllerConfig:
    """Configuration for the controller."""

    pacing_delay: float = 1.0  # seconds to wait after each published bundle
    history_size: int = 100

    # Exponential backoff for re-establishing a failed watch
    backoff_base_delay: float = 1.0  # base delay in seconds
    backoff_max_delay: float = 60.0  # max delay in seconds
    backoff_jitter_factor: float = 0.1  # ±10% jitter


class ControllerState(Enum):
    """Reconciliation loop states."""

    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class ReconcileRecord:
    """A processed bundle, kept in the in-memory history."""

    result: PublishResult
    reconcile_time: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domains": list(self.result.domains),
            "status": self.result.status.value,
            "certificate_id": self.result.certificate_id,
            "created": self.result.created,
            "error_message": self.result.error_message,
            "listeners": [
                {
                    "listener_id": listener.listener_id,
                    "success": listener.success,
                    "error_message": listener.error_message,
                }
                for listener in self.result.listener_results
            ],
            "reconcile_time": self.reconcile_time,
        }


class Controller:
    """
    Main controller that implements the reconciliation loop.

    Bundles are handled strictly one after the other: the next item is
    only pulled from the source once the previous publish has finished and
    the pacing delay has elapsed.
    """

    def __init__(
        self,
        source: SourcePlugin,
        destination: DestinationPlugin,
        config: Optional[ControllerConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.source = source
        self.destination = destination
        self.config = config or ControllerConfig()
        self.pacing_delay = self.config.pacing_delay
        self.state = ControllerState.IDLE
        self.running = False
        self._stop_requested = False
        self._event_bus = event_bus

        self.watch_count = 0
        self.consecutive_failures = 0
        self.counters: Dict[str, int] = {
            "processed": 0,
            PublishStatus.PUBLISHED.value: 0,
            PublishStatus.DRY_RUN.value: 0,
            PublishStatus.FAILED.value: 0,
        }
        self.history: Deque[ReconcileRecord] = deque(maxlen=self.config.history_size)

    async def start(self):
        """
        Run the reconciliation loop until stopped.

        A watch that ends normally is re-opened immediately. A failing
        watch is re-opened after an exponential backoff. Authorization
        failures are fatal.
        """
        logger.info("Starting certsync controller")
        self.running = True
        self._stop_requested = False

        while self.running:
            try:
                await self.run_once()
                self.consecutive_failures = 0
                if self.running:
                    logger.info("Watch ended, re-establishing")
            except SourceAuthorizationError as e:
                logger.error(f"Source access denied, stopping controller: {e}")
                self.running = False
                raise
            except SourceError as e:
                await self._backoff(f"Watch failed: {e}")
            except Exception as e:
                logger.error(
                    f"Unexpected error in reconciliation loop: {e}", exc_info=True
                )
                await self._backoff("Unexpected watch failure")

        logger.info("certsync controller stopped")

    async def stop(self):
        """Stop the controller and close the source watch."""
        logger.info("Stopping certsync controller")
        self.running = False
        self._stop_requested = True
        await self.source.stop()

    def _backoff_delay(self) -> float:
        """Exponential backoff delay for the current failure count, with jitter."""
        exponent = max(self.consecutive_failures - 1, 0)
        delay = min(
            self.config.backoff_base_delay * (2**exponent),
            self.config.backoff_max_delay,
        )
        jitter = delay * self.config.backoff_jitter_factor
        return max(0.0, delay + random.uniform(-jitter, jitter))

    async def _backoff(self, reason: str) -> None:
        if not self.running:
            return
        self.consecutive_failures += 1
        delay = self._backoff_delay()
        logger.warning(
            f"{reason}; retrying watch in {delay:.1f}s "
            f"(attempt {self.consecutive_failures})"
        )
        await asyncio.sleep(delay)

    async def run_once(self) -> int:
        """
        Consume one watch sequence until it ends.

        Returns:
            Number of bundles processed.

        Raises:
            SourceError: If the watch itself fails
        """
        self.watch_count += 1
        processed = 0
        async with aclosing(self.source.watch()) as bundles:
            async for bundle in bundles:
                await self.reconcile(bundle)
                processed += 1
                if self._stop_requested:
                    break
        return processed

    async def reconcile(self, bundle: CertificateBundle) -> PublishResult:
        """
        Publish a single bundle and record the outcome.

        Any failure is contained here: it is logged with the bundle's
        primary domain and the loop carries on.
        """
        self.state = ControllerState.PROCESSING
        try:
            try:
                result = await self.destination.publish(bundle)
            except Exception as e:
                logger.error(
                    f"Error publishing certificate for {bundle.primary_domain}: {e}",
                    exc_info=True,
                )
                result = PublishResult(
                    status=PublishStatus.FAILED,
                    domains=list(bundle.domains),
                    error_message=str(e),
                )

            self._record(result)
            await self._emit(result)

            # Coarse backpressure to avoid throttling on the destination side
            await asyncio.sleep(self.pacing_delay)
            return result
        finally:
            self.state = ControllerState.IDLE

    def _record(self, result: PublishResult) -> None:
        self.counters["processed"] += 1
        self.counters[result.status.value] += 1
        self.history.append(ReconcileRecord(result=result))

        domain = result.primary_domain
        if result.status == PublishStatus.PUBLISHED:
            action = "Created" if result.created else "Updated"
            logger.info(f"{action} certificate {result.certificate_id} for {domain}")
            for listener in result.listener_results:
                if not listener.success:
                    logger.warning(
                        f"Certificate for {domain} not attached to "
                        f"{listener.listener_id}: {listener.error_message}"
                    )
        elif result.status == PublishStatus.DRY_RUN:
            logger.info(f"Dry-run, certificate for {domain} not sent")
        else:
            logger.error(
                f"Failed to publish certificate for {domain}: {result.error_message}"
            )

    async def _emit(self, result: PublishResult) -> None:
        if not self._event_bus:
            return
        try:
            await self._event_bus.publish(ReconcileEvent.from_result(result))
        except Exception as e:
            logger.error(f"Error publishing reconcile event: {e}")

    def get_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Most recent reconciliations, newest first."""
        records = list(self.history)[-limit:] if limit > 0 else []
        return [record.to_dict() for record in reversed(records)]

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of the controller state and counters."""
        last = self.history[-1].to_dict() if self.history else None
        return {
            "state": self.state.value,
            "running": self.running,
            "source": self.source.name,
            "destination": self.destination.name,
            "watch_count": self.watch_count,
            "consecutive_failures": self.consecutive_failures,
            "counters": dict(self.counters),
            "last_reconcile": last,
        }
