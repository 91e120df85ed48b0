"""
Event Streaming - In-memory pub/sub for reconciliation outcome events.

Every processed secret produces an event (published, dry-run, failed or
rejected) that the status API streams to clients as Server-Sent Events.
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncIterator, Dict, FrozenSet, Iterable, List, Optional

from plugins.base import PublishResult, PublishStatus

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> str:
    """JSON serializer for objects not handled by default json encoder."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class EventType(Enum):
    """Types of reconciliation outcome events."""

    PUBLISHED = "PUBLISHED"
    DRY_RUN = "DRY_RUN"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


_STATUS_EVENT_TYPES = {
    PublishStatus.PUBLISHED: EventType.PUBLISHED,
    PublishStatus.DRY_RUN: EventType.DRY_RUN,
    PublishStatus.FAILED: EventType.FAILED,
}


@dataclass
class ReconcileEvent:
    """Event emitted when a secret has been processed."""

    event_type: EventType
    domains: List[str] = field(default_factory=list)
    secret: Optional[str] = None
    certificate_id: Optional[str] = None
    message: Optional[str] = None
    timestamp: str = field(default_factory=_utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "domains": self.domains,
            "secret": self.secret,
            "certificate_id": self.certificate_id,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def to_sse(self) -> str:
        """
        Format the event as an SSE message.

        Returns:
            SSE-formatted string with event type and JSON data lines.
        """
        json_data = json.dumps(self.to_dict(), default=_json_default)
        return f"event: {self.event_type.value}\ndata: {json_data}\n\n"

    @classmethod
    def from_result(cls, result: PublishResult) -> "ReconcileEvent":
        """
        Create an event from a destination publish result.

        Args:
            result: The PublishResult returned by the destination.

        Returns:
            A new ReconcileEvent instance.
        """
        return cls(
            event_type=_STATUS_EVENT_TYPES[result.status],
            domains=list(result.domains),
            certificate_id=result.certificate_id,
            message=result.error_message,
        )

    @classmethod
    def rejected(cls, secret: str, reason: str) -> "ReconcileEvent":
        """Create an event for a secret the source could not turn into a bundle."""
        return cls(event_type=EventType.REJECTED, secret=secret, message=reason)


class EventSubscription:
    """
    One client's view of the outcome stream.

    Holds a bounded queue of the events the client asked for. When the
    client falls behind, the oldest queued event is evicted so that the
    stream always ends on the latest outcomes.
    """

    def __init__(
        self,
        subscriber_id: str,
        queue_size: int,
        event_types: Optional[Iterable[EventType]] = None,
    ):
        self.subscriber_id = subscriber_id
        self.event_types: FrozenSet[EventType] = frozenset(event_types or ())
        self.dropped = 0
        self._queue_size = queue_size
        # One spare slot so the end-of-stream sentinel always fits
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size + 1)

    def wants(self, event: ReconcileEvent) -> bool:
        return not self.event_types or event.event_type in self.event_types

    def offer(self, event: ReconcileEvent) -> bool:
        """
        Queue an event without blocking.

        Returns:
            True if an older event had to be evicted to make room.
        """
        evicted = False
        if self._queue.qsize() >= self._queue_size:
            self._queue.get_nowait()
            self.dropped += 1
            evicted = True
        self._queue.put_nowait(event)
        return evicted

    def close(self) -> None:
        """End iteration once the already queued events are consumed."""
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ReconcileEvent]:
        return self

    async def __anext__(self) -> ReconcileEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """
    In-memory fan-out of reconcile outcomes to SSE clients.

    Publishing never blocks the reconciliation loop: a slow client loses
    its oldest queued events instead.
    """

    def __init__(self, queue_size: int = 256):
        self._queue_size = queue_size
        self._subscriptions: Dict[str, EventSubscription] = {}
        self.published = 0
        self._dropped_by_closed = 0

    async def publish(self, event: ReconcileEvent) -> None:
        self.published += 1
        for subscription in list(self._subscriptions.values()):
            if not subscription.wants(event):
                continue
            if subscription.offer(event):
                logger.warning(
                    f"Subscriber {subscription.subscriber_id} is lagging, "
                    "dropped its oldest event"
                )

    async def subscribe(
        self, event_types: Optional[Iterable[EventType]] = None
    ) -> EventSubscription:
        """
        Subscribe to outcome events.

        Args:
            event_types: Only deliver these event types (all when empty).
        """
        subscription = EventSubscription(
            str(uuid.uuid4()), self._queue_size, event_types
        )
        self._subscriptions[subscription.subscriber_id] = subscription
        logger.info(f"New event subscriber: {subscription.subscriber_id}")
        return subscription

    async def unsubscribe(self, subscription: EventSubscription) -> None:
        """Remove a subscription and end its iteration."""
        if self._subscriptions.pop(subscription.subscriber_id, None) is None:
            return
        subscription.close()
        self._dropped_by_closed += subscription.dropped
        logger.info(f"Unsubscribed: {subscription.subscriber_id}")

    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def stats(self) -> Dict[str, int]:
        """Subscriber count and delivery totals for the status endpoint."""
        dropped = self._dropped_by_closed + sum(
            subscription.dropped for subscription in self._subscriptions.values()
        )
        return {
            "subscribers": self.subscriber_count(),
            "published": self.published,
            "dropped": dropped,
        }
