"""
Message classifier and history.

Tags inbound and outbound domain messages, keeps bounded recency indexes and
hands events to subscribers over asyncio queues.

History is bounded: the last ``overall_capacity`` messages in each direction and
the last ``per_kind_capacity`` received messages of each supported kind.
"""

import asyncio
from collections import deque
from typing import Deque, Dict, FrozenSet, List, Optional, Tuple

from common.errors import UnsupportedKindError
from common.logging import get_logger
from common.models import SUPPORTED_MESSAGE_KINDS, DomainMessage, MessageKind
from controller.events import KIND_EVENTS, ControllerEvent, EventType

logger = get_logger(__name__)


class MessageController:
    """Classifies messages in both directions and records them."""

    def __init__(self, device_id: str, per_kind_capacity: int = 50, overall_capacity: int = 200):
        self.device_id = device_id
        self.per_kind_capacity = per_kind_capacity
        # received is most-recent-last, sent is most-recent-first
        self.received: Deque[DomainMessage] = deque(maxlen=overall_capacity)
        self.sent: Deque[DomainMessage] = deque(maxlen=overall_capacity)
        self._received_by_kind: Dict[str, Deque[DomainMessage]] = {
            kind: deque(maxlen=per_kind_capacity) for kind in SUPPORTED_MESSAGE_KINDS
        }
        self._subscribers: List[Tuple[FrozenSet[EventType], asyncio.Queue]] = []

    async def init(self) -> "MessageController":
        logger.info(event="message_controller_initialized", device_id=self.device_id)
        return self

    async def destroy(self) -> None:
        """Detach every subscriber and discard history."""
        self._subscribers.clear()
        self.received.clear()
        self.sent.clear()
        for index in self._received_by_kind.values():
            index.clear()
        logger.info(event="message_controller_destroyed", device_id=self.device_id)

    def subscribe(self, *event_types: EventType) -> asyncio.Queue:
        """Return a queue that receives every future event of the given types."""
        if not event_types:
            raise ValueError("subscribe() needs at least one event type")
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append((frozenset(event_types), queue))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers = [(types, q) for types, q in self._subscribers if q is not queue]

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _emit(self, event_type: EventType, message: DomainMessage) -> None:
        event = ControllerEvent(event=event_type, message=message)
        for types, queue in self._subscribers:
            if event_type in types:
                queue.put_nowait(event)

    def classify_inbound(self, message: DomainMessage) -> None:
        """
        Record a reassembled inbound message and notify subscribers.

        Never raises. Messages of an unknown kind are kept and surfaced through
        the generic message-received event only.
        """
        self.received.append(message)
        if message.kind in self._received_by_kind:
            self._received_by_kind[message.kind].append(message)
        else:
            logger.warning(
                event="unsupported_inbound_kind",
                kind=message.kind,
                origin_device_id=message.origin_device_id,
            )

        self._emit(EventType.MESSAGE_RECEIVED, message)
        kind_event = KIND_EVENTS.get(message.kind)
        if kind_event is not None:
            self._emit(kind_event, message)

    def classify_outbound(self, message: DomainMessage) -> DomainMessage:
        """
        Validate, stamp and record an outbound message, then request its publish.

        Raises:
            UnsupportedKindError: kind is not image, text or file. Nothing is
                recorded or emitted in that case.
        """
        if message.kind not in SUPPORTED_MESSAGE_KINDS:
            raise UnsupportedKindError(message.kind)

        stamped = message.model_copy(update={"origin_device_id": self.device_id})
        self.sent.appendleft(stamped)
        self._emit(EventType.PUBLISH_REQUESTED, stamped)
        return stamped

    def latest_of_kind(self, kind: str) -> Optional[DomainMessage]:
        """Most recent received message of ``kind``, or None."""
        kind = getattr(kind, "value", kind)
        index = self._received_by_kind.get(kind)
        if index is not None:
            return index[-1] if index else None
        # Unknown kinds only live in the overall buffer
        for message in reversed(self.received):
            if message.kind == kind:
                return message
        return None

    def latest_overall(self) -> Optional[DomainMessage]:
        return self.received[-1] if self.received else None

    def latest_image(self) -> Optional[DomainMessage]:
        return self.latest_of_kind(MessageKind.IMAGE.value)

    def latest_text(self) -> Optional[DomainMessage]:
        return self.latest_of_kind(MessageKind.TEXT.value)

    def latest_file(self) -> Optional[DomainMessage]:
        return self.latest_of_kind(MessageKind.FILE.value)

    def latest_sent(self, kind: Optional[str] = None) -> Optional[DomainMessage]:
        """Most recent outbound message, optionally restricted to ``kind``."""
        for message in self.sent:
            if kind is None or message.kind == kind:
                return message
        return None
