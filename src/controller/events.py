"""
Event types delivered by the message controller.

Each subscriber owns an asyncio.Queue and receives ControllerEvent values for
the event types it asked for.
"""

from enum import Enum

from pydantic import BaseModel

from common.models import DomainMessage, MessageKind


class EventType(str, Enum):
    """Events emitted while classifying messages."""

    MESSAGE_RECEIVED = "message-received"
    IMAGE_RECEIVED = "image-received"
    TEXT_RECEIVED = "text-received"
    FILE_RECEIVED = "file-received"
    PUBLISH_REQUESTED = "publish-requested"


KIND_EVENTS = {
    MessageKind.IMAGE.value: EventType.IMAGE_RECEIVED,
    MessageKind.TEXT.value: EventType.TEXT_RECEIVED,
    MessageKind.FILE.value: EventType.FILE_RECEIVED,
}


class ControllerEvent(BaseModel):
    """Tagged event carrying the classified message."""

    event: EventType
    message: DomainMessage
