"""
Shared data models for the drive service.

- Pydantic models for data validation
- Wire names (camelCase) are kept as aliases so the JSON stays compatible with
  existing remote clients
"""

import json
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageKind(str, Enum):
    """Kinds of logical message exchanged over the channel."""

    IMAGE = "image"
    TEXT = "text"
    FILE = "file"


SUPPORTED_MESSAGE_KINDS = frozenset(kind.value for kind in MessageKind)


class DomainMessage(BaseModel):
    """
    One logical message after chunk reassembly.

    ``kind`` is a plain string so that inbound messages with an unexpected kind
    can still be recorded and surfaced; the outbound path validates it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str = Field(..., alias="type")
    body: str = ""
    file_name: Optional[str] = Field(default=None, alias="fileName")
    file_size: Optional[int] = Field(default=None, alias="fileSize")
    origin_device_id: Optional[str] = Field(default=None, alias="deviceId")

    def to_wire(self) -> Dict[str, Any]:
        """Dict using wire names, without unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def summary(self) -> Dict[str, Any]:
        """Loggable description that leaves out the body."""
        return {
            "kind": self.kind,
            "body_length": len(self.body),
            "file_name": self.file_name,
            "file_size": self.file_size,
            "origin_device_id": self.origin_device_id,
        }


class ChunkProgressUpdate(BaseModel):
    """Delivery progress for one in-flight chunked message."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(..., alias="messageId")
    chunk_count: int = Field(..., ge=0, alias="chunkCount")
    progress_percent: float = Field(..., alias="progressPercent")


class ResponseStatus(str, Enum):
    """Status carried by every response."""

    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


class CommandResponse(BaseModel):
    """
    Outbound JSON acknowledgement for one command, or a synthesized
    progress/pong notification.

    Action-specific result fields are stored as extra attributes.
    """

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    action: str
    status: ResponseStatus
    message: Optional[str] = None

    @classmethod
    def success(cls, action: str, **fields: Any) -> "CommandResponse":
        return cls(action=action, status=ResponseStatus.SUCCESS, **fields)

    @classmethod
    def error(cls, action: str, message: str) -> "CommandResponse":
        return cls(action=action, status=ResponseStatus.ERROR, message=message)

    @classmethod
    def info(cls, action: str, **fields: Any) -> "CommandResponse":
        return cls(action=action, status=ResponseStatus.INFO, **fields)

    def to_body(self) -> str:
        """JSON text body for a text-kind message."""
        return json.dumps(self.model_dump(exclude_none=True))
