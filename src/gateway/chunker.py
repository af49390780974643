"""
Chunk codec between logical messages and transport payloads.

Splits serialized messages larger than ``max_message_size`` into ordered chunk
envelopes, reassembles chunks from concurrent senders keyed by
(deviceId, messageId), drops our own echoed traffic and chunks of messages
already delivered, and reports reassembly progress for messages still in
flight.

Outputs are exposed as asyncio queues:
- ``outgoing``: encoded envelopes ready for the transport
- ``messages``: fully reassembled DomainMessage values
- ``progress``: batches of ChunkProgressUpdate
"""

import asyncio
import json
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from common.logging import get_logger
from common.models import ChunkProgressUpdate, DomainMessage

logger = get_logger(__name__)

# Completed message keys remembered so late duplicates are dropped
FINISHED_CAPACITY = 1024


class ChunkEnvelope(BaseModel):
    """Wire format of one chunk."""

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId")
    message_id: str = Field(alias="messageId")
    chunk_id: int = Field(ge=0, alias="chunkId")
    last_chunk_id: int = Field(ge=0, alias="lastChunkId")
    payload: str

    def encode(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


@dataclass
class _Reassembly:
    last_chunk_id: int
    chunks: Dict[int, str] = field(default_factory=dict)
    updated_at: float = field(default_factory=time.monotonic)

    @property
    def total(self) -> int:
        return self.last_chunk_id + 1

    @property
    def complete(self) -> bool:
        return len(self.chunks) == self.total


class StreamChunker:
    """Segmentation and reassembly of logical messages."""

    def __init__(
        self,
        device_id: str,
        max_message_size: int = 8 * 64000,
        ignore_own_messages: bool = True,
        reassembly_timeout: float = 300.0,
    ):
        if max_message_size < 1:
            raise ValueError("max_message_size must be positive")
        self.device_id = device_id
        self.max_message_size = max_message_size
        self.ignore_own_messages = ignore_own_messages
        self.reassembly_timeout = reassembly_timeout

        self.outgoing: asyncio.Queue = asyncio.Queue()
        self.messages: asyncio.Queue = asyncio.Queue()
        self.progress: asyncio.Queue = asyncio.Queue()

        self._pending: Dict[Tuple[str, str], _Reassembly] = {}
        self._completed: List[ChunkProgressUpdate] = []
        self._finished: "OrderedDict[Tuple[str, str], float]" = OrderedDict()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def publish(self, message: DomainMessage) -> str:
        """Split ``message`` into envelopes on ``outgoing``. Returns the message id."""
        text = json.dumps(message.to_wire(), separators=(",", ":"))
        size = self.max_message_size
        pieces = [text[i : i + size] for i in range(0, len(text), size)]
        message_id = uuid.uuid4().hex
        last_chunk_id = len(pieces) - 1

        for chunk_id, piece in enumerate(pieces):
            envelope = ChunkEnvelope(
                device_id=self.device_id,
                message_id=message_id,
                chunk_id=chunk_id,
                last_chunk_id=last_chunk_id,
                payload=piece,
            )
            self.outgoing.put_nowait(envelope.encode())

        logger.debug(
            event="message_chunked",
            message_id=message_id,
            kind=message.kind,
            chunks=len(pieces),
        )
        return message_id

    def receive(self, raw: bytes) -> Optional[DomainMessage]:
        """
        Feed one transport payload.

        Returns the reassembled message when this chunk completed one; it is
        also put on ``messages``.
        """
        try:
            envelope = ChunkEnvelope.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(event="chunk_envelope_invalid", error=str(e), size=len(raw))
            return None

        if self.ignore_own_messages and envelope.device_id == self.device_id:
            return None

        if envelope.chunk_id > envelope.last_chunk_id:
            logger.warning(
                event="chunk_out_of_range",
                message_id=envelope.message_id,
                chunk_id=envelope.chunk_id,
                last_chunk_id=envelope.last_chunk_id,
            )
            return None

        key = (envelope.device_id, envelope.message_id)
        if key in self._finished:
            logger.debug(event="chunk_duplicate_dropped", message_id=envelope.message_id)
            return None

        if envelope.last_chunk_id == 0:
            self._mark_finished(key)
            return self._deliver(envelope.payload, envelope)

        entry = self._pending.get(key)
        if entry is None:
            entry = self._pending[key] = _Reassembly(last_chunk_id=envelope.last_chunk_id)
        elif entry.last_chunk_id != envelope.last_chunk_id:
            logger.warning(
                event="chunk_count_mismatch",
                message_id=envelope.message_id,
                expected=entry.last_chunk_id,
                received=envelope.last_chunk_id,
            )
            return None

        # Duplicates keep the first copy
        entry.chunks.setdefault(envelope.chunk_id, envelope.payload)
        entry.updated_at = time.monotonic()

        if not entry.complete:
            return None

        del self._pending[key]
        self._mark_finished(key)
        self._completed.append(
            ChunkProgressUpdate(
                message_id=envelope.message_id,
                chunk_count=entry.total,
                progress_percent=100,
            )
        )
        text = "".join(entry.chunks[i] for i in range(entry.total))
        return self._deliver(text, envelope)

    def _mark_finished(self, key: Tuple[str, str]) -> None:
        self._finished[key] = time.monotonic()
        while len(self._finished) > FINISHED_CAPACITY:
            self._finished.popitem(last=False)

    def _deliver(self, text: str, envelope: ChunkEnvelope) -> Optional[DomainMessage]:
        try:
            message = DomainMessage.model_validate_json(text)
        except ValidationError as e:
            logger.warning(
                event="reassembled_message_invalid",
                message_id=envelope.message_id,
                device_id=envelope.device_id,
                error=str(e),
            )
            return None

        self.messages.put_nowait(message)
        return message

    def _evict_stale(self) -> None:
        cutoff = time.monotonic() - self.reassembly_timeout
        while self._finished and next(iter(self._finished.values())) < cutoff:
            self._finished.popitem(last=False)
        for key in [key for key, entry in self._pending.items() if entry.updated_at < cutoff]:
            entry = self._pending.pop(key)
            logger.warning(
                event="chunk_reassembly_expired",
                device_id=key[0],
                message_id=key[1],
                received=len(entry.chunks),
                total=entry.total,
            )

    def emit_progress(self) -> List[ChunkProgressUpdate]:
        """
        Build one progress batch for every in-flight and just-completed message
        and put it on ``progress`` when it is not empty.
        """
        self._evict_stale()

        updates = [
            ChunkProgressUpdate(
                message_id=message_id,
                chunk_count=entry.total,
                progress_percent=round(len(entry.chunks) / entry.total * 100, 2),
            )
            for (_, message_id), entry in self._pending.items()
        ]
        updates.extend(self._completed)
        self._completed = []

        if updates:
            self.progress.put_nowait(updates)
        return updates

    async def run_progress_ticker(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.emit_progress()
