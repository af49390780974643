"""
Chunk progress aggregator.

Turns per-message delivery telemetry from the chunk codec into throttled
upload-progress notifications. Reporting is best-effort: a bad update is
logged and skipped.
"""

import asyncio
import math
from typing import Any, Callable, Iterable, List

from common.logging import get_logger
from common.models import ChunkProgressUpdate, CommandResponse
from router.message_types import PROGRESS_ACTION

logger = get_logger(__name__)


def received_chunks(progress_percent: float, chunk_count: int) -> int:
    """Chunks received so far, rounding halves up."""
    return int(math.floor(progress_percent / 100 * chunk_count + 0.5))


def should_report(received: int, total: int) -> bool:
    """Report every even chunk count, and always the final one."""
    return received % 2 == 0 or received == total


class ChunkProgressAggregator:
    """Publishes sampled progress responses for in-flight chunked messages."""

    def __init__(self, send_response: Callable[[CommandResponse], None]):
        self.send_response = send_response

    def build_response(self, update: ChunkProgressUpdate) -> CommandResponse:
        received = received_chunks(update.progress_percent, update.chunk_count)
        return CommandResponse.info(
            PROGRESS_ACTION,
            messageId=update.message_id,
            received=received,
            total=update.chunk_count,
            progress=update.progress_percent,
            complete=update.progress_percent == 100,
        )

    def handle_updates(self, updates: Iterable[Any]) -> List[CommandResponse]:
        """
        Process one telemetry tick. Returns the responses that were published.
        """
        published: List[CommandResponse] = []
        for update in updates:
            try:
                if not isinstance(update, ChunkProgressUpdate):
                    update = ChunkProgressUpdate.model_validate(update)

                received = received_chunks(update.progress_percent, update.chunk_count)
                if not should_report(received, update.chunk_count):
                    continue

                response = self.build_response(update)
                self.send_response(response)
                published.append(response)

                logger.info(
                    event="upload_progress",
                    message_id=update.message_id,
                    received=received,
                    total=update.chunk_count,
                    progress=update.progress_percent,
                )
            except Exception as e:
                logger.error(event="chunk_update_failed", error=str(e), update=repr(update)[:200])
        return published

    async def run(self, updates: "asyncio.Queue[List[ChunkProgressUpdate]]") -> None:
        """Consume telemetry batches until cancelled."""
        while True:
            batch = await updates.get()
            self.handle_updates(batch)
