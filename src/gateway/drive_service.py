"""
Drive service orchestrator.

Wires the transport, chunk codec, message controller, command router and
progress aggregator together with a set of pump tasks:

    transport.inbound  -> chunker.receive
    chunker.messages   -> controller.classify_inbound
    text-received      -> router (commands)
    publish-requested  -> chunker.publish
    chunker.outgoing   -> transport.publish
    chunker.progress   -> aggregator
"""

import asyncio
from typing import Any, Dict, List, Optional

from common.config import Config
from common.errors import TransportError
from common.logging import get_logger
from controller.events import EventType
from controller.message_controller import MessageController
from gateway.chunker import StreamChunker
from gateway.pubsub_client import PubSubClient
from router.command_router import CommandRouter
from router.progress_aggregator import ChunkProgressAggregator
from storage import LocalStorage

logger = get_logger(__name__)


class DriveService:
    """Owns every component for one device session."""

    def __init__(self, config: Config, transport: Optional[PubSubClient] = None):
        self.config = config
        self.storage = LocalStorage(
            config.storage.storage_dir,
            temp_folder_name=config.storage.temp_folder_name,
            serialize_paths=config.storage.serialize_paths,
        )
        self.controller = MessageController(
            config.device_id,
            per_kind_capacity=config.history.per_kind_capacity,
            overall_capacity=config.history.overall_capacity,
        )
        self.router = CommandRouter(self.controller, self.storage)
        self.aggregator = ChunkProgressAggregator(self.router.send_response)
        self.chunker = StreamChunker(
            config.device_id,
            max_message_size=config.chunker.max_message_size,
            ignore_own_messages=config.chunker.ignore_own_messages,
            reassembly_timeout=config.chunker.reassembly_timeout,
        )
        self.transport = transport or PubSubClient(
            config.transport.url,
            config.transport.channel,
            token=config.transport.token,
            connect_timeout=config.transport.connect_timeout,
        )
        self._tasks: List[asyncio.Task] = []
        self.initialized = False

    async def initialize(self) -> "DriveService":
        """
        Start the session.

        Raises:
            TransportError: the transport could not be reached. Fatal.
        """
        logger.info(event="drive_initializing", device_id=self.config.device_id)

        await self.storage.ensure_root()
        await self.controller.init()

        # Subscribe before connecting so no early message is missed
        publish_requests = self.controller.subscribe(EventType.PUBLISH_REQUESTED)
        commands = self.controller.subscribe(EventType.TEXT_RECEIVED)

        await self.transport.connect()

        self._start(self._pump_inbound(), "pump_inbound")
        self._start(self._pump_messages(), "pump_messages")
        self._start(self._pump_publish_requests(publish_requests), "pump_publish_requests")
        self._start(self._pump_outgoing(), "pump_outgoing")
        self._start(self.router.run(commands), "command_router")
        self._start(self.aggregator.run(self.chunker.progress), "progress_aggregator")
        self._start(
            self.chunker.run_progress_ticker(self.config.chunker.progress_interval),
            "chunk_progress_ticker",
        )
        self._start(self._temp_cleanup_loop(), "temp_cleanup")

        self.initialized = True
        logger.info(
            event="drive_initialized",
            channel=self.config.transport.channel,
            storage_dir=str(self.storage.root),
        )
        return self

    def _start(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_task_done)
        self._tasks.append(task)

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                event="drive_task_crashed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    async def _pump_inbound(self) -> None:
        while True:
            raw = await self.transport.inbound.get()
            try:
                self.chunker.receive(raw)
            except Exception as e:
                logger.error(event="transport_message_failed", error=str(e))

    async def _pump_messages(self) -> None:
        while True:
            message = await self.chunker.messages.get()
            self.controller.classify_inbound(message)

    async def _pump_publish_requests(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                self.chunker.publish(event.message)
            except Exception as e:
                logger.error(event="chunker_publish_failed", error=str(e))

    async def _pump_outgoing(self) -> None:
        while True:
            payload = await self.chunker.outgoing.get()
            try:
                await self.transport.publish(payload)
            except TransportError as e:
                # One lost payload must not stop the session
                logger.error(event="transport_publish_failed", error=str(e))

    async def _temp_cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.storage.temp_cleanup_interval)
            await self.cleanup_temp_folder()

    async def cleanup_temp_folder(self) -> int:
        try:
            deleted = await self.storage.clean_temp_folder()
        except OSError as e:
            logger.error(event="temp_cleanup_failed", error=str(e))
            return 0

        if deleted:
            logger.info(event="temp_cleanup_complete", removed=deleted)
        return deleted

    def status(self) -> Dict[str, Any]:
        """Snapshot for health reporting."""
        return {
            "device_id": self.config.device_id,
            "initialized": self.initialized,
            "transport_connected": self.transport.is_connected,
            "channel": self.config.transport.channel,
            "storage_dir": str(self.storage.root),
            "received_messages": len(self.controller.received),
            "sent_messages": len(self.controller.sent),
            "commands_in_flight": self.router.in_flight,
            "chunked_messages_pending": self.chunker.pending_count,
        }

    async def shutdown(self) -> None:
        logger.info(event="drive_shutting_down")

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        await self.router.stop()
        await self.controller.destroy()
        await self.transport.close()

        self.initialized = False
        logger.info(event="drive_shut_down")
