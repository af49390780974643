"""
Command dispatcher.

Turns text-message bodies into commands, routes them by action and publishes
exactly one response per command through the message controller.

- Async I/O for all operations
- Structured logging with elapsed_ms
- Failure isolation: nothing raised by a handler escapes this module
"""

import asyncio
import json
from typing import Any, Dict, Optional, Set

from common.errors import DriveError
from common.logging import TimedLogger, get_logger
from common.models import CommandResponse, DomainMessage, MessageKind
from controller.events import EventType
from controller.message_controller import MessageController
from handlers import (
    CommandHandler,
    DeleteHandler,
    DownloadHandler,
    InfoHandler,
    ListFilesHandler,
    MkdirHandler,
    PingHandler,
    RenameHandler,
    UploadHandler,
)
from router.message_types import UNKNOWN_ACTION, decode_command
from storage import LocalStorage

logger = get_logger(__name__)


class CommandRouter:
    """
    Routes commands carried in text messages to their handlers.

    Responsibilities:
    - Parse and validate command bodies
    - Route by action through a fixed table
    - Convert handler results and errors to responses
    - Publish responses on the outbound path
    """

    def __init__(self, controller: MessageController, storage: LocalStorage):
        self.controller = controller
        self.storage = storage
        self.handlers: Dict[str, CommandHandler] = {}
        self._tasks: Set[asyncio.Task] = set()

        self._register_default_handlers()

        logger.info(
            event="command_router_initialized",
            actions=sorted(self.handlers.keys()),
            storage_root=str(storage.root),
        )

    def _register_default_handlers(self) -> None:
        for handler in (
            PingHandler(self.storage),
            ListFilesHandler(self.storage),
            UploadHandler(self.storage),
            DownloadHandler(self.storage, self.controller),
            DeleteHandler(self.storage),
            MkdirHandler(self.storage),
            InfoHandler(self.storage),
            RenameHandler(self.storage),
        ):
            self.register_handler(handler)

    def register_handler(self, handler: CommandHandler) -> None:
        self.handlers[handler.action] = handler

    async def run(self, queue: Optional[asyncio.Queue] = None) -> None:
        """
        Handle text messages from the controller until cancelled.

        Pass a queue subscribed ahead of time to avoid missing early messages.
        """
        if queue is None:
            queue = self.controller.subscribe(EventType.TEXT_RECEIVED)
        try:
            while True:
                event = await queue.get()
                # Independent commands may interleave at their I/O suspension points
                task = asyncio.create_task(self.handle_message(event.message))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            self.controller.unsubscribe(queue)

    async def stop(self) -> None:
        """Cancel commands still in flight."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def handle_message(self, message: DomainMessage) -> Optional[CommandResponse]:
        """
        Process one inbound message.

        Returns the published response, or None for non-text messages.
        """
        if message.kind != MessageKind.TEXT.value:
            return None

        with TimedLogger(logger, "command_processed", origin_device_id=message.origin_device_id):
            response = await self.dispatch(message.body)

        self.send_response(response)
        return response

    async def dispatch(self, body: str) -> CommandResponse:
        """Parse, route and execute one command body. Never raises."""
        try:
            payload: Any = json.loads(body)
        except (TypeError, ValueError) as e:
            logger.warning(event="command_parse_failed", error=str(e), raw_message=body[:200])
            return CommandResponse.error(UNKNOWN_ACTION, f"Error processing command: {e}")

        if not isinstance(payload, dict):
            logger.warning(event="command_not_an_object", payload_type=type(payload).__name__)
            return CommandResponse.error(
                UNKNOWN_ACTION, "Error processing command: command must be a JSON object"
            )

        action = payload.get("action")
        handler = self.handlers.get(action) if isinstance(action, str) else None
        if handler is None:
            logger.warning(event="unknown_command", action=action)
            return CommandResponse.error(
                UNKNOWN_ACTION if action is None else str(action), "Unknown command"
            )

        try:
            command = decode_command(payload)
            response = await self.handlers[command.action].execute(command)
        except DriveError as e:
            logger.info(
                event="command_rejected",
                action=handler.action,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CommandResponse.error(handler.action, str(e))
        except Exception as e:
            logger.error(
                event="command_failed",
                action=handler.action,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CommandResponse.error(handler.action, f"{handler.failure_label}: {e}")

        logger.info(event="command_succeeded", action=handler.action)
        return response

    def send_response(self, response: CommandResponse) -> None:
        """Publish a response as a text message."""
        self.controller.classify_outbound(
            DomainMessage(kind=MessageKind.TEXT.value, body=response.to_body())
        )
