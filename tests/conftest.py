"""
Shared fixtures for the drive tests.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from common.models import DomainMessage
from controller.message_controller import MessageController
from router.command_router import CommandRouter
from storage import LocalStorage

TEST_DEVICE_ID = "streamdrive-test"


class FakeTransport:
    """In-memory stand-in for the pub/sub client."""

    def __init__(self, fail_publishes: int = 0):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.published: List[bytes] = []
        self.connected = False
        self.fail_publishes = fail_publishes

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> None:
        self.connected = True

    async def publish(self, payload: bytes) -> None:
        from common.errors import TransportError

        if self.fail_publishes:
            self.fail_publishes -= 1
            raise TransportError("broker went away")
        self.published.append(payload)

    async def close(self) -> None:
        self.connected = False


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Empty storage root."""
    root = tmp_path / "storage"
    root.mkdir()
    return root


@pytest.fixture
def storage(storage_dir: Path) -> LocalStorage:
    return LocalStorage(str(storage_dir))


@pytest.fixture
def controller() -> MessageController:
    return MessageController(TEST_DEVICE_ID, per_kind_capacity=5, overall_capacity=10)


@pytest.fixture
def router(controller: MessageController, storage: LocalStorage) -> CommandRouter:
    return CommandRouter(controller, storage)


@pytest.fixture
def send_command(router: CommandRouter):
    """Send one command and return the decoded response that was published."""

    async def _send(command: Any) -> Dict[str, Any]:
        body = command if isinstance(command, str) else json.dumps(command)
        await router.handle_message(DomainMessage(kind="text", body=body))
        return json.loads(router.controller.sent[0].body)

    return _send
