"""
Base interface for command handlers.

A handler performs exactly one storage operation for one decoded command and
returns the response payload. Domain errors (validation, not found, conflict)
are raised and turned into error responses by the dispatcher; any other
exception is reported with the handler's failure label.
"""

from abc import ABC, abstractmethod
from typing import ClassVar

from common.models import CommandResponse
from router.message_types import BaseCommand
from storage import LocalStorage


class CommandHandler(ABC):
    """Abstract base class for command handlers."""

    action: ClassVar[str]
    # Prefix for unexpected failures, e.g. "Error saving file: <cause>"
    failure_label: ClassVar[str]

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    @abstractmethod
    async def execute(self, command: BaseCommand) -> CommandResponse:
        """Run the command and build its success response."""
        pass
