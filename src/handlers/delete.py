"""Removes a file, or a directory recursively."""

from common.errors import NotFoundError
from common.logging import get_logger
from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, DeleteCommand

logger = get_logger(__name__)


class DeleteHandler(CommandHandler):
    action = CommandAction.DELETE.value
    failure_label = "Error deleting file"

    async def execute(self, command: DeleteCommand) -> CommandResponse:
        target = self.storage.resolve(command.path, command.file_name, allow_root=False)

        async with self.storage.hold(target):
            if not await self.storage.exists(target):
                raise NotFoundError("File not found")

            await self.storage.remove(target)

        logger.info(event="file_deleted", file_name=command.file_name, path=command.path)

        return CommandResponse.success(self.action, fileName=command.file_name, path=command.path)
