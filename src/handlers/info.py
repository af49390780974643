"""Stat of a single entry."""

from common.errors import NotFoundError
from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, InfoCommand


class InfoHandler(CommandHandler):
    action = CommandAction.INFO.value
    failure_label = "Error getting file info"

    async def execute(self, command: InfoCommand) -> CommandResponse:
        target = self.storage.resolve(command.path, command.file_name, allow_root=False)

        if not await self.storage.exists(target):
            raise NotFoundError("File not found")

        stat = await self.storage.stat(target)

        return CommandResponse.success(
            self.action,
            fileName=command.file_name,
            path=command.path,
            size=stat.size,
            isDirectory=stat.is_directory,
            created=stat.created,
            modified=stat.modified,
        )
