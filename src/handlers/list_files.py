"""Directory listing."""

from common.errors import NotFoundError
from common.logging import get_logger
from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, ListCommand

logger = get_logger(__name__)


class ListFilesHandler(CommandHandler):
    """Lists a directory with per-entry metadata."""

    action = CommandAction.LIST.value
    failure_label = "Error listing files"

    async def execute(self, command: ListCommand) -> CommandResponse:
        dir_path = self.storage.resolve(command.path)

        if not await self.storage.exists(dir_path):
            raise NotFoundError("Directory not found")

        entries = await self.storage.list_dir(dir_path)

        logger.debug(event="directory_listed", path=command.path, entries=len(entries))

        return CommandResponse.success(
            self.action,
            path=command.path,
            files=[entry.to_wire() for entry in entries],
        )
