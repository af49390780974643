"""Renames an entry within one directory, never replacing an existing one."""

from common.errors import ConflictError, NotFoundError
from common.logging import get_logger
from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, RenameCommand

logger = get_logger(__name__)


class RenameHandler(CommandHandler):
    action = CommandAction.RENAME.value
    failure_label = "Error renaming file/folder"

    async def execute(self, command: RenameCommand) -> CommandResponse:
        old_path = self.storage.resolve(command.path, command.old_name, allow_root=False)
        new_path = self.storage.resolve(command.path, command.new_name, allow_root=False)

        async with self.storage.hold(old_path, new_path):
            if not await self.storage.exists(old_path):
                raise NotFoundError("Source file/folder not found")

            if await self.storage.exists(new_path):
                raise ConflictError("Destination already exists")

            await self.storage.rename(old_path, new_path)
            stat = await self.storage.stat(new_path)

        logger.info(
            event="entry_renamed",
            old_name=command.old_name,
            new_name=command.new_name,
            path=command.path,
        )

        return CommandResponse.success(
            self.action,
            oldName=command.old_name,
            newName=command.new_name,
            path=command.path,
            isDirectory=stat.is_directory,
            size=stat.size,
        )
