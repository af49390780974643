"""Idempotent recursive directory creation."""

from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, MkdirCommand


class MkdirHandler(CommandHandler):
    action = CommandAction.MKDIR.value
    failure_label = "Error creating directory"

    async def execute(self, command: MkdirCommand) -> CommandResponse:
        dir_path = self.storage.resolve(command.path, command.dir_name, allow_root=False)

        async with self.storage.hold(dir_path):
            await self.storage.make_dirs(dir_path)

        return CommandResponse.success(self.action, dirName=command.dir_name, path=command.path)
