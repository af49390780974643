"""Writes base64 data sent by the operator into storage."""

import base64
import binascii

from common.errors import CommandValidationError
from common.logging import get_logger
from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import CommandAction, UploadCommand

logger = get_logger(__name__)


class UploadHandler(CommandHandler):
    action = CommandAction.UPLOAD.value
    failure_label = "Error saving file"

    async def execute(self, command: UploadCommand) -> CommandResponse:
        file_path = self.storage.resolve(command.path, command.file_name, allow_root=False)

        try:
            data = base64.b64decode(command.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise CommandValidationError("Invalid base64 data") from e

        async with self.storage.hold(file_path):
            await self.storage.write_bytes(file_path, data)

        logger.info(
            event="file_saved", file_name=command.file_name, path=command.path, size=len(data)
        )

        return CommandResponse.success(
            self.action,
            fileName=command.file_name,
            path=command.path,
            size=len(data),
        )
