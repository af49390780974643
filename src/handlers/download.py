"""
Sends a stored file back to the operator.

The content travels as a separate file-kind message so that it goes through
the chunked path; the command response itself only confirms the size.
"""

import base64

from common.errors import NotFoundError
from common.logging import get_logger
from common.models import CommandResponse, DomainMessage, MessageKind
from controller.message_controller import MessageController
from handlers.base import CommandHandler
from router.message_types import CommandAction, DownloadCommand
from storage import LocalStorage

logger = get_logger(__name__)


class DownloadHandler(CommandHandler):
    action = CommandAction.DOWNLOAD.value
    failure_label = "Error downloading file"

    def __init__(self, storage: LocalStorage, controller: MessageController):
        super().__init__(storage)
        self.controller = controller

    async def execute(self, command: DownloadCommand) -> CommandResponse:
        file_path = self.storage.resolve(command.path, command.file_name, allow_root=False)

        async with self.storage.hold(file_path):
            if not await self.storage.exists(file_path):
                raise NotFoundError("File not found")

            data = await self.storage.read_bytes(file_path)

        self.controller.classify_outbound(
            DomainMessage(
                kind=MessageKind.FILE.value,
                file_name=command.file_name,
                file_size=len(data),
                body=base64.b64encode(data).decode("ascii"),
            )
        )

        logger.info(
            event="file_download_published",
            file_name=command.file_name,
            path=command.path,
            size=len(data),
        )

        return CommandResponse.success(
            self.action,
            fileName=command.file_name,
            path=command.path,
            size=len(data),
        )
