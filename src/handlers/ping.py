"""Liveness probe."""

import time

from common.models import CommandResponse
from handlers.base import CommandHandler
from router.message_types import PONG_ACTION, CommandAction, PingCommand


class PingHandler(CommandHandler):
    action = CommandAction.PING.value
    failure_label = "Error handling ping"

    async def execute(self, command: PingCommand) -> CommandResponse:
        return CommandResponse.success(PONG_ACTION, timestamp=int(time.time() * 1000))
