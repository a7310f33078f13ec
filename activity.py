"""Activity log: every line goes to the console and to the bot's operator."""

import asyncio
import logging

from gateway import ChatGateway
from identity import GuildMember


logger = logging.getLogger("chef")


LOG_PREFIX = "[CHEF]"


class RecipientNotFound(Exception):
    pass


class ActivityLogger:
    def __init__(
        self,
        *,
        gateway: ChatGateway,
        report_to: GuildMember,
        prefix: str = LOG_PREFIX,
    ) -> None:
        self.gateway = gateway
        self.report_to = report_to
        self.prefix = prefix
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    async def create(
        cls,
        gateway: ChatGateway,
        *,
        guild_id: int,
        user_id: int,
        prefix: str = LOG_PREFIX,
    ) -> "ActivityLogger":
        member = await gateway.get_member(guild_id, user_id)
        if member is None:
            raise RecipientNotFound(f"No member {user_id} in guild {guild_id}.")
        return cls(gateway=gateway, report_to=member, prefix=prefix)

    def log(self, msg: str) -> None:
        line = f"{self.prefix} {msg}"
        logger.info(line)
        task = asyncio.get_running_loop().create_task(self._forward(line))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def log_module_init(self, module: str) -> None:
        self.log(f"Initializing {module.rsplit('.', 1)[-1]}")

    async def _forward(self, line: str) -> None:
        try:
            await self.gateway.send_direct_message(self.report_to.id, line)
        except Exception:
            logger.warning(
                "Could not forward log line to %s", self.report_to, exc_info=True
            )

    async def aclose(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
