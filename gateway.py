import logging

import httpx

from config import Config
from identity import GuildMember, Roster


logger = logging.getLogger(__name__)


TIMEOUT = 30
MAX_MEMBERS = 1000


def gateway_client_factory(config: Config) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.gateway_url,
        headers={
            "Authorization": f"Bot {config.gateway_token}",
            "Content-Type": "application/json",
        },
        timeout=TIMEOUT,
    )


class ChatGateway:
    """REST side of the chat gateway: members and direct messages."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: Config) -> "ChatGateway":
        return cls(gateway_client_factory(config))

    async def get_member(self, guild_id: int, user_id: int) -> GuildMember | None:
        resp = await self._client.get(f"guilds/{guild_id}/members/{user_id}")
        if resp.status_code == httpx.codes.NOT_FOUND:
            return None
        resp.raise_for_status()
        return GuildMember.from_dict(resp.json())

    async def fetch_roster(self, guild_id: int) -> Roster:
        """All members of a guild, paging through the member list by id."""
        members: list[GuildMember] = []
        after = 0
        while True:
            resp = await self._client.get(
                f"guilds/{guild_id}/members",
                params={"limit": MAX_MEMBERS, "after": after},
            )
            resp.raise_for_status()
            page = [GuildMember.from_dict(m) for m in resp.json()]
            members.extend(page)
            if len(page) < MAX_MEMBERS:
                break
            after = max(m.id for m in page)
        logger.debug("Fetched %d members of guild %s", len(members), guild_id)
        return Roster(members)

    async def send_direct_message(self, user_id: int, content: str) -> None:
        resp = await self._client.post(
            "users/@me/channels", json={"recipient_id": str(user_id)}
        )
        resp.raise_for_status()
        channel_id = resp.json()["id"]
        resp = await self._client.post(
            f"channels/{channel_id}/messages", json={"content": content}
        )
        resp.raise_for_status()

    async def close(self) -> None:
        await self._client.aclose()
