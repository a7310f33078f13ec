"""Who is who in the community a command came from."""

from typing import Any, Iterable, Protocol, Self, Sequence


class Member(Protocol):
    id: int
    roles: Sequence[str]

    def __str__(self) -> str:
        ...


class Guild(Protocol):
    def get_member(self, user_id: int) -> Member | None:
        ...


class GuildMember:
    def __init__(
        self,
        *,
        id: int,
        name: str,
        discriminator: str = "0",
        roles: Sequence[str] = (),
    ) -> None:
        self.id = id
        self.name = name
        self.discriminator = discriminator
        self.roles = tuple(roles)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        # Gateway member payloads nest the account under "user".
        user = data.get("user", data)
        return cls(
            id=int(user["id"]),
            name=user.get("username") or user["name"],
            discriminator=str(user.get("discriminator") or "0"),
            roles=[str(r) for r in data.get("roles", ())],
        )

    def __repr__(self) -> str:
        return f"<GuildMember(id={self.id}, name={self.name})>"

    def __str__(self) -> str:
        if self.discriminator in ("", "0"):
            return self.name
        return f"{self.name}#{self.discriminator}"


class Roster:
    """Snapshot of a guild's members."""

    def __init__(self, members: Iterable[Member] = ()) -> None:
        self._members = {m.id: m for m in members}

    def __len__(self) -> int:
        return len(self._members)

    def get_member(self, user_id: int) -> Member | None:
        return self._members.get(user_id)
