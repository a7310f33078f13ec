from identity import Guild, Member
from permissions import PermissionLevel, PermissionSystem


class Recipe:
    def __init__(
        self,
        *,
        id: int,
        owner_id: int,
        owner_name: str,
        name: str,
        text: str,
    ) -> None:
        self.id = id
        self.owner_id = owner_id
        self.owner_name = owner_name
        self.name = name
        self.text = text

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, name={self.name})>"

    def __str__(self) -> str:
        return self.text

    def real_owner_name(self, guild: Guild | None) -> str:
        """Current name of the owner, or the name stored when they are gone."""
        owner = None if guild is None else guild.get_member(self.owner_id)
        return str(owner) if owner is not None else self.owner_name

    def is_owner(self, user_id: int) -> bool:
        return self.owner_id == user_id

    def can_edit(self, member: Member, permissions: PermissionSystem) -> bool:
        return (
            self.is_owner(member.id)
            or permissions.max_level(member.roles) >= PermissionLevel.ELEVATED
        )
