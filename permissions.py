from enum import IntEnum
from typing import Iterable


class PermissionLevel(IntEnum):
    DEFAULT = 0
    ELEVATED = 1
    ADMIN = 2


class PermissionSystem:
    """Maps chat roles to permission levels.

    Role names are compared case-insensitively. Roles without an explicit
    level are `PermissionLevel.DEFAULT`.
    """

    def __init__(self, levels: dict[str, PermissionLevel] | None = None) -> None:
        levels = {} if levels is None else levels
        self._levels = {role.lower(): level for role, level in levels.items()}

    @classmethod
    def from_roles(
        cls,
        *,
        elevated: Iterable[str] = (),
        admin: Iterable[str] = (),
    ) -> "PermissionSystem":
        levels = {role: PermissionLevel.ELEVATED for role in elevated}
        levels.update({role: PermissionLevel.ADMIN for role in admin})
        return cls(levels)

    def level_of(self, role: str) -> PermissionLevel:
        return self._levels.get(role.lower(), PermissionLevel.DEFAULT)

    def has_required_permission(self, role: str, level: PermissionLevel) -> bool:
        return self.level_of(role) >= level

    def max_level(self, roles: Iterable[str]) -> PermissionLevel:
        return max(
            (self.level_of(role) for role in roles), default=PermissionLevel.DEFAULT
        )
