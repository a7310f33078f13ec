from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from databases import Database

from db import RecipesRepository
from identity import GuildMember, Roster
from permissions import PermissionSystem


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'chef.db'}"


@pytest_asyncio.fixture
async def database(db_url: str) -> AsyncIterator[Database]:
    database = Database(db_url)
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def repo(database: Database) -> RecipesRepository:
    repo = RecipesRepository(database)
    await repo.create_table()
    return repo


@pytest.fixture
def permissions() -> PermissionSystem:
    return PermissionSystem.from_roles(elevated=["Moderator"], admin=["Admin"])


@pytest.fixture
def roster() -> Roster:
    return Roster(
        [
            GuildMember(id=1, name="ChefAlice"),
            GuildMember(id=2, name="ChefBob", discriminator="1234"),
            GuildMember(id=3, name="Carol"),
        ]
    )
