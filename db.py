import contextlib
import logging
import ssl
from typing import Any, Iterable, Iterator

from databases import Database
from databases.interfaces import Record

from config import Config
from identity import Guild
from models import Recipe


logger = logging.getLogger(__name__)


NUMBER_PER_PAGE = 5


CREATE_RECIPES_TABLE = """
CREATE TABLE IF NOT EXISTS recipes (
    id {id_column},
    owner_id BIGINT NOT NULL,
    owner_name VARCHAR(256) NOT NULL,
    owner_name_key VARCHAR(256) NOT NULL,
    name VARCHAR(256) NOT NULL,
    name_key VARCHAR(256) NOT NULL,
    text TEXT NOT NULL
)
"""


CREATE_RECIPES_NAME_INDEX = """
CREATE INDEX IF NOT EXISTS ix_recipes_name_key ON recipes (name_key)
"""


CREATE_RECIPE = """
INSERT INTO recipes(owner_id, owner_name, owner_name_key, name, name_key, text)
VALUES (:owner_id, :owner_name, :owner_name_key, :name, :name_key, :text)
"""


UPDATE_RECIPE = """
UPDATE recipes SET owner_name = :owner_name, owner_name_key = :owner_name_key,
    name = :name, name_key = :name_key, text = :text
WHERE id = :id
"""


DELETE_RECIPE = "DELETE FROM recipes WHERE id = :id"


GET_RECIPE_BY_ID = "SELECT * FROM recipes WHERE id = :id"


GET_RECIPE = "SELECT * FROM recipes WHERE name_key = :key ORDER BY id LIMIT 1"


COUNT_ALL = "SELECT COUNT(*) FROM recipes"


_NAME_MATCHES = "name_key LIKE :pattern ESCAPE '\\'"


_OWNER_NAME_MATCHES = "owner_name_key LIKE :owner_pattern ESCAPE '\\'"


LIST_OWNERS = f"SELECT DISTINCT owner_id FROM recipes WHERE {_NAME_MATCHES}"


COUNT_RECIPES = "SELECT COUNT(*) FROM recipes WHERE {where}"


LIST_RECIPES_PAGE = """
SELECT * FROM recipes WHERE {where}
ORDER BY name, id LIMIT :limit OFFSET :offset
"""


class StoreUnavailable(Exception):
    pass


@contextlib.contextmanager
def store_errors() -> Iterator[None]:
    try:
        yield
    except Exception as e:
        raise StoreUnavailable(f"Recipe store query failed: {e!r}") from e


def name_key(name: str) -> str:
    """Case-folded form of a name, stored next to it for lookups."""
    return name.casefold()


def like_pattern(substring: str | None) -> str:
    if not substring:
        return "%"
    escaped = (
        name_key(substring)
        .replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
    return f"%{escaped}%"


def in_clause(
    column: str, prefix: str, ids: Iterable[int]
) -> tuple[str, dict[str, int]]:
    values = {f"{prefix}{i}": id for i, id in enumerate(ids)}
    if not values:
        return "1 = 0", values
    binds = ", ".join(f":{k}" for k in values)
    return f"{column} IN ({binds})", values


def database_factory(config: Config) -> Database:
    if config.db_ca_file is None:
        return Database(config.db_url)
    # Validate the server certificate against the configured CA.
    context = ssl.create_default_context(cafile=str(config.db_ca_file))
    return Database(config.db_url, ssl=context)


def recipe_from_record(record: Record) -> Recipe:
    return Recipe(
        id=record["id"],
        owner_id=record["owner_id"],
        owner_name=record["owner_name"],
        name=record["name"],
        text=record["text"],
    )


class RecipesRepository:
    """Recipes repository.

    Lookups return `None` rather than raising when nothing matches. Any failure
    of the database itself surfaces as `StoreUnavailable`; nothing is retried.
    """

    def __init__(self, db: Database, *, page_size: int = NUMBER_PER_PAGE) -> None:
        if page_size < 1:
            raise ValueError(f"Page size must be positive, got {page_size}.")
        self.db = db
        self.page_size = page_size

    @property
    def _postgres(self) -> bool:
        return self.db.url.dialect == "postgresql"

    async def create_table(self) -> None:
        id_column = "SERIAL PRIMARY KEY" if self._postgres else "INTEGER PRIMARY KEY"
        with store_errors():
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                query=CREATE_RECIPES_TABLE.format(id_column=id_column)
            )
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                query=CREATE_RECIPES_NAME_INDEX
            )

    async def create(
        self, *, owner_id: int, owner_name: str, name: str, text: str
    ) -> Recipe:
        values = {
            "owner_id": owner_id,
            "owner_name": owner_name,
            "owner_name_key": name_key(owner_name),
            "name": name,
            "name_key": name_key(name),
            "text": text,
        }
        # asyncpg hands back the first column, sqlite the last row id.
        query = f"{CREATE_RECIPE} RETURNING id" if self._postgres else CREATE_RECIPE
        with store_errors():
            id = await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                query, values=values
            )
        logger.info("Created recipe %s (%s)", name, id)
        return Recipe(
            id=id, owner_id=owner_id, owner_name=owner_name, name=name, text=text
        )

    async def update(self, recipe: Recipe) -> Recipe:
        with store_errors():
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                UPDATE_RECIPE,
                values={
                    "id": recipe.id,
                    "owner_name": recipe.owner_name,
                    "owner_name_key": name_key(recipe.owner_name),
                    "name": recipe.name,
                    "name_key": name_key(recipe.name),
                    "text": recipe.text,
                },
            )
        return recipe

    async def delete(self, id: int) -> bool:
        with store_errors():
            existing = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                GET_RECIPE_BY_ID, values={"id": id}
            )
            if existing is None:
                return False
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                DELETE_RECIPE, values={"id": id}
            )
        logger.info("Deleted recipe %s", id)
        return True

    async def get_by_id(self, id: int) -> Recipe | None:
        with store_errors():
            result = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                GET_RECIPE_BY_ID, values={"id": id}
            )
        return None if result is None else recipe_from_record(result)

    async def get(self, name: str) -> Recipe | None:
        with store_errors():
            result = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
                GET_RECIPE, values={"key": name_key(name)}
            )
        return None if result is None else recipe_from_record(result)

    async def _page(
        self, where: str, values: dict[str, Any], offset: int
    ) -> list[Recipe]:
        with store_errors():
            result = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
                LIST_RECIPES_PAGE.format(where=where),
                values={**values, "limit": self.page_size, "offset": offset},
            )
        return [recipe_from_record(r) for r in result]

    async def _count(self, where: str, values: dict[str, Any]) -> int:
        with store_errors():
            total = await self.db.fetch_val(  # pyright: ignore[reportUnknownMemberType]
                COUNT_RECIPES.format(where=where), values=values
            )
        return int(total or 0)

    async def _owner_filter(
        self, guild: Guild | None, values: dict[str, Any], owner_filter: str
    ) -> tuple[str, dict[str, Any]]:
        """Where clause matching `owner_filter` against the owners' current names.

        Owners missing from `guild` are matched on their stored name instead.
        """
        with store_errors():
            owners = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
                LIST_OWNERS, values={"pattern": values["pattern"]}
            )
        present: list[int] = []
        matching: list[int] = []
        for record in owners:
            member = None if guild is None else guild.get_member(record["owner_id"])
            if member is None:
                continue
            present.append(record["owner_id"])
            if owner_filter in name_key(str(member)):
                matching.append(record["owner_id"])

        matching_clause, matching_values = in_clause("owner_id", "match", matching)
        present_clause, present_values = in_clause("owner_id", "present", present)
        where = (
            f"{_NAME_MATCHES} AND ({matching_clause}"
            f" OR (NOT ({present_clause}) AND {_OWNER_NAME_MATCHES}))"
        )
        return where, {**values, **matching_values, **present_values}

    async def search(
        self,
        guild: Guild | None,
        name_filter: str | None = None,
        page: int = 0,
        owner_name: str | None = None,
    ) -> tuple[list[Recipe], int]:
        """A page of recipes sorted by name, and how many match in total.

        `owner_name` is matched both against the owner's current name in
        `guild` and against the name stored with the recipe. Whichever reading
        matches more recipes is used, the current name winning a tie.
        """
        if page < 0:
            raise ValueError(f"Page must not be negative, got {page}.")
        offset = self.page_size * page
        values: dict[str, Any] = {"pattern": like_pattern(name_filter)}

        if owner_name is None:
            total = await self._count(_NAME_MATCHES, values)
            return await self._page(_NAME_MATCHES, values, offset), total

        values["owner_pattern"] = like_pattern(owner_name)
        # Current owner names only exist on the gateway side.
        by_real_name = await self._owner_filter(guild, values, name_key(owner_name))
        by_cached_name = (f"{_NAME_MATCHES} AND {_OWNER_NAME_MATCHES}", values)
        real_total = await self._count(*by_real_name)
        cached_total = await self._count(*by_cached_name)
        if real_total >= cached_total:
            where, values = by_real_name
            total = real_total
        else:
            where, values = by_cached_name
            total = cached_total
        return await self._page(where, values, offset), total

    async def count_all(self) -> int:
        with store_errors():
            total = await self.db.fetch_val(  # pyright: ignore[reportUnknownMemberType]
                COUNT_ALL
            )
        return int(total or 0)
