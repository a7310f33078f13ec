"""Functionality behind the chat commands."""

import logging
import math
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from db import RecipesRepository
from identity import Guild, Member
from models import Recipe
from permissions import PermissionSystem


logger = logging.getLogger(__name__)


class PermissionDenied(Exception):
    pass


def templates_factory(templates_dir: Path) -> Environment:
    return Environment(
        loader=FileSystemLoader(templates_dir),
        autoescape=select_autoescape(),
        trim_blocks=True,
        lstrip_blocks=True,
    )


class RecipePage:
    def __init__(
        self,
        *,
        recipes: list[Recipe],
        total: int,
        page: int,
        page_size: int,
    ) -> None:
        self.recipes = recipes
        self.total = total
        self.page = page
        self.page_size = page_size

    @property
    def page_count(self) -> int:
        return max(1, math.ceil(self.total / self.page_size))

    @property
    def first(self) -> int:
        return self.page * self.page_size + 1 if self.recipes else 0

    @property
    def last(self) -> int:
        return self.page * self.page_size + len(self.recipes)


async def find_recipes(
    repository: RecipesRepository,
    guild: Guild | None,
    *,
    name_filter: str | None = None,
    page: int = 0,
    owner_name: str | None = None,
) -> RecipePage:
    recipes, total = await repository.search(
        guild, name_filter=name_filter, page=page, owner_name=owner_name
    )
    return RecipePage(
        recipes=recipes, total=total, page=page, page_size=repository.page_size
    )


def render_page(page: RecipePage, guild: Guild | None, templates: Environment) -> str:
    lines = [(r.name, r.real_owner_name(guild)) for r in page.recipes]
    return templates.get_template("recipe-list.txt").render(page=page, lines=lines)


async def show_recipe(
    repository: RecipesRepository,
    name: str,
    templates: Environment,
) -> str:
    recipe = await repository.get(name)
    if recipe is None:
        return templates.get_template("not-found.txt").render(name=name)
    return templates.get_template("recipe.txt").render(recipe=recipe)


async def add_recipe(
    repository: RecipesRepository,
    author: Member,
    *,
    name: str,
    text: str,
) -> str:
    existing = await repository.get(name)
    if existing is not None:
        return f"A recipe called `{existing.name}` already exists."
    recipe = await repository.create(
        owner_id=author.id, owner_name=str(author), name=name, text=text
    )
    return f"Added recipe `{recipe.name}`."


async def _editable_recipe(
    repository: RecipesRepository,
    permissions: PermissionSystem,
    author: Member,
    name: str,
) -> Recipe | None:
    recipe = await repository.get(name)
    if recipe is None:
        return None
    if not recipe.can_edit(author, permissions):
        logger.info("%s may not edit recipe %s", author, recipe.name)
        raise PermissionDenied(f"{author} cannot edit `{recipe.name}`.")
    return recipe


async def edit_recipe(
    repository: RecipesRepository,
    permissions: PermissionSystem,
    author: Member,
    *,
    name: str,
    text: str,
    new_name: str | None = None,
) -> str:
    recipe = await _editable_recipe(repository, permissions, author, name)
    if recipe is None:
        return f"No recipe called `{name}`."
    if new_name is not None:
        existing = await repository.get(new_name)
        if existing is not None and existing.id != recipe.id:
            return f"A recipe called `{existing.name}` already exists."
    if recipe.is_owner(author.id):
        recipe.owner_name = str(author)
    recipe.name = recipe.name if new_name is None else new_name
    recipe.text = text
    await repository.update(recipe)
    return f"Updated recipe `{recipe.name}`."


async def delete_recipe(
    repository: RecipesRepository,
    permissions: PermissionSystem,
    author: Member,
    *,
    name: str,
) -> str:
    recipe = await _editable_recipe(repository, permissions, author, name)
    if recipe is None:
        return f"No recipe called `{name}`."
    await repository.delete(recipe.id)
    return f"Deleted recipe `{recipe.name}`."


async def count_recipes(repository: RecipesRepository) -> str:
    total = await repository.count_all()
    return f"There are {total} recipes."
