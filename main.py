import contextlib
import logging
from typing import Any

import httpx
from rich.logging import RichHandler
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

import config
import db
import services
from activity import ActivityLogger
from gateway import ChatGateway
from identity import Guild, GuildMember
from permissions import PermissionSystem


logger = logging.getLogger(__name__)


def configure_logging(cfg: config.Config) -> None:
    logging.basicConfig(
        level=logging.DEBUG if cfg.env == config.Env.local else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


class BadCommand(Exception):
    pass


def reply(content: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse({"content": content}, status_code=status_code)


def page_option(options: dict[str, Any]) -> int:
    # Users count pages from one.
    try:
        page = int(options.get("page") or 1)
    except (TypeError, ValueError):
        raise BadCommand(f"Not a page number: {options.get('page')!r}") from None
    return max(page, 1) - 1


def required_option(options: dict[str, Any], name: str) -> str:
    value = options.get(name)
    if not isinstance(value, str) or not value:
        raise BadCommand(f"Missing option `{name}`.")
    return value


async def guild_roster(request: Request, guild_id: int | None) -> Guild | None:
    if guild_id is None:
        return None
    gateway: ChatGateway = request.app.state.gateway
    try:
        return await gateway.fetch_roster(guild_id)
    except httpx.HTTPError as e:
        # Owner names fall back to the names stored with the recipes.
        logger.warning("Could not fetch members of guild %s: %r", guild_id, e)
        return None


async def dispatch(request: Request, data: dict[str, Any]) -> str:
    state = request.app.state
    repo: db.RecipesRepository = state.repo
    permissions: PermissionSystem = state.permissions
    options: dict[str, Any] = data.get("options") or {}
    try:
        author = GuildMember.from_dict(data["author"])
    except (AttributeError, KeyError, TypeError, ValueError):
        raise BadCommand("Malformed command.") from None

    match data.get("command"):
        case "recipe":
            name = required_option(options, "name")
            return await services.show_recipe(repo, name, state.templates)
        case "recipes":
            guild = await guild_roster(request, data.get("guild_id"))
            page = await services.find_recipes(
                repo,
                guild,
                name_filter=options.get("name"),
                page=page_option(options),
                owner_name=options.get("owner"),
            )
            return services.render_page(page, guild, state.templates)
        case "add":
            return await services.add_recipe(
                repo,
                author,
                name=required_option(options, "name"),
                text=required_option(options, "text"),
            )
        case "edit":
            return await services.edit_recipe(
                repo,
                permissions,
                author,
                name=required_option(options, "name"),
                text=required_option(options, "text"),
                new_name=options.get("new_name"),
            )
        case "delete":
            return await services.delete_recipe(
                repo, permissions, author, name=required_option(options, "name")
            )
        case "count":
            return await services.count_recipes(repo)
        case other:
            raise BadCommand(f"Unknown command {other!r}.")


async def commands(request: Request) -> JSONResponse:
    try:
        data = await request.json()
    except ValueError:
        return reply("Malformed command.", status_code=400)
    if not isinstance(data, dict) or "author" not in data:
        return reply("Malformed command.", status_code=400)

    try:
        content = await dispatch(request, data)
    except BadCommand as e:
        return reply(str(e), status_code=400)
    except services.PermissionDenied as e:
        return reply(f"You are not allowed to do that: {e}", status_code=403)
    except db.StoreUnavailable as e:
        request.app.state.activity.log(f"Recipe store unavailable: {e}")
        return reply("Recipes are unavailable right now.", status_code=503)
    return reply(content)


def create_app(
    cfg: config.Config | None = None,
    *,
    gateway: ChatGateway | None = None,
) -> Starlette:
    cfg = config.Config() if cfg is None else cfg

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        configure_logging(cfg)
        app.state.gateway = ChatGateway.from_config(cfg) if gateway is None else gateway
        app.state.activity = await ActivityLogger.create(
            app.state.gateway,
            guild_id=cfg.report_guild_id,
            user_id=cfg.report_user_id,
            prefix=cfg.log_prefix,
        )

        database = db.database_factory(cfg)
        await database.connect()
        repo = db.RecipesRepository(database, page_size=cfg.page_size)
        await repo.create_table()
        app.state.repo = repo
        app.state.permissions = PermissionSystem.from_roles(
            elevated=cfg.elevated_roles, admin=cfg.admin_roles
        )
        app.state.templates = services.templates_factory(cfg.templates_dir)
        app.state.activity.log_module_init(services.__name__)
        try:
            yield
        finally:
            try:
                await app.state.activity.aclose()
            finally:
                await app.state.gateway.close()
                await database.disconnect()

    return Starlette(
        debug=True if cfg.env == config.Env.local else False,
        routes=[Route("/commands", commands, methods=["POST"])],
        lifespan=lifespan,
    )


app = create_app()
