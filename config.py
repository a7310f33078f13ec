from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHEF_", env_file=".env", extra="ignore")

    env: Env = Env.local
    db_url: str = "sqlite+aiosqlite:///chef.db"
    # CA certificate the database server certificate is validated against.
    db_ca_file: Path | None = None
    page_size: int = 5
    templates_dir: Path = Path(__file__).parent / "templates"
    gateway_url: str = "https://discord.com/api/v10/"
    gateway_token: str = ""
    report_guild_id: int = 562704639141740588
    report_user_id: int = 125598628310941697
    elevated_roles: list[str] = ["moderator", "core developer"]
    admin_roles: list[str] = ["admin"]
    log_prefix: str = "[CHEF]"
