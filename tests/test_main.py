from pathlib import Path
import sqlite3
from typing import Any, Iterator

import pytest
from starlette.testclient import TestClient

import config
from activity import RecipientNotFound
from main import create_app
from tests.fakes import BASE_URL, FakeGateway, member_payload


GUILD_ID = 1
OPERATOR_ID = 99


@pytest.fixture
def fake() -> FakeGateway:
    return FakeGateway(
        {
            GUILD_ID: [
                member_payload(OPERATOR_ID, "operator"),
                member_payload(5, "ChefCook"),
                member_payload(6, "baker"),
                member_payload(7, "mod", ["Moderator"]),
            ]
        }
    )


@pytest.fixture
def cfg(tmp_path: Path) -> config.Config:
    return config.Config(
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'chef.db'}",
        gateway_url=BASE_URL,
        report_guild_id=GUILD_ID,
        report_user_id=OPERATOR_ID,
        elevated_roles=["moderator"],
        admin_roles=[],
    )


@pytest.fixture
def client(cfg: config.Config, fake: FakeGateway) -> Iterator[TestClient]:
    with TestClient(create_app(cfg, gateway=fake.client())) as client:
        yield client


def command(
    client: TestClient,
    name: str,
    author: dict[str, Any],
    /,
    **options: Any,
) -> tuple[int, str]:
    resp = client.post(
        "/commands",
        json={
            "command": name,
            "guild_id": GUILD_ID,
            "author": author,
            "options": options,
        },
    )
    return resp.status_code, resp.json()["content"]


COOK = {"id": "5", "username": "cook", "discriminator": "0", "roles": []}
BAKER = {"id": "6", "username": "baker", "discriminator": "0", "roles": []}
MOD = {"id": "7", "username": "mod", "discriminator": "0", "roles": ["Moderator"]}


def test_startup_reports_to_operator(cfg: config.Config, fake: FakeGateway) -> None:
    with TestClient(create_app(cfg, gateway=fake.client())):
        pass
    assert fake.sent == [(f"dm-{OPERATOR_ID}", "[CHEF] Initializing services")]


def test_startup_fails_without_operator(cfg: config.Config, fake: FakeGateway) -> None:
    cfg.report_user_id = 1000
    with pytest.raises(RecipientNotFound):
        with TestClient(create_app(cfg, gateway=fake.client())):
            pass


def test_recipe_commands(client: TestClient) -> None:
    assert command(client, "add", COOK, name="Soup", text="Boil water.") == (
        200,
        "Added recipe `Soup`.",
    )
    assert command(client, "add", COOK, name="Stew", text="Simmer.")[0] == 200
    assert command(client, "recipe", BAKER, name="soup") == (
        200,
        "**Soup**\nBoil water.",
    )
    assert command(client, "count", BAKER) == (200, "There are 2 recipes.")

    status, content = command(client, "recipes", BAKER, owner="chef")
    assert status == 200
    assert content.splitlines() == [
        "Page 1 of 1, showing results 1-2 of 2",
        "**Soup** by ChefCook",
        "**Stew** by ChefCook",
    ]


def test_recipes_pages_are_one_based(client: TestClient) -> None:
    for i in range(7):
        command(client, "add", COOK, name=f"Soup {i}", text="")
    status, content = command(client, "recipes", BAKER, name="soup", page=2)
    assert status == 200
    assert content.splitlines()[0] == "Page 2 of 2, showing results 6-7 of 7"


def test_edit_permissions(client: TestClient) -> None:
    command(client, "add", COOK, name="Soup", text="Boil water.")
    status, _ = command(client, "edit", BAKER, name="Soup", text="Nope.")
    assert status == 403
    status, _ = command(client, "delete", BAKER, name="Soup")
    assert status == 403
    assert command(client, "edit", MOD, name="Soup", text="Boil more water.") == (
        200,
        "Updated recipe `Soup`.",
    )
    assert command(client, "recipe", BAKER, name="Soup")[1].endswith("Boil more water.")
    assert command(client, "delete", COOK, name="Soup") == (
        200,
        "Deleted recipe `Soup`.",
    )


@pytest.mark.parametrize(
    "name,options",
    (
        ("bake", {}),
        ("recipe", {}),
        ("add", {"name": "Soup"}),
        ("recipes", {"page": "two"}),
    ),
)
def test_bad_commands(client: TestClient, name: str, options: dict[str, Any]) -> None:
    status, _ = command(client, name, COOK, **options)
    assert status == 400


def test_malformed_command(client: TestClient) -> None:
    resp = client.post("/commands", json={"command": "count"})
    assert resp.status_code == 400


@pytest.mark.parametrize(
    "author",
    (
        {"username": "cook"},
        {"id": "five", "username": "cook"},
        {"id": "5"},
        "cook",
        None,
    ),
)
def test_malformed_author(client: TestClient, author: Any) -> None:
    assert command(client, "count", author) == (400, "Malformed command.")


@pytest.mark.parametrize("body", (b"not json", b"", b'{"author": '))
def test_body_is_not_json(client: TestClient, body: bytes) -> None:
    resp = client.post(
        "/commands", content=body, headers={"Content-Type": "application/json"}
    )
    assert resp.status_code == 400
    assert resp.json() == {"content": "Malformed command."}


def test_shutdown_survives_bad_gateway_replies(
    cfg: config.Config, fake: FakeGateway, caplog: pytest.LogCaptureFixture
) -> None:
    fake.bad_channels = True
    with TestClient(create_app(cfg, gateway=fake.client())) as client:
        assert command(client, "count", COOK) == (200, "There are 0 recipes.")
    assert fake.sent == []
    assert any("Could not forward" in m for m in caplog.messages)


def test_store_failure_is_reported(
    cfg: config.Config, fake: FakeGateway, tmp_path: Path
) -> None:
    with TestClient(create_app(cfg, gateway=fake.client())) as client:
        with sqlite3.connect(tmp_path / "chef.db") as conn:
            conn.execute("DROP TABLE recipes")
        assert command(client, "count", COOK) == (
            503,
            "Recipes are unavailable right now.",
        )
    assert any("Recipe store unavailable" in content for _, content in fake.sent)
