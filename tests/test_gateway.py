import httpx
import pytest

from tests.fakes import FakeGateway, member_payload


@pytest.fixture
def fake() -> FakeGateway:
    return FakeGateway(
        {1: [member_payload(5, "cook", ["Moderator"]), member_payload(6, "baker")]}
    )


@pytest.mark.asyncio
async def test_get_member(fake: FakeGateway) -> None:
    gateway = fake.client()
    member = await gateway.get_member(1, 5)
    assert member is not None
    assert member.id == 5
    assert str(member) == "cook"
    assert member.roles == ("Moderator",)
    await gateway.close()


@pytest.mark.asyncio
async def test_get_missing_member(fake: FakeGateway) -> None:
    gateway = fake.client()
    assert await gateway.get_member(1, 7) is None
    assert await gateway.get_member(2, 5) is None
    await gateway.close()


@pytest.mark.asyncio
async def test_fetch_roster(fake: FakeGateway) -> None:
    gateway = fake.client()
    roster = await gateway.fetch_roster(1)
    assert len(roster) == 2
    baker = roster.get_member(6)
    assert baker is not None
    assert str(baker) == "baker"
    assert roster.get_member(7) is None
    await gateway.close()


@pytest.mark.parametrize("members", (0, 1, 2, 3, 5))
@pytest.mark.asyncio
async def test_fetch_roster_follows_pages(
    monkeypatch: pytest.MonkeyPatch, members: int
) -> None:
    monkeypatch.setattr("gateway.MAX_MEMBERS", 2)
    fake = FakeGateway(
        {1: [member_payload(10 + i, f"member{i}") for i in reversed(range(members))]}
    )
    gateway = fake.client()
    roster = await gateway.fetch_roster(1)
    assert len(roster) == members
    for i in range(members):
        member = roster.get_member(10 + i)
        assert member is not None
        assert str(member) == f"member{i}"
    assert len(fake.roster_requests) == members // 2 + 1
    # The last request starts after the final full page.
    full_pages = members // 2
    assert fake.roster_requests[-1]["after"] == str(
        10 + 2 * full_pages - 1 if full_pages else 0
    )
    await gateway.close()


@pytest.mark.asyncio
async def test_send_direct_message(fake: FakeGateway) -> None:
    gateway = fake.client()
    await gateway.send_direct_message(5, "hello")
    assert fake.sent == [("dm-5", "hello")]
    await gateway.close()


@pytest.mark.asyncio
async def test_send_direct_message_failure(fake: FakeGateway) -> None:
    fake.fail_messages = True
    gateway = fake.client()
    with pytest.raises(httpx.HTTPStatusError):
        await gateway.send_direct_message(5, "hello")
    await gateway.close()
