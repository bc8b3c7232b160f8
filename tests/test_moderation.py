from datetime import timedelta

import discord
import pytest

from models import (
    BanMemberParams,
    CallContext,
    CheckPermsParams,
    KickMemberParams,
    SearchMembersParams,
    TimeoutMemberParams,
)


class TestHierarchy:
    async def test_owner(self, architect):
        result = await architect.kick_member(KickMemberParams(member="owner"))
        assert result.error == "Cannot kick the server owner"

    async def test_self(self, architect, guild):
        result = await architect.ban_member(BanMemberParams(member=str(guild.me.id)))
        assert result.error == "Cannot ban myself"
        assert guild.bans == []

    async def test_member_above_bot(self, architect, guild):
        result = await architect.timeout_member(TimeoutMemberParams(member="carol", duration="1h"))

        assert result.error == "Cannot time out Carol: their highest role 'Admin' is at or above mine"
        assert guild.member("carol").timed_out_for is None

    async def test_missing_permission(self, architect, guild):
        guild.me.guild_permissions = discord.Permissions(ban_members=True)
        result = await architect.kick_member(KickMemberParams(member="alice"))
        assert result.error == "Missing permissions: kick_members"

    async def test_unknown_member(self, architect):
        result = await architect.kick_member(KickMemberParams(member="nobody"))
        assert result.error == "No member found matching 'nobody'"


async def test_kick_uses_reason(architect, guild):
    result = await architect.kick_member(KickMemberParams(member="<@{}>".format(guild.member("alice").id), reason="spam"))

    assert result.success
    assert guild.member("alice").kicked_with == "spam"


async def test_ban_clamps_message_days(architect, guild):
    result = await architect.ban_member(BanMemberParams(member="bobby", delete_message_days=10))

    assert result.success
    member, kwargs = guild.bans[0]
    assert member is guild.member("bob")
    assert kwargs["delete_message_seconds"] == 7 * 86400
    assert kwargs["reason"] == "Steward tool call"


class TestTimeout:
    async def test_applies_duration(self, architect, guild):
        result = await architect.timeout_member(TimeoutMemberParams(member="alice", duration="2 hours"))

        assert result.success
        assert result.data["seconds"] == 7200
        assert guild.member("alice").timed_out_for == timedelta(hours=2)

    @pytest.mark.parametrize(
        "duration, error",
        [
            ("soon", "Invalid duration 'soon'. Use formats like '10m', '1h', '2d'"),
            ("30d", "Timeouts cannot be longer than 28 days"),
        ],
    )
    async def test_rejected_durations(self, architect, guild, duration, error):
        result = await architect.timeout_member(TimeoutMemberParams(member="alice", duration=duration))

        assert result.error == error
        assert guild.member("alice").timed_out_for is None


class TestCheckPerms:
    async def test_defaults_to_requester(self, architect, context):
        result = await architect.check_perms(CheckPermsParams(), context)

        assert result.data["member"] == "Alice"
        assert result.data["roles"] == ["Member", "Helper"]
        assert result.data["permissions"] == []
        assert result.data["is_owner"] is False

    async def test_named_member(self, architect):
        result = await architect.check_perms(CheckPermsParams(member="carol"))

        assert result.data["is_admin"] is True
        assert result.message.endswith("(administrator)")

    async def test_owner_flag(self, architect, guild):
        result = await architect.check_perms(CheckPermsParams(), CallContext(member=guild.member("owner")))
        assert result.data["is_owner"] is True

    async def test_no_member(self, architect):
        result = await architect.check_perms(CheckPermsParams())
        assert result.error == "No member specified"


async def test_search_members_clamps_limit(architect, guild):
    result = await architect.search_members(SearchMembersParams(query="z", limit=100))

    assert guild.calls_to("query_members") == [{"query": "z", "limit": 25}]
    assert [m["username"] for m in result.data["members"]] == ["zed"]
