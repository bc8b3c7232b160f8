import discord
import pytest

from architect import ArchitectSettings, DiscordArchitect, LIST_CHANNELS_PER_CATEGORY
from models import (
    AssignRoleParams,
    ConfigureChannelPermissionsParams,
    CreateForumChannelParams,
    CreateRoleParams,
    CreateStageChannelParams,
    CreateTextChannelParams,
    CreateVoiceChannelParams,
    DeleteChannelParams,
    DeleteChannelsBulkParams,
    DeleteRoleParams,
    DeleteRolesBulkParams,
    EditChannelParams,
    EditRoleParams,
    EditServerParams,
    GetServerInfoParams,
    ListChannelsParams,
    ListRolePermissionsParams,
    ListRolesParams,
    MoveChannelParams,
)
from tests.fakes import http_error


def test_settings_from_config_ignores_unknown_keys():
    settings = ArchitectSettings.from_config(
        {"architect": {"settle_delay": 2, "timezone": "Europe/Paris", "colour": "red"}}
    )
    assert settings.settle_delay == 2
    assert settings.timezone == "Europe/Paris"
    assert settings.member_search_limit == 10


def test_settings_defaults_without_section():
    assert ArchitectSettings.from_config({}) == ArchitectSettings()


class TestChannels:
    async def test_missing_category_falls_back_to_busiest(self, architect, guild):
        result = await architect.create_text_channel(
            CreateTextChannelParams(name="announcements", category="Text Channels")
        )

        assert result.success
        assert result.data["category"] == "General"
        assert guild.channel("announcements").category_id == guild.channel("General").id

    async def test_existing_channel_is_reported(self, architect, guild):
        result = await architect.create_text_channel(
            CreateTextChannelParams(name="Memes", category="General")
        )

        assert result.success
        assert result.data["already_existed"] is True
        assert guild.calls_to("create_text_channel") == []

    async def test_private_channel_with_access(self, architect, guild):
        result = await architect.create_text_channel(
            CreateTextChannelParams(name="staff", private=True, role_access=["Moderator"], topic="Staff only")
        )

        assert result.success
        assert "[private]" in result.message
        channel = guild.channel("staff")
        assert channel.topic == "Staff only"
        assert channel.overwrites[guild.default_role].view_channel is False
        assert channel.overwrites[guild.role("Moderator")].send_messages is True
        subjects = {entry["subject"] for entry in result.data["overwrites"]}
        assert subjects == {"@everyone", "steward", "Moderator"}

    async def test_voice_user_limit_clamped(self, architect, guild):
        result = await architect.create_voice_channel(CreateVoiceChannelParams(name="Squad", user_limit=150))

        assert result.success
        assert guild.calls_to("create_voice_channel")[0]["user_limit"] == 99
        assert result.data["category"] == "Voice Channels"

    async def test_missing_permission(self, guild):
        guild.me.guild_permissions = discord.Permissions.none()
        architect = DiscordArchitect(guild, ArchitectSettings(settle_delay=0))

        result = await architect.create_text_channel(CreateTextChannelParams(name="nope"))

        assert not result.success
        assert result.error == "Missing permissions: manage_channels"
        assert architect.get_execution_log()[-1][1] is False

    async def test_forbidden_is_mapped(self, architect, guild, monkeypatch):
        async def forbidden(**kwargs):
            raise http_error(discord.Forbidden, 403, "Missing Permissions")

        monkeypatch.setattr(guild, "create_category", forbidden)
        result = await architect._create_channel("category", CreateTextChannelParams(name="x"), None)

        assert result.error == "Bot lacks permission to create categories"

    async def test_delete_not_found_suggests(self, architect):
        result = await architect.delete_channel(DeleteChannelParams(name="newsroom", type="text"))

        assert not result.success
        assert result.error == "No text channel found matching 'newsroom'"
        assert result.data["similar_channels"] == ["📢-news"]

    async def test_delete_by_partial_name(self, architect, guild):
        news = guild.channel("📢-news")
        result = await architect.delete_channel(DeleteChannelParams(name="news"))

        assert result.success
        assert result.data["deleted"] == {"id": news.id, "name": "📢-news"}
        assert news not in guild.channels

    async def test_edit_ignores_settings_for_other_kinds(self, architect, guild):
        result = await architect.edit_channel(
            EditChannelParams(name="memes", slowmode=99999, bitrate=64000, new_name="dank-memes")
        )

        assert result.success
        assert result.data["changes"] == ["name", "slowmode_delay"]
        assert result.data["ignored"] == ["bitrate"]
        assert guild.channel("dank-memes").slowmode_delay == 21600

    async def test_edit_voice_bitrate_clamped(self, architect, guild):
        result = await architect.edit_channel(EditChannelParams(name="Lounge", type="voice", bitrate=1))

        assert result.success
        assert guild.channel("Lounge").bitrate == 8000

    async def test_edit_without_changes(self, architect):
        result = await architect.edit_channel(EditChannelParams(name="Lounge", topic="ignored"))

        assert not result.success
        assert result.error == "No changes specified"
        assert result.data["ignored"] == ["topic"]

    async def test_edit_remove_category(self, architect, guild):
        result = await architect.edit_channel(EditChannelParams(name="rules", category=""))

        assert result.success
        assert guild.channel("rules").category_id is None

    async def test_move(self, architect, guild):
        result = await architect.move_channel(MoveChannelParams(name="memes", category="info"))

        assert result.success
        assert guild.channel("memes").category_id == guild.channel("Information").id

    async def test_move_already_there(self, architect, guild):
        result = await architect.move_channel(MoveChannelParams(name="memes", category="General"))

        assert result.success
        assert result.data["unchanged"] is True
        assert guild.channel("memes").edits == []

    async def test_categories_cannot_move(self, architect):
        result = await architect.move_channel(MoveChannelParams(name="Information", category="General"))
        assert not result.success

    async def test_list_truncates_large_categories(self, architect, guild):
        crowded = guild.add_channel("Crowded", "category", position=5)
        for i in range(LIST_CHANNELS_PER_CATEGORY + 5):
            guild.add_channel(f"room-{i}", category=crowded, position=i)

        result = await architect.list_channels(ListChannelsParams(type="text"))

        group = next(g for g in result.data["groups"] if g["category"] == "Crowded")
        assert len(group["channels"]) == LIST_CHANNELS_PER_CATEGORY
        assert group["truncated"] == 5
        assert "... and 5 more" in result.message

    async def test_list_puts_uncategorized_first(self, architect):
        result = await architect.list_channels(ListChannelsParams())

        groups = result.data["groups"]
        assert groups[0]["category"] == "No category"
        assert [c["name"] for c in groups[0]["channels"]] == ["welcome"]
        assert [g["category"] for g in groups[1:]] == ["Information", "General", "Voice Channels"]

    async def test_bulk_delete_mixed(self, architect, guild):
        result = await architect.delete_channels_bulk(
            DeleteChannelsBulkParams(channels=[{"name": "memes"}, {"name": "nowhere"}])
        )

        assert result.summary == "Deleted 1 channel, 1 failed"
        assert result.failed[0].input.name == "nowhere"

    async def test_stage_channel_takes_voice_access(self, architect, guild):
        result = await architect.create_stage_channel(
            CreateStageChannelParams(name="Podcast", role_access=["Helper"], user_limit=500)
        )

        assert result.success
        assert result.data["category"] == "Voice Channels"
        call = guild.calls_to("create_stage_channel")[0]
        assert call["user_limit"] == 500
        helper = call["overwrites"][guild.role("Helper")]
        assert helper.connect is True and helper.speak is True
        assert guild.channel("Podcast").type == discord.ChannelType.stage_voice

    async def test_existing_stage_is_reported(self, architect, guild):
        result = await architect.create_stage_channel(CreateStageChannelParams(name="town hall"))

        assert result.data["already_existed"] is True
        assert guild.calls_to("create_stage_channel") == []

    async def test_forum_channel_in_requested_category(self, architect, guild):
        result = await architect.create_forum_channel(
            CreateForumChannelParams(name="help", category="info", topic="Ask here", read_only=True)
        )

        assert result.success
        assert result.message == "Created forum channel 'help' in 'Information' [read-only]"
        call = guild.calls_to("create_forum")[0]
        assert call["topic"] == "Ask here"
        assert call["overwrites"][guild.default_role].send_messages is False
        assert architect.resolver.kind_of(guild.channel("help")) == "forum"


class TestRoles:
    async def test_create_with_warnings(self, architect, guild):
        result = await architect.create_role(
            CreateRoleParams(name="Artist", color="sparkly", permissions=["SendMessages", "fly"])
        )

        assert result.success
        assert result.data["permissions"] == ["send_messages"]
        assert len(result.data["warnings"]) == 2
        call = guild.calls_to("create_role")[0]
        assert call["colour"] == discord.Colour.default()
        assert call["permissions"].send_messages is True

    async def test_create_existing(self, architect, guild):
        result = await architect.create_role(CreateRoleParams(name="helper"))

        assert result.data["already_existed"] is True
        assert guild.calls_to("create_role") == []

    async def test_delete_not_found_with_similar(self, architect):
        result = await architect.delete_role(DeleteRoleParams(name="Officers"))

        assert not result.success
        assert result.data["similar_roles"] == ["Officer"]
        assert result.data["hint"] == "Did you mean: 'Officer'?"
        assert result.data["available_roles"][0] == "Admin"

    async def test_delete_not_found_lists_available(self, architect):
        result = await architect.delete_role(DeleteRoleParams(name="Ghost"))

        assert "similar_roles" not in result.data
        assert result.data["hint"].startswith("Available roles: 'Admin', 'Steward'")

    async def test_delete_above_bot_is_refused(self, architect, guild):
        admin = guild.role("Admin")
        result = await architect.delete_role(DeleteRoleParams(name="Admin"))

        assert not result.success
        assert "at or above my highest role" in result.error
        assert admin.deleted is False

    async def test_delete_managed_role_is_refused(self, architect):
        result = await architect.delete_role(DeleteRoleParams(name="Steward"))
        assert "managed by an integration" in result.error

    async def test_unsafe_ops_skip_hierarchy_check(self, guild):
        architect = DiscordArchitect(guild, ArchitectSettings(settle_delay=0, allow_unsafe_role_ops=True))
        result = await architect.delete_role(DeleteRoleParams(name="Admin"))
        assert result.success

    async def test_cannot_delete_everyone(self, architect):
        result = await architect.delete_role(DeleteRoleParams(name="@everyone"))
        assert not result.success

    async def test_bulk_delete_reports_remaining(self, architect, guild):
        result = await architect.delete_roles_bulk(DeleteRolesBulkParams(roles=["Officer", "Helper", "Ghost"]))

        assert len(result.succeeded) == 2
        assert len(result.failed) == 1
        assert result.summary == "Deleted 2 roles, 1 failed"
        remaining = result.data["remaining_roles"]
        assert remaining == ["Admin", "Steward", "Moderator", "Member"]
        assert result.data["hint"] == (
            "Not found: Ghost. Roles that exist: Admin, Steward, Moderator, Member"
        )
        # still cached until the gateway catches up
        assert "Officer" in [r.name for r in guild.roles]

    async def test_bulk_delete_remaining_when_refresh_fails(self, architect, guild, monkeypatch):
        async def failing_fetch():
            raise http_error(discord.HTTPException, 503, "Service Unavailable")

        monkeypatch.setattr(guild, "fetch_roles", failing_fetch)
        result = await architect.delete_roles_bulk(DeleteRolesBulkParams(roles=["Officer", "Ghost"]))

        assert result.data["remaining_roles"] == ["Admin", "Steward", "Moderator", "Helper", "Member"]

    async def test_edit_invalid_color(self, architect):
        result = await architect.edit_role(EditRoleParams(name="Helper", color="sparkly"))
        assert result.error == "Unrecognized color 'sparkly'"

    async def test_edit_permissions(self, architect, guild):
        helper = guild.role("Helper")
        helper.permissions = discord.Permissions(send_messages=True, kick_members=True)

        result = await architect.edit_role(
            EditRoleParams(name="Helper", add_permissions=["manage messages"], remove_permissions=["kick_members"])
        )

        assert result.success
        assert helper.permissions.manage_messages is True
        assert helper.permissions.kick_members is False
        assert helper.permissions.send_messages is True

    async def test_assign_and_noops(self, architect, guild):
        alice = guild.member("alice")

        added = await architect.assign_role(AssignRoleParams(role_name="Officer", member="alice"))
        again = await architect.assign_role(AssignRoleParams(role_name="Officer", member="Alice"))
        removed = await architect.assign_role(
            AssignRoleParams(role_name="Moderator", member="alice", action="remove")
        )

        assert added.success and guild.role("Officer") in alice.roles
        assert again.data["unchanged"] is True
        assert removed.data["unchanged"] is True

    async def test_assign_unknown_member(self, architect):
        result = await architect.assign_role(AssignRoleParams(role_name="Officer", member="nobody"))
        assert result.error == "No member found matching 'nobody'"

    async def test_list_roles(self, architect):
        result = await architect.list_roles(ListRolesParams(include_permissions=True))

        roles = result.data["roles"]
        assert roles[0]["name"] == "Admin"
        assert roles[0]["permissions"] == ["administrator"]
        assert all(r["name"] != "@everyone" for r in roles)

    async def test_role_permissions_grouped(self, architect, guild):
        guild.role("Moderator").permissions = discord.Permissions(kick_members=True, move_members=True)

        result = await architect.list_role_permissions(ListRolePermissionsParams(role="mod"))

        (moderator,) = result.data["roles"]
        assert moderator["permissions"] == {"moderation": ["kick_members"], "voice": ["move_members"]}
        assert result.message == "Permissions of 1 role:\nModerator: kick_members, move_members"

    async def test_all_role_permissions(self, architect):
        result = await architect.list_role_permissions(ListRolePermissionsParams())

        roles = result.data["roles"]
        assert [r["name"] for r in roles][:2] == ["Admin", "Steward"]
        assert roles[0]["administrator"] is True
        assert "Admin: all permissions (administrator)" in result.message
        assert "Member: no notable permissions" in result.message

    async def test_role_permissions_unknown_role(self, architect):
        result = await architect.list_role_permissions(ListRolePermissionsParams(role="Ghost"))
        assert result.error == "No role found matching 'Ghost'"


class TestPermissions:
    async def test_read_only_channel(self, architect, guild):
        result = await architect.configure_channel_permissions(
            ConfigureChannelPermissionsParams(channel_name="rules", read_only=True, read_only_except=["Moderator"])
        )

        rules = guild.channel("rules")
        assert result.success
        assert rules.overwrites[guild.default_role].send_messages is False
        assert rules.overwrites[guild.role("Moderator")].send_messages is True

    async def test_existing_overwrite_is_amended(self, architect, guild):
        rules = guild.channel("rules")
        rules.overwrites[guild.default_role] = discord.PermissionOverwrite(add_reactions=False)

        await architect.configure_channel_permissions(
            ConfigureChannelPermissionsParams(channel_name="rules", private=False)
        )

        everyone = rules.overwrites[guild.default_role]
        assert everyone.view_channel is True
        assert everyone.add_reactions is False

    async def test_sync_with_category(self, architect, guild):
        result = await architect.configure_channel_permissions(
            ConfigureChannelPermissionsParams(channel_name="memes", sync_with_category=True)
        )

        assert result.data["synced_with"] == "General"
        assert guild.channel("memes").edits == [{"sync_permissions": True}]

    async def test_sync_without_parent(self, architect):
        result = await architect.configure_channel_permissions(
            ConfigureChannelPermissionsParams(channel_name="welcome", sync_with_category=True)
        )
        assert not result.success

    async def test_nothing_to_change(self, architect):
        result = await architect.configure_channel_permissions(
            ConfigureChannelPermissionsParams(channel_name="welcome")
        )
        assert result.error == "No permission changes specified"


class TestServer:
    async def test_info(self, architect):
        result = await architect.get_server_info(GetServerInfoParams())

        assert result.success
        assert len(result.data["categories"]) == 3
        assert len(result.data["text_channels"]) == 6
        assert len(result.data["voice_channels"]) == 3
        general = next(c for c in result.data["categories"] if c["name"] == "General")
        assert general["children"] == ["general-chat", "memes", "off-topic"]

    async def test_edit_nothing(self, architect):
        result = await architect.edit_server(EditServerParams())
        assert result.error == "No valid settings to modify"

    async def test_edit_name_and_level(self, architect, guild):
        result = await architect.edit_server(EditServerParams(name="New Name", verification_level="high"))

        assert result.success
        assert guild.edits == [{"name": "New Name", "verification_level": discord.VerificationLevel.high}]

    async def test_icon_download_failure(self, architect, monkeypatch):
        async def no_image(url, max_bytes=None):
            return None, "Failed to download image: HTTP 404"

        monkeypatch.setattr(architect, "_download_image", no_image)
        result = await architect.edit_server(EditServerParams(icon_url="https://example.com/x.png"))
        assert result.error == "Failed to download image: HTTP 404"


@pytest.mark.parametrize("kind", ["category", "text", "voice"])
async def test_execution_log_records_each_action(architect, kind):
    await architect._create_channel(kind, CreateTextChannelParams(name=f"log-{kind}"), None)
    log = architect.get_execution_log()
    assert len(log) == 1 and log[0][1] is True
    assert architect.get_execution_log() == []
