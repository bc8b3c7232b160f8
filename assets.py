"""
Custom emojis, stickers and webhooks.

Mixed into DiscordArchitect. Image URLs are downloaded with aiohttp before
upload; a failed download fails only the item it belongs to.
"""

from __future__ import annotations

import io
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import discord
from discord import HTTPException

from models import (
    BulkResult,
    CreateEmojiParams,
    CreateEmojisBulkParams,
    CreateStickerParams,
    CreateStickersBulkParams,
    CreateWebhookParams,
    CreateWebhooksBulkParams,
    DeleteEmojiParams,
    DeleteEmojisBulkParams,
    DeleteStickerParams,
    DeleteStickersBulkParams,
    DeleteWebhookParams,
    DeleteWebhooksBulkParams,
    EmptyParams,
    ListWebhooksParams,
    ToolResult,
)
from resolver import match_by_name, similar_names

logger = logging.getLogger("steward.architect")

STICKER_NAME_LENGTH = (2, 30)
EMOJI_MAX_BYTES = 256 * 1024
STICKER_MAX_BYTES = 512 * 1024


class AssetsMixin:
    """Emoji, sticker and webhook handlers for DiscordArchitect."""

    # ========================================================================
    # Emojis
    # ========================================================================

    async def create_emoji(self, params: CreateEmojiParams) -> ToolResult:
        action = f"Creating emoji: {params.name}"

        has_perms, error = self._check_permissions("manage_emojis")
        if not has_perms:
            return self._fail(action, error)

        image, download_error = await self._download_image(params.image_url, EMOJI_MAX_BYTES)
        if image is None:
            return self._fail(action, download_error)

        try:
            emoji = await self.guild.create_custom_emoji(
                name=params.name, image=image, reason=self.reason
            )
        except HTTPException as e:
            return self._api_failure(action, e, "create emojis")

        msg = f"Created emoji :{emoji.name}:"
        self._log_action(msg, True)
        return ToolResult.ok(msg, emoji_id=emoji.id, emoji_name=emoji.name, usage=str(emoji))

    async def delete_emoji(self, params: DeleteEmojiParams) -> ToolResult:
        action = f"Deleting emoji: {params.emoji_name}"

        has_perms, error = self._check_permissions("manage_emojis")
        if not has_perms:
            return self._fail(action, error)

        name = params.emoji_name.strip(":")
        emoji = match_by_name(self.guild.emojis, name)
        if emoji is None:
            return self._fail(
                action,
                f"Could not find emoji '{params.emoji_name}'",
                similar_emojis=similar_names([e.name for e in self.guild.emojis], name),
            )

        try:
            await emoji.delete(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "delete this emoji")

        msg = f"Deleted emoji :{emoji.name}:"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": emoji.id, "name": emoji.name})

    async def list_emojis(self, params: EmptyParams) -> ToolResult:
        emojis = [
            {"name": e.name, "id": e.id, "animated": e.animated, "usage": str(e)}
            for e in self.guild.emojis
        ]
        self._log_action(f"Listed {len(emojis)} emojis", True)
        return ToolResult.ok(
            f"{len(emojis)} custom emojis (limit {self.guild.emoji_limit})",
            emojis=emojis,
        )

    async def create_emojis_bulk(self, params: CreateEmojisBulkParams) -> BulkResult:
        return await self.executor.run(params.emojis, self.create_emoji, "Created", "emoji")

    async def delete_emojis_bulk(self, params: DeleteEmojisBulkParams) -> BulkResult:
        return await self.executor.run(
            [DeleteEmojiParams(emoji_name=name) for name in params.emoji_names],
            self.delete_emoji,
            "Deleted",
            "emoji",
        )

    # ========================================================================
    # Stickers
    # ========================================================================

    async def create_sticker(self, params: CreateStickerParams) -> ToolResult:
        action = f"Creating sticker: {params.name}"

        low, high = STICKER_NAME_LENGTH
        if not low <= len(params.name) <= high:
            return self._fail(action, f"Sticker name must be between {low} and {high} characters")

        has_perms, error = self._check_permissions("manage_emojis")
        if not has_perms:
            return self._fail(action, error)

        data, download_error = await self._download_image(params.file_url, STICKER_MAX_BYTES)
        if data is None:
            return self._fail(action, download_error)

        filename = urlparse(params.file_url).path.rsplit("/", 1)[-1] or "sticker.png"
        try:
            sticker = await self.guild.create_sticker(
                name=params.name,
                description=params.description or "",
                emoji=params.tags,
                file=discord.File(io.BytesIO(data), filename=filename),
                reason=self.reason,
            )
        except HTTPException as e:
            return self._api_failure(action, e, "create stickers")

        msg = f"Created sticker '{sticker.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, sticker_id=sticker.id, sticker_name=sticker.name)

    async def delete_sticker(self, params: DeleteStickerParams) -> ToolResult:
        action = f"Deleting sticker: {params.sticker_name}"

        has_perms, error = self._check_permissions("manage_emojis")
        if not has_perms:
            return self._fail(action, error)

        sticker = match_by_name(self.guild.stickers, params.sticker_name)
        if sticker is None:
            return self._fail(
                action,
                f"Could not find sticker '{params.sticker_name}'",
                available_stickers=[s.name for s in self.guild.stickers],
            )

        try:
            await sticker.delete(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "delete this sticker")

        msg = f"Deleted sticker '{sticker.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": sticker.id, "name": sticker.name})

    async def list_stickers(self, params: EmptyParams) -> ToolResult:
        stickers = [
            {"name": s.name, "id": s.id, "description": s.description, "tags": s.emoji}
            for s in self.guild.stickers
        ]
        self._log_action(f"Listed {len(stickers)} stickers", True)
        return ToolResult.ok(
            f"{len(stickers)} stickers (limit {self.guild.sticker_limit})",
            stickers=stickers,
        )

    async def create_stickers_bulk(self, params: CreateStickersBulkParams) -> BulkResult:
        return await self.executor.run(params.stickers, self.create_sticker, "Created", "sticker")

    async def delete_stickers_bulk(self, params: DeleteStickersBulkParams) -> BulkResult:
        return await self.executor.run(
            [DeleteStickerParams(sticker_name=name) for name in params.sticker_names],
            self.delete_sticker,
            "Deleted",
            "sticker",
        )

    # ========================================================================
    # Webhooks
    # ========================================================================

    async def _fetch_webhooks(self, channel_name: Optional[str]) -> tuple[list[Any], Optional[str]]:
        """Webhooks of one text channel, or of the whole guild."""
        if channel_name:
            channel = self.resolver.resolve(channel_name, "text")
            if channel is None:
                return [], f"Could not find channel '{channel_name}'"
            return await channel.webhooks(), None
        return await self.guild.webhooks(), None

    async def create_webhook(self, params: CreateWebhookParams) -> ToolResult:
        action = f"Creating webhook: {params.name}"

        has_perms, error = self._check_permissions("manage_webhooks")
        if not has_perms:
            return self._fail(action, error)

        channel = self.resolver.resolve(params.channel, "text")
        if channel is None:
            return self._channel_not_found(action, params.channel, "text")

        avatar = None
        if params.avatar_url:
            avatar, download_error = await self._download_image(params.avatar_url)
            if avatar is None:
                return self._fail(action, download_error)

        try:
            webhook = await channel.create_webhook(name=params.name, avatar=avatar, reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "create webhooks")

        msg = f"Created webhook '{webhook.name}' in #{channel.name}"
        self._log_action(msg, True)
        return ToolResult.ok(msg, webhook_id=webhook.id, webhook_name=webhook.name, channel=channel.name)

    async def delete_webhook(self, params: DeleteWebhookParams) -> ToolResult:
        action = f"Deleting webhook: {params.webhook_name}"

        has_perms, error = self._check_permissions("manage_webhooks")
        if not has_perms:
            return self._fail(action, error)

        try:
            webhooks, lookup_error = await self._fetch_webhooks(params.channel)
        except HTTPException as e:
            return self._api_failure(action, e, "read webhooks")
        if lookup_error:
            return self._fail(action, lookup_error)

        webhook = match_by_name(webhooks, params.webhook_name)
        if webhook is None:
            return self._fail(
                action,
                f"Could not find webhook '{params.webhook_name}'",
                available_webhooks=[w.name for w in webhooks],
            )

        try:
            await webhook.delete(reason=self.reason)
        except HTTPException as e:
            return self._api_failure(action, e, "delete this webhook")

        msg = f"Deleted webhook '{webhook.name}'"
        self._log_action(msg, True)
        return ToolResult.ok(msg, deleted={"id": webhook.id, "name": webhook.name})

    async def list_webhooks(self, params: ListWebhooksParams) -> ToolResult:
        action = "Listing webhooks"

        has_perms, error = self._check_permissions("manage_webhooks")
        if not has_perms:
            return self._fail(action, error)

        try:
            webhooks, lookup_error = await self._fetch_webhooks(params.channel)
        except HTTPException as e:
            return self._api_failure(action, e, "read webhooks")
        if lookup_error:
            return self._fail(action, lookup_error)

        listed = [
            {
                "name": w.name,
                "id": w.id,
                "channel": w.channel.name if w.channel is not None else None,
            }
            for w in webhooks
        ]
        self._log_action(f"Listed {len(listed)} webhooks", True)
        return ToolResult.ok(f"{len(listed)} webhooks", webhooks=listed)

    async def create_webhooks_bulk(self, params: CreateWebhooksBulkParams) -> BulkResult:
        return await self.executor.run(params.webhooks, self.create_webhook, "Created", "webhook")

    async def delete_webhooks_bulk(self, params: DeleteWebhooksBulkParams) -> BulkResult:
        return await self.executor.run(
            [DeleteWebhookParams(webhook_name=name) for name in params.webhook_names],
            self.delete_webhook,
            "Deleted",
            "webhook",
        )
