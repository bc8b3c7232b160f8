"""
Steward Discord Bot - Main Entry Point.

An AI Discord bot that reshapes a server's structure (roles, channels,
permissions, events and more) from natural language requests, using the
GitHub Copilot SDK to turn requests into tool calls.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, Union

import discord
import yaml
from discord import app_commands, Interaction
from discord.ext import commands

from architect import ArchitectSettings
from dispatcher import ToolDispatcher, create_architect_tools
from models import CallContext

DEFAULT_SYSTEM_MESSAGE = (
    "You are Steward, an assistant that manages a Discord server's structure. "
    "Use the provided tools to carry out the user's request. Names may be "
    "partial; tools resolve them. Prefer bulk tools when changing several "
    "objects. Summarize what changed, including any failures, in plain language."
)

RESPONSE_TIMEOUT = 120
DISCORD_MESSAGE_LIMIT = 2000

# ============================================================================
# Configuration Loading
# ============================================================================


def load_config(config_path: str = "config.yml") -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Configuration dictionary.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValueError: If the Discord token is missing.
        yaml.YAMLError: If config file is invalid.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}\n"
            "Please create a config.yml file based on config.yml.example"
        )

    with open(path, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not (config.get("discord") or {}).get("token"):
        raise ValueError("Discord token not found in config.yml")

    return config


# ============================================================================
# Logging Setup
# ============================================================================


def setup_logging(config: dict[str, Any]) -> logging.Logger:
    """
    Set up logging based on configuration.

    Args:
        config: Configuration dictionary; only its `logging` section is read.

    Returns:
        Configured logger instance.
    """
    log_config = config.get("logging") or {}
    log_level = getattr(logging, str(log_config.get("level", "INFO")).upper(), logging.INFO)
    log_file = log_config.get("file", "logs/steward.log")
    log_format = log_config.get(
        "format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    max_size = log_config.get("max_size_mb", 10) * 1024 * 1024
    backup_count = log_config.get("backup_count", 5)

    # Create logs directory if needed
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("steward")
    logger.setLevel(log_level)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(console_handler)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(log_format))
    logger.addHandler(file_handler)

    return logger


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split text into chunks Discord will accept, preferring line breaks."""
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text:
        chunks.append(text)
    return chunks


# ============================================================================
# Bot
# ============================================================================


class StewardBot(commands.Bot):
    """
    The Steward Discord bot.

    Requests arrive through the /steward slash command or by mentioning the
    bot. Each request runs in its own Copilot session whose tools dispatch
    into the guild's ToolDispatcher.
    """

    def __init__(self, config: dict[str, Any]):
        """
        Initialize the Steward bot.

        Args:
            config: Configuration dictionary loaded from config.yml.
        """
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.members = True

        prefix = (config.get("discord") or {}).get("prefix", "!")

        super().__init__(
            command_prefix=prefix,
            intents=intents,
            help_command=None,
        )

        self.config = config
        self.logger = logging.getLogger("steward.bot")
        self.settings = ArchitectSettings.from_config(config)
        self._copilot_client = None
        self._dispatchers: dict[int, ToolDispatcher] = {}

    async def setup_hook(self) -> None:
        """Set up the bot before it starts."""
        self.logger.info("Setting up Steward bot...")

        from copilot import CopilotClient

        try:
            self._copilot_client = CopilotClient()
            await self._copilot_client.start()
            self.logger.info("Copilot SDK client initialized")
        except Exception as e:
            self.logger.error(f"Failed to initialize Copilot client: {e}")
            raise

        try:
            synced = await self.tree.sync()
            self.logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            self.logger.error(f"Failed to sync commands: {e}")

    async def close(self) -> None:
        """Clean up resources when the bot shuts down."""
        self.logger.info("Shutting down Steward bot...")

        if self._copilot_client:
            try:
                await self._copilot_client.stop()
            except Exception as e:
                self.logger.error(f"Error stopping Copilot client: {e}")

        await super().close()

    async def on_ready(self) -> None:
        """Handle bot ready event."""
        self.logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        self.logger.info(f"Connected to {len(self.guilds)} guilds")

        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.listening,
                name="/steward requests",
            )
        )

    def get_dispatcher(self, guild: discord.Guild) -> ToolDispatcher:
        """
        Get or create the ToolDispatcher for a guild.

        Args:
            guild: The Discord guild.

        Returns:
            ToolDispatcher instance for the guild.
        """
        if guild.id not in self._dispatchers:
            self._dispatchers[guild.id] = ToolDispatcher(guild, self.settings)
        return self._dispatchers[guild.id]

    @staticmethod
    def is_authorized(member: Union[discord.Member, discord.User]) -> bool:
        """Only the owner and members with Manage Server may reshape the server."""
        if not isinstance(member, discord.Member):
            return False
        return member.guild.owner_id == member.id or member.guild_permissions.manage_guild

    async def on_message(self, message: discord.Message) -> None:
        """Handle requests addressed to the bot by mention."""
        if message.author.bot or not message.guild or self.user is None:
            return

        if self.user not in message.mentions:
            await self.process_commands(message)
            return

        prompt = message.content.replace(f"<@{self.user.id}>", "").replace(f"<@!{self.user.id}>", "").strip()
        if not prompt:
            return

        if not self.is_authorized(message.author):
            await message.reply(
                "Only the server owner or members with Manage Server can ask me to change the server.",
                mention_author=False,
            )
            return

        self.logger.info(f"Request from {message.author} in {message.guild}: {prompt}")
        context = CallContext(member=message.author, channel=message.channel, message=message)
        async with message.channel.typing():
            reply = await self.run_request(message.guild, prompt, context)
        for chunk in split_message(reply):
            await message.reply(chunk, mention_author=False)

    async def run_request(
        self,
        guild: discord.Guild,
        prompt: str,
        context: Optional[CallContext] = None,
    ) -> str:
        """
        Run one natural language request through a Copilot session.

        Args:
            guild: The guild the request applies to.
            prompt: The user's request.
            context: Who asked, and where.

        Returns:
            The assistant's reply, followed by a list of failed actions if any.
        """
        dispatcher = self.get_dispatcher(guild)
        execution_log: list[tuple[str, bool]] = []
        tools = create_architect_tools(dispatcher, lambda: context, execution_log)

        ai_config = self.config.get("ai") or {}
        model = ai_config.get("model", "gpt-4.1")
        system_message = ai_config.get("system_message") or DEFAULT_SYSTEM_MESSAGE
        streaming = ai_config.get("streaming", True)

        session = await self._copilot_client.create_session({
            "model": model,
            "streaming": streaming,
            "tools": tools,
            "system_message": {"content": system_message},
        })

        response_chunks: list[str] = []
        final_message: dict[str, str] = {}
        done_event = asyncio.Event()

        def on_event(event):
            event_type = event.type.value if hasattr(event.type, "value") else str(event.type)

            if event_type == "assistant.message_delta":
                response_chunks.append(event.data.delta_content or "")
            elif event_type == "assistant.message":
                final_message["content"] = event.data.content or ""
            elif event_type == "tool.execution.start":
                self.logger.debug(f"Tool started: {getattr(event.data, 'name', '?')}")
            elif event_type == "session.idle":
                done_event.set()

        session.on(on_event)

        author = context.member.display_name if context and context.member else "unknown"
        await session.send({
            "prompt": (
                f"User request: {prompt}\n\n"
                f"Server: {guild.name} (ID: {guild.id})\n"
                f"Requesting user: {author}"
            )
        })

        try:
            await asyncio.wait_for(done_event.wait(), timeout=RESPONSE_TIMEOUT)
        except asyncio.TimeoutError:
            self.logger.warning(f"Request in {guild} timed out after {RESPONSE_TIMEOUT}s")
            response_chunks.append("\n\n(Stopped waiting for a response; some changes may still be in progress.)")
        finally:
            try:
                await session.destroy()
            except Exception as e:
                self.logger.debug(f"Error closing session: {e}")

        reply = final_message.get("content") or "".join(response_chunks) or "Done."
        failures = [action for action, success in execution_log if not success]
        if failures:
            reply += "\n\n**Failed actions:**\n" + "\n".join(f"- {f}" for f in failures[:10])
            if len(failures) > 10:
                reply += f"\n- ... and {len(failures) - 10} more"
        return reply


def setup_commands(bot: StewardBot) -> None:
    """
    Set up slash commands for the bot.

    Args:
        bot: The StewardBot instance.
    """

    @bot.tree.command(
        name="steward",
        description="Change your server's structure using natural language",
    )
    @app_commands.describe(
        prompt="Describe what you want to change"
    )
    async def steward_command(
        interaction: Interaction,
        prompt: str,
    ) -> None:
        """Main command for server changes."""
        if not interaction.guild:
            await interaction.response.send_message(
                "This command can only be used in a server.",
                ephemeral=True,
            )
            return

        if not bot.is_authorized(interaction.user):
            await interaction.response.send_message(
                "❌ Only the server owner or members with Manage Server can use this command.",
                ephemeral=True,
            )
            return

        await interaction.response.defer(thinking=True)
        bot.logger.info(f"Request from {interaction.user} in {interaction.guild}: {prompt}")

        context = CallContext(member=interaction.user, channel=interaction.channel)
        try:
            reply = await bot.run_request(interaction.guild, prompt, context)
        except Exception as e:
            bot.logger.exception(f"Request failed: {e}")
            reply = f"❌ Something went wrong: {e}"

        for chunk in split_message(reply):
            await interaction.followup.send(chunk)


# ============================================================================
# Main Entry Point
# ============================================================================


async def main() -> None:
    """Main entry point for the Steward bot."""
    try:
        config = load_config()
    except FileNotFoundError as e:
        print(f"Error: {e}")
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Error parsing config.yml: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    logger = setup_logging(config)
    logger.info("Starting Steward bot...")

    bot = StewardBot(config)
    setup_commands(bot)

    token = config["discord"]["token"]

    try:
        async with bot:
            await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid Discord token. Please check your config.yml")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")


if __name__ == "__main__":
    asyncio.run(main())
