"""
ParleyBot: discord.py gateway.

Maps Discord messages onto engine turns:
- Guild channels are group chats keyed by channel id; DMs are private chats
- Attachments are downloaded and passed as media
- SuppressedReply sends nothing; CredentialExhausted sends a short apology
- [MEDIA_SEND:...] tags are stripped and the media attached as a file or link

All async resources (database, HTTP client) are managed via AsyncExitStack so
they're cleaned up when the bot shuts down.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from pathlib import Path

import discord
from discord.ext import commands

from parley.components import ParleyComponents
from parley.config.logging import get_logger
from parley.config.settings import Settings
from parley.gateway.media import prepare_reply
from parley.llm.engine import ConversationEngine
from parley.llm.models import (
    CredentialExhausted,
    MediaAttachment,
    SuppressedReply,
    TurnMetadata,
    TurnRequest,
)

logger = get_logger(__name__)

PLATFORM = "discord"
APOLOGY = "Sorry, I can't answer right now. Please try again in a moment."

# Discord rejects messages longer than this
MAX_MESSAGE_LENGTH = 2000


def build_turn_request(message: discord.Message, tenant_id: str, media: list[MediaAttachment]) -> TurnRequest:
    """Translate a Discord message into a TurnRequest."""
    is_group = message.guild is not None
    channel_id = str(message.channel.id)
    return TurnRequest(
        tenant_id=tenant_id,
        conversation_id=f"{PLATFORM}:{channel_id}",
        prompt=message.clean_content,
        media=media,
        metadata=TurnMetadata(
            platform=PLATFORM,
            chat_type="group" if is_group else "private",
            group_id=channel_id if is_group else None,
            sender_id=str(message.author.id),
            sender_name=message.author.display_name,
        ),
    )


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Split text into Discord-sized chunks, preferring line breaks."""
    chunks = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text:
        chunks.append(text)
    return chunks


class ParleyBot(commands.Bot):
    """
    Discord gateway for the conversation engine.

    Args:
        settings: Full application settings (bot token, tenant, database, LLM config)
    """

    def __init__(self, settings: Settings) -> None:
        intents = discord.Intents.default()
        intents.message_content = True  # Required to read message text
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self.settings = settings
        self.engine: ConversationEngine | None = None
        self._discovery_task: asyncio.Task | None = None
        self._exit_stack = AsyncExitStack()

    async def setup_hook(self) -> None:
        """Initialize the engine stack and start background model discovery."""
        factory = ParleyComponents(self.settings)
        db = await self._exit_stack.enter_async_context(factory.create_database())
        await db.create_all()
        client = await self._exit_stack.enter_async_context(factory.create_http_client())

        self.engine = factory.create_engine(db, client)
        discovery = factory.create_discovery(db, client)
        self._discovery_task = asyncio.create_task(discovery.run_forever())
        logger.info(f"Engine ready for tenant {self.settings.bot.tenant_id}")

    async def on_ready(self) -> None:
        """Called when the bot successfully connects to Discord."""
        logger.info(f"Logged in as {self.user} (id: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")

    async def close(self) -> None:
        """Graceful shutdown: stop discovery and clean up resources before disconnecting."""
        logger.info("Shutting down Parley...")
        if self._discovery_task is not None:
            self._discovery_task.cancel()
            try:
                await self._discovery_task
            except asyncio.CancelledError:
                pass
        await self._exit_stack.aclose()
        await super().close()

    def is_allowed_channel(self, channel_id: int) -> bool:
        """
        Return True if the bot should respond in this channel.

        If `allowed_channel_ids` is empty (the default), the bot responds everywhere.
        If it's non-empty, the bot only responds in the listed channel IDs.
        """
        allowed = self.settings.bot.allowed_channel_ids
        return not allowed or channel_id in allowed

    async def _read_attachments(self, message: discord.Message) -> list[MediaAttachment]:
        media = []
        for attachment in message.attachments:
            if not attachment.content_type:
                continue
            try:
                data = await attachment.read()
            except discord.HTTPException as e:
                logger.warning(f"Could not read attachment {attachment.filename}: {e}")
                continue
            media.append(MediaAttachment(data=data, mime_type=attachment.content_type))
        return media

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or self.engine is None:
            return
        if not self.is_allowed_channel(message.channel.id):
            return

        media = await self._read_attachments(message)
        if not message.clean_content.strip() and not media:
            return

        request = build_turn_request(message, self.settings.bot.tenant_id, media)
        try:
            async with message.channel.typing():
                result = await self.engine.run_turn(request)
        except SuppressedReply:
            logger.debug(f"Staying silent in {request.conversation_id}")
            return
        except CredentialExhausted as e:
            logger.error(f"Turn failed for {request.conversation_id}: {e}")
            await message.reply(APOLOGY)
            return

        await self.deliver(message, result.text)

    async def deliver(self, message: discord.Message, text: str) -> None:
        """Send a reply, attaching media when the reply carries a media tag."""
        reply = prepare_reply(
            text,
            downloads_dir=self.settings.tools.downloads_dir,
            max_age_seconds=self.settings.bot.media_max_age_seconds,
        )
        chunks = split_message(reply.text)

        if reply.media is None:
            for chunk in chunks:
                await message.reply(chunk)
            return

        if reply.media.is_remote:
            chunks.append(reply.media.location)
            for chunk in chunks:
                await message.reply(chunk)
            return

        for chunk in chunks[:-1]:
            await message.reply(chunk)
        await message.reply(chunks[-1], file=discord.File(Path(reply.media.location)))
