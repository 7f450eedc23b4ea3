"""Rendering of countdown messages and access to the channels they live in."""
import abc
import logging
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import discord
from redbot.core.bot import Red

from .store import CountdownRecord
from .timing import format_instant, format_remaining, is_expired

log = logging.getLogger("red.warranty")

ACTIVE_COLOR = 0x2E7D32
EXPIRED_COLOR = 0xE53935


def build_countdown_embed(
    record: CountdownRecord, user_label: str, now: datetime, tz: ZoneInfo
) -> discord.Embed:
    """Build the status embed shared by the commands and the updater loop."""
    expired = is_expired(now, record.end)
    embed = discord.Embed(
        title="Warranty Countdown",
        description=f"Tracking warranty for **{user_label}**",
        color=EXPIRED_COLOR if expired else ACTIVE_COLOR,
        timestamp=now,
    )
    embed.add_field(name="Start", value=format_instant(record.start, tz), inline=True)
    embed.add_field(name="End", value=format_instant(record.end, tz), inline=True)
    embed.add_field(name="Duration", value=f"{record.duration_days} days", inline=True)
    embed.add_field(name="Time Left", value=format_remaining(now, record.end, tz), inline=True)
    return embed


class DisplaySurface(abc.ABC):
    """Where countdown messages are posted and edited.

    Implementations never raise for missing or forbidden targets: fetches
    return None, ``send`` returns None and ``edit`` returns False.
    """

    @abc.abstractmethod
    async def fetch_channel(self, channel_id: int) -> Optional[discord.abc.Messageable]:
        ...

    @abc.abstractmethod
    async def fetch_message(
        self, channel: discord.abc.Messageable, message_id: int
    ) -> Optional[discord.Message]:
        ...

    @abc.abstractmethod
    async def send(
        self, channel: discord.abc.Messageable, content: str, embed: discord.Embed
    ) -> Optional[discord.Message]:
        ...

    @abc.abstractmethod
    async def edit(self, message: discord.Message, embed: discord.Embed) -> bool:
        ...


class DiscordDisplaySurface(DisplaySurface):
    """DisplaySurface backed by the bot's Discord connection."""

    def __init__(self, bot: Red):
        self.bot = bot

    async def fetch_channel(self, channel_id: int) -> Optional[discord.abc.Messageable]:
        channel = self.bot.get_channel(channel_id)
        if channel is None:
            try:
                channel = await self.bot.fetch_channel(channel_id)
            except (discord.NotFound, discord.Forbidden):
                log.debug("Channel %s is gone or not visible", channel_id)
                return None
            except discord.HTTPException as e:
                log.debug("Could not fetch channel %s: %s", channel_id, e)
                return None

        if not isinstance(channel, discord.abc.Messageable):
            log.debug("Channel %s is not a text channel", channel_id)
            return None
        return channel

    async def fetch_message(
        self, channel: discord.abc.Messageable, message_id: int
    ) -> Optional[discord.Message]:
        try:
            return await channel.fetch_message(message_id)
        except (discord.NotFound, discord.Forbidden):
            return None
        except discord.HTTPException as e:
            log.debug("Could not fetch message %s: %s", message_id, e)
            return None

    async def send(
        self, channel: discord.abc.Messageable, content: str, embed: discord.Embed
    ) -> Optional[discord.Message]:
        try:
            return await channel.send(
                content=content,
                embed=embed,
                allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            )
        except discord.Forbidden:
            log.warning(
                "Missing permissions to post a warranty countdown in channel %s",
                getattr(channel, "id", None),
            )
        except discord.HTTPException as e:
            log.warning(
                "Failed to post a warranty countdown in channel %s: %s",
                getattr(channel, "id", None),
                e,
            )
        return None

    async def edit(self, message: discord.Message, embed: discord.Embed) -> bool:
        try:
            await message.edit(embed=embed)
        except discord.HTTPException as e:
            log.debug("Failed to edit warranty message %s: %s", message.id, e)
            return False
        return True
