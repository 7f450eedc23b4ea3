"""Shared pytest fixtures for Red-Discord Bot cog testing."""

import copy

import pytest
from unittest.mock import AsyncMock, MagicMock
import discord
from redbot.core.bot import Red


class MemoryValue:
    """Awaitable value with ``set``, like a Red Config Value."""

    def __init__(self, getter, setter):
        self._getter = getter
        self._setter = setter

    async def __call__(self):
        return copy.deepcopy(self._getter())

    async def set(self, value):
        self._setter(copy.deepcopy(value))


class MemoryMemberGroup:
    def __init__(self, config, guild_id, member_id):
        self._config = config
        self._key = (int(guild_id), int(member_id))

    def __getattr__(self, name):
        defaults = self._config.member_defaults
        if name not in defaults:
            raise AttributeError(name)
        members = self._config.members
        return MemoryValue(
            lambda: members.get(self._key, {}).get(name, defaults[name]),
            lambda value: members.setdefault(self._key, {}).__setitem__(name, value),
        )

    async def clear(self):
        self._config.members.pop(self._key, None)


class MemoryConfig:
    """In-memory stand-in for the parts of Red's Config used by the cogs."""

    def __init__(self):
        self.global_defaults = {}
        self.member_defaults = {}
        self.globals = {}
        self.members = {}

    def register_global(self, **defaults):
        self.global_defaults.update(defaults)

    def register_member(self, **defaults):
        self.member_defaults.update(defaults)

    def __getattr__(self, name):
        if name.startswith("_") or name not in self.global_defaults:
            raise AttributeError(name)
        return MemoryValue(
            lambda: self.globals.get(name, self.global_defaults[name]),
            lambda value: self.globals.__setitem__(name, value),
        )

    def member_from_ids(self, guild_id, member_id):
        return MemoryMemberGroup(self, guild_id, member_id)

    async def all_members(self):
        result = {}
        for (guild_id, member_id), data in self.members.items():
            merged = {**copy.deepcopy(self.member_defaults), **copy.deepcopy(data)}
            result.setdefault(guild_id, {})[member_id] = merged
        return result


@pytest.fixture
def bot():
    """Mock Red bot instance."""
    bot = MagicMock(spec=Red)
    bot.user = MagicMock(spec=discord.ClientUser)
    bot.user.id = 123456789
    bot.user.name = "TestBot"
    bot.user.mention = "<@123456789>"
    return bot


@pytest.fixture
def guild():
    """Mock Discord guild."""
    guild = MagicMock(spec=discord.Guild)
    guild.id = 987654321
    guild.name = "Test Guild"
    guild.me = MagicMock(spec=discord.Member)
    guild.me.id = 123456789
    return guild


@pytest.fixture
def channel():
    """Mock Discord text channel."""
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = 111222333
    channel.name = "test-channel"
    channel.guild = MagicMock(spec=discord.Guild)
    channel.guild.id = 987654321
    sent = MagicMock(spec=discord.Message)
    sent.id = 444000111
    sent.channel = channel
    channel.send = AsyncMock(return_value=sent)
    return channel


@pytest.fixture
def member():
    """Mock Discord member."""
    member = MagicMock(spec=discord.Member)
    member.id = 555666777
    member.name = "TestUser"
    member.display_name = "TestUser"
    member.mention = "<@555666777>"
    member.guild = MagicMock(spec=discord.Guild)
    member.guild.id = 987654321
    return member


@pytest.fixture
def ctx(bot, guild, channel, member):
    """Mock command context."""
    ctx = MagicMock()
    ctx.bot = bot
    ctx.guild = guild
    ctx.channel = channel
    ctx.author = member
    ctx.send = AsyncMock()
    ctx.defer = AsyncMock()
    ctx.tick = AsyncMock()
    return ctx


@pytest.fixture
def memory_config():
    """Config with Warranty's defaults registered, kept in memory."""
    from warranty.config import DEFAULT_GLOBAL, DEFAULT_MEMBER

    config = MemoryConfig()
    config.register_global(**DEFAULT_GLOBAL)
    config.register_member(**DEFAULT_MEMBER)
    return config
