"""Warranty cog - per-user countdowns that update themselves every minute."""
import logging
from zoneinfo import ZoneInfoNotFoundError

import discord
from discord.ext import tasks
from redbot.core import commands, Config
from redbot.core.bot import Red
from redbot.core.utils.chat_formatting import box

from .config import CONFIG_IDENTIFIER, DEFAULT_GLOBAL, DEFAULT_MEMBER
from .display import DiscordDisplaySurface, build_countdown_embed
from .loop import CountdownReconciler, utcnow
from .store import CountdownRecord, CountdownStatus, CountdownStore
from .timing import UPDATE_INTERVAL_SECONDS, compute_end, format_instant, is_expired, parse_date

log = logging.getLogger("red.warranty")

INVALID_DATE_MESSAGE = (
    "Invalid date. Try formats like `8/21/25`, `2025-08-21`, `21.08.2025`, "
    "or add a time like `2025-08-21 14:30`."
)
INVALID_DURATION_MESSAGE = "Duration must be a positive number of days."
NOT_FOUND_MESSAGE = "No warranty found for that user."


class Warranty(commands.Cog):
    """Track warranty countdowns for server members.

    Moderators start a countdown for a user and the bot keeps a status
    message in the channel up to date until the warranty runs out.
    """

    __version__ = "1.0.0"

    def __init__(self, bot: Red):
        self.bot = bot
        self.config = Config.get_conf(
            self,
            identifier=CONFIG_IDENTIFIER,
            force_registration=True,
        )
        self.config.register_global(**DEFAULT_GLOBAL)
        self.config.register_member(**DEFAULT_MEMBER)

        self.store = CountdownStore(self.config)
        self.reconciler = CountdownReconciler(self.store, DiscordDisplaySurface(bot))

    async def cog_load(self):
        """Start the countdown updater."""
        self.countdown_updater.start()

    async def cog_unload(self):
        """Stop the countdown updater."""
        self.countdown_updater.cancel()

    async def red_delete_data_for_user(self, *, requester, user_id: int) -> None:
        removed = await self.store.delete_user(user_id)
        log.debug("Deleted %s warranty countdowns for user with ID %s.", removed, user_id)

    @tasks.loop(seconds=UPDATE_INTERVAL_SECONDS)
    async def countdown_updater(self):
        # tasks.loop stops on an unhandled error, so nothing may escape a tick
        try:
            await self.reconciler.tick()
        except Exception as e:
            log.exception("Error in warranty countdown updater", exc_info=e)

    @countdown_updater.before_loop
    async def before_countdown_updater(self):
        await self.bot.wait_until_red_ready()

    # ---------- Commands ----------

    @commands.hybrid_command(name="warrantystart")
    @commands.guild_only()
    @commands.admin_or_permissions(manage_guild=True)
    async def warrantystart(
        self, ctx: commands.Context, datestart: str, duration: int, user: discord.Member
    ):
        """Start or replace a warranty countdown for a user.

        **Arguments:**
        - `datestart`: Start date, may lie in the past. Quote it if it contains a space.
        - `duration`: Duration in days (e.g. 180)
        - `user`: User to track

        **Examples:**
        - `[p]warrantystart 8/21/25 180 @user`
        - `[p]warrantystart "2025-08-21 14:30" 90 @user`
        - `[p]warrantystart 21.08.2025 30 @user`
        """
        await ctx.defer(ephemeral=True)
        if duration <= 0:
            await ctx.send(INVALID_DURATION_MESSAGE, ephemeral=True)
            return

        tz = await self.store.get_timezone()
        start = parse_date(datestart, tz)
        if start is None:
            await ctx.send(INVALID_DATE_MESSAGE, ephemeral=True)
            return

        try:
            end = compute_end(start, duration, tz)
        except ValueError:
            await ctx.send(INVALID_DURATION_MESSAGE, ephemeral=True)
            return

        record = CountdownRecord(
            guild_id=ctx.guild.id,
            user_id=user.id,
            start=start,
            duration_days=duration,
            end=end,
            channel_id=ctx.channel.id,
        )
        await self.store.upsert(record)

        embed = build_countdown_embed(record, str(user), utcnow(), tz)
        try:
            sent = await ctx.channel.send(
                content=user.mention,
                embed=embed,
                allowed_mentions=discord.AllowedMentions(everyone=False, roles=False, users=True),
            )
        except discord.HTTPException as e:
            log.warning(
                "Could not post warranty countdown in channel %s (guild %s): %s",
                ctx.channel.id,
                ctx.guild.id,
                e,
            )
            await ctx.send(
                f"Saved the warranty for {user.mention}, but I couldn't post the countdown "
                "message in this channel. Check my permissions and start it again.",
                ephemeral=True,
            )
            return

        await self.store.set_display_location(ctx.guild.id, user.id, sent.channel.id, sent.id)
        await ctx.send(
            f"Started/updated warranty for {user.mention} "
            f"({duration} days from {format_instant(start, tz)}).",
            ephemeral=True,
        )

    @commands.hybrid_command(name="warrantystop")
    @commands.guild_only()
    @commands.admin_or_permissions(manage_guild=True)
    async def warrantystop(self, ctx: commands.Context, user: discord.Member):
        """Stop tracking a user's warranty countdown.

        The record is kept and can still be viewed with `[p]warrantyshow`.
        """
        record = await self.store.get(ctx.guild.id, user.id)
        if record is None:
            await ctx.send(NOT_FOUND_MESSAGE, ephemeral=True)
            return

        await self.store.set_status(ctx.guild.id, user.id, CountdownStatus.ENDED)
        await ctx.send(f"Stopped warranty tracking for {user.mention}.", ephemeral=True)

    @commands.hybrid_command(name="warrantyshow")
    @commands.guild_only()
    async def warrantyshow(self, ctx: commands.Context, user: discord.Member):
        """Show remaining time for a user's warranty."""
        record = await self.store.get(ctx.guild.id, user.id)
        if record is None:
            await ctx.send(NOT_FOUND_MESSAGE, ephemeral=True)
            return

        tz = await self.store.get_timezone()
        embed = build_countdown_embed(record, str(user), utcnow(), tz)
        await ctx.send(embed=embed, ephemeral=True)

    # ---------- Settings ----------

    @commands.group(name="warrantyset")
    @commands.is_owner()
    async def warrantyset(self, ctx: commands.Context):
        """Configure the Warranty cog."""
        pass

    @warrantyset.command(name="timezone")
    async def warrantyset_timezone(self, ctx: commands.Context, tz: str):
        """Set the time zone used to read dates and count days.

        **Arguments:**
        - `tz`: IANA zone name

        **Example:**
        - `[p]warrantyset timezone Europe/Amsterdam`
        """
        try:
            zone = await self.store.set_timezone(tz)
        except (ZoneInfoNotFoundError, ValueError):
            await ctx.send(f"Unknown time zone `{tz}`. Use an IANA name like `Europe/Berlin`.")
            return
        await ctx.send(f"Warranty time zone set to `{zone.key}`.")

    @warrantyset.command(name="settings")
    async def warrantyset_settings(self, ctx: commands.Context):
        """Show the current Warranty settings."""
        tz = await self.store.get_timezone()
        active = await self.store.list_active()
        now = utcnow()
        overdue = sum(1 for record in active if is_expired(now, record.end))
        updater_state = "running" if self.countdown_updater.is_running() else "stopped"

        text = (
            f"Time zone:       {tz.key}\n"
            f"Update interval: {UPDATE_INTERVAL_SECONDS} seconds ({updater_state})\n"
            f"Active:          {len(active)}\n"
            f"Awaiting end:    {overdue}"
        )
        await ctx.send(box(text))
