"""The countdown updater: keeps every active warranty message current."""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from .display import DisplaySurface, build_countdown_embed
from .store import CountdownRecord, CountdownStatus, CountdownStore
from .timing import is_expired

log = logging.getLogger("red.warranty")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CountdownReconciler:
    """Re-renders active countdowns and ends the ones that ran out.

    One call to ``tick`` handles every active record in turn. A failure on one
    record is logged and the rest are still processed; since state is re-read
    on every tick the next run picks up whatever was skipped.
    """

    def __init__(
        self,
        store: CountdownStore,
        surface: DisplaySurface,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.surface = surface
        self.clock = clock

    async def tick(self) -> int:
        """Run one pass over all active countdowns. Returns how many were refreshed."""
        records = await self.store.list_active()
        if not records:
            return 0

        tz = await self.store.get_timezone()
        refreshed = 0
        for record in records:
            try:
                if await self.refresh(record, tz):
                    refreshed += 1
            except Exception as e:
                log.exception(
                    "Failed to update warranty countdown for user %s in guild %s",
                    record.user_id,
                    record.guild_id,
                    exc_info=e,
                )
        log.debug("Warranty updater refreshed %s of %s countdowns", refreshed, len(records))
        return refreshed

    async def refresh(
        self,
        record: CountdownRecord,
        tz: ZoneInfo,
        now: Optional[datetime] = None,
    ) -> bool:
        """Bring one countdown message up to date.

        Writes back to the store only while the stored record still matches
        ``record``, so a countdown restarted during the Discord calls is left
        alone.

        Returns False when the record was skipped because it has no message yet
        or its channel can't be reached.
        """
        if not record.has_display:
            return False

        channel = await self.surface.fetch_channel(record.channel_id)
        if channel is None:
            log.debug(
                "Channel %s for warranty of user %s is unavailable, skipping",
                record.channel_id,
                record.user_id,
            )
            return False

        now = now or self.clock()
        mention = f"<@{record.user_id}>"
        embed = build_countdown_embed(record, mention, now, tz)

        message = await self.surface.fetch_message(channel, record.message_id)
        if message is not None:
            await self.surface.edit(message, embed)
        else:
            replacement = await self.surface.send(channel, mention, embed)
            if replacement is not None:
                moved = await self.store.set_display_location(
                    record.guild_id,
                    record.user_id,
                    replacement.channel.id,
                    replacement.id,
                    expected=record,
                )
                if not moved:
                    return True
                record = record.with_display(replacement.channel.id, replacement.id)
                log.info(
                    "Reposted warranty countdown for user %s in guild %s",
                    record.user_id,
                    record.guild_id,
                )

        # Only after the edit, so the last rendered state already reads "Expired"
        if is_expired(now, record.end) and record.status is CountdownStatus.ACTIVE:
            ended = await self.store.set_status(
                record.guild_id, record.user_id, CountdownStatus.ENDED, expected=record
            )
            if ended:
                log.info(
                    "Warranty for user %s in guild %s has ended", record.user_id, record.guild_id
                )
        return True
