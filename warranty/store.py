"""Persistence of warranty countdowns on top of Red Config."""
import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from redbot.core import Config

log = logging.getLogger("red.warranty")


class CountdownStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class CountdownNotFound(LookupError):
    """Raised when a partial update targets a (guild, user) without a countdown."""

    def __init__(self, guild_id: int, user_id: int):
        super().__init__(f"No countdown for user {user_id} in guild {guild_id}")
        self.guild_id = guild_id
        self.user_id = user_id


@dataclass(frozen=True)
class CountdownRecord:
    """One warranty countdown. ``end`` is always ``start`` plus ``duration_days``."""

    guild_id: int
    user_id: int
    start: datetime
    duration_days: int
    end: datetime
    channel_id: Optional[int] = None
    message_id: Optional[int] = None
    status: CountdownStatus = CountdownStatus.ACTIVE

    @property
    def has_display(self) -> bool:
        return self.channel_id is not None and self.message_id is not None

    def with_display(self, channel_id: int, message_id: int) -> "CountdownRecord":
        return replace(self, channel_id=channel_id, message_id=message_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": self.start.isoformat(),
            "duration_days": self.duration_days,
            "end": self.end.isoformat(),
            "channel_id": self.channel_id,
            "message_id": self.message_id,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, guild_id: int, user_id: int, data: Dict[str, Any]) -> "CountdownRecord":
        return cls(
            guild_id=int(guild_id),
            user_id=int(user_id),
            start=datetime.fromisoformat(data["start"]),
            duration_days=int(data["duration_days"]),
            end=datetime.fromisoformat(data["end"]),
            channel_id=data.get("channel_id"),
            message_id=data.get("message_id"),
            status=CountdownStatus(data.get("status", CountdownStatus.ACTIVE.value)),
        )


class CountdownStore:
    """Durable (guild, user) -> countdown mapping.

    Records live in the member scope of the cog's Config under ``countdown``.
    Multi-step writes hold ``_lock`` so a concurrent reader never sees half of
    an update.
    """

    def __init__(self, config: Config):
        self.config = config
        self._lock = asyncio.Lock()

    # ---------- Settings ----------

    async def get_timezone(self) -> ZoneInfo:
        return ZoneInfo(await self.config.timezone())

    async def set_timezone(self, name: str) -> ZoneInfo:
        """Store a new default zone. Raises ZoneInfoNotFoundError for unknown names."""
        tz = ZoneInfo(name)
        await self.config.timezone.set(tz.key)
        return tz

    # ---------- Records ----------

    async def upsert(self, record: CountdownRecord) -> None:
        """Write ``record``, replacing whatever was stored for its key."""
        async with self._lock:
            await self.config.member_from_ids(record.guild_id, record.user_id).countdown.set(
                record.to_dict()
            )
        log.debug(
            "Stored countdown for user %s in guild %s (%s days)",
            record.user_id,
            record.guild_id,
            record.duration_days,
        )

    async def get(self, guild_id: int, user_id: int) -> Optional[CountdownRecord]:
        data = await self.config.member_from_ids(guild_id, user_id).countdown()
        if not data:
            return None
        return CountdownRecord.from_dict(guild_id, user_id, data)

    async def list_active(self) -> List[CountdownRecord]:
        all_members = await self.config.all_members()
        active = []
        for guild_id, members in all_members.items():
            for user_id, member_data in members.items():
                data = member_data.get("countdown")
                if not data:
                    continue
                try:
                    record = CountdownRecord.from_dict(guild_id, user_id, data)
                except (KeyError, TypeError, ValueError):
                    log.warning(
                        "Ignoring malformed countdown for user %s in guild %s", user_id, guild_id
                    )
                    continue
                if record.status is CountdownStatus.ACTIVE:
                    active.append(record)
        return active

    async def set_display_location(
        self,
        guild_id: int,
        user_id: int,
        channel_id: int,
        message_id: int,
        expected: Optional[CountdownRecord] = None,
    ) -> bool:
        """Point the record at a new message.

        With ``expected`` the write only happens while the stored record still
        equals that snapshot. Returns whether anything was written.
        """
        return await self._update(
            guild_id, user_id, expected, channel_id=channel_id, message_id=message_id
        )

    async def set_status(
        self,
        guild_id: int,
        user_id: int,
        status: CountdownStatus,
        expected: Optional[CountdownRecord] = None,
    ) -> bool:
        """Change only the status. ``expected`` works as in ``set_display_location``."""
        return await self._update(guild_id, user_id, expected, status=CountdownStatus(status).value)

    async def _update(
        self, guild_id: int, user_id: int, expected: Optional[CountdownRecord], **fields: Any
    ) -> bool:
        value = self.config.member_from_ids(guild_id, user_id).countdown
        async with self._lock:
            data = await value()
            if expected is not None:
                current = CountdownRecord.from_dict(guild_id, user_id, data) if data else None
                if current != expected:
                    log.debug(
                        "Countdown for user %s in guild %s changed meanwhile, not updating",
                        user_id,
                        guild_id,
                    )
                    return False
            elif not data:
                raise CountdownNotFound(guild_id, user_id)
            data.update(fields)
            await value.set(data)
        return True

    async def delete_user(self, user_id: int) -> int:
        """Remove every countdown of ``user_id``. Returns how many were removed."""
        removed = 0
        async with self._lock:
            all_members = await self.config.all_members()
            for guild_id, members in all_members.items():
                if int(user_id) in {int(m) for m in members}:
                    await self.config.member_from_ids(int(guild_id), int(user_id)).clear()
                    removed += 1
        return removed
