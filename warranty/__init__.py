"""Warranty cog for tracking per-user warranty countdowns."""
from redbot.core.bot import Red
from redbot.core.utils import get_end_user_data_statement

from .warranty import Warranty

__red_end_user_data_statement__ = get_end_user_data_statement(__file__)


async def setup(bot: Red) -> None:
    """Load Warranty cog."""
    await bot.add_cog(Warranty(bot))
