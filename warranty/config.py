"""Configuration defaults for Warranty cog."""

# Configuration identifier for Red Config
CONFIG_IDENTIFIER = 205192943327321000143939875896557571760

# Zone used for parsing, formatting and day arithmetic until an owner changes it
DEFAULT_TIMEZONE = "Europe/Berlin"

DEFAULT_GLOBAL = {
    "timezone": DEFAULT_TIMEZONE,
}

# One countdown per (guild, member); None means no record
DEFAULT_MEMBER = {
    "countdown": None,
}
