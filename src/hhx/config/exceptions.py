"""Configuration errors."""

from hhx.index.errors import HhxError


class ConfigError(HhxError):
    """Raised when configuration data cannot be read, parsed, or validated."""
