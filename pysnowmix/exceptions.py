class SnowmixError(Exception):
    """Base exception for errors talking to a Snowmix server."""


class SnowmixConnectionError(SnowmixError):
    """Not connected, or the connection was lost while a command was pending."""


class SnowmixTimeoutError(SnowmixError):
    """No complete response arrived within the command timeout."""
