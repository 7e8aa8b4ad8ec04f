"""Error hierarchy shared by the store, ingestion, delivery and conversation layers.

Only ConfigError is allowed to stop the process (at startup). Everything else is
caught at the event-handling boundary and turned into a notice for the user.
"""


class JadvalError(Exception):
    """Base exception for all jadval-bot errors."""


class ConfigError(JadvalError):
    """Startup configuration is missing or malformed."""


class PersistenceError(JadvalError):
    """Writing a backup or a persisted document failed.

    The in-memory state is kept as is; the on-disk copy may lag behind.
    """


class DeliveryError(JadvalError):
    """Sending a message to one recipient failed.

    ``permanent`` marks recipients that can never be reached again (blocked the
    bot, deleted account, unknown user); they are dropped from the registry.
    """

    def __init__(self, user_id: int, message: str, *, permanent: bool = False) -> None:
        super().__init__(message)
        self.user_id = user_id
        self.permanent = permanent


class ParseError(JadvalError):
    """A spreadsheet payload could not be read."""


class FetchError(JadvalError):
    """Downloading a spreadsheet from a URL failed or timed out."""


class ValidationError(JadvalError):
    """Input for the current step is invalid. The step is re-prompted."""


class MalformedSourceError(ValidationError):
    """A pasted URL does not contain a recognizable document id."""


class EntryIndexError(ValidationError, IndexError):
    """A removal index is outside the day's current list."""
