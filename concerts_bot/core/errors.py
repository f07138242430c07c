class ConcertsBotError(Exception):
    """Base class for errors raised by concerts_bot."""


class UnknownUserError(ConcertsBotError, LookupError):
    """Raised when a subscription operation targets a user that was never added."""

    def __init__(self, user_id: str):
        super().__init__(f"unknown user {user_id!r}")
        self.user_id = user_id


class SourceError(ConcertsBotError):
    """Raised by an adapter when a source answers with something unusable."""
