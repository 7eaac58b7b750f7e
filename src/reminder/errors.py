"""
Error types shared by the reminder components.

UserFacingError carries a reply meant for the user and is never logged as a
fault. The other errors are infrastructure failures that callers log.
"""


class UserFacingError(Exception):
    """Invalid or unmatched user input; the message is the reply text."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class RepositoryError(Exception):
    """Reminder storage failed."""


class DeliveryError(Exception):
    """Outbound message could not be delivered."""
