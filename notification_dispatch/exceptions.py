class NotificationDispatchError(Exception):
    """Base class for notification dispatch errors."""


class UserLookupError(NotificationDispatchError):
    """A user record could not be read because of a transient failure."""

    def __init__(self, user_id: str, cause: Exception):
        super().__init__(f"Failed to read user {user_id}: {cause}")
        self.user_id = user_id
        self.cause = cause


class EmptyTokenListError(NotificationDispatchError, ValueError):
    """Delivery was requested for a user without device tokens."""
