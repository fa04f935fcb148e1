import logging
from typing import Optional

from pydantic import ValidationError

from .events import DocumentChange
from .notification_store import NotificationStore
from .schemas import ChatMessage, DeliveryReport, NotificationType
from .templates import message_payload
from .token_reconciler import TokenReconciler
from .user_lookup import UserLookup

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Pushes a notification to the recipient of a newly created chat message."""

    def __init__(self, users: UserLookup, notifications: NotificationStore, reconciler: TokenReconciler):
        self.users = users
        self.notifications = notifications
        self.reconciler = reconciler

    def on_message_created(self, change: DocumentChange) -> Optional[DeliveryReport]:
        """
        Process a message document creation.

        Args:
            change: The create event; only the after snapshot is used

        Returns:
            DeliveryReport if a push was sent, None if dispatch was abandoned
        """
        snapshot = change.after
        if not snapshot.exists or snapshot.empty:
            logger.error("No message data in event, nothing to notify")
            return None

        message_id = change.params.get("messageId") or snapshot.id
        try:
            message = ChatMessage.model_validate(snapshot.to_dict())
        except ValidationError as e:
            logger.error(f"Invalid message {message_id}: {e.errors()}")
            return None

        logger.info(f"Processing new message {message_id} from {message.fromId} to {message.toId}")

        recipient = self.users.get_user(message.toId)
        if recipient is None:
            return None

        sender = self.users.get_user(message.fromId)
        if sender is None:
            return None

        payload = message_payload(sender, recipient, message.content)

        stored = self.notifications.store_notification(
            change.event_id,
            recipient.id,
            payload.body,
            NotificationType.MESSAGE
        )
        if not stored:
            logger.info(f"Skipping push for message {message_id}, already dispatched")
            return None

        if not recipient.deviceTokens:
            logger.warning(f"No device tokens found for user {recipient.id}")
            return None

        return self.reconciler.send_and_reconcile(recipient.id, recipient.deviceTokens, payload)
