import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from google.api_core.exceptions import AlreadyExists

from .config import settings
from .schemas import NotificationRecord, NotificationType

logger = logging.getLogger(__name__)


class NotificationStore:
    """Writes in-app notification records for the recipient's inbox."""

    def __init__(self, firestore_db):
        self.firestore_db = firestore_db

    @staticmethod
    def notification_id(event_id: Optional[str], user_id: str) -> str:
        if not event_id:
            event_id = str(uuid.uuid4())
            logger.warning(f"Event ID missing, generated: {event_id}")
        return f"{event_id}_{user_id}"

    def store_notification(self,
                           event_id: Optional[str],
                           user_id: str,
                           message: str,
                           notification_type: NotificationType) -> bool:
        """
        Store a notification record once per triggering event.

        Args:
            event_id: Id of the event that produced the notification
            user_id: The recipient's user ID
            message: Notification text, mirrors the push body
            notification_type: Type of notification

        Returns:
            True if the record was written, False if this event was already recorded
        """
        record = NotificationRecord(
            userID=user_id,
            message=message,
            sentTime=datetime.now(timezone.utc).isoformat(),
            type=notification_type
        )
        collection = self.firestore_db.collection(settings.notifications_collection)

        if not settings.deduplicate_notifications:
            collection.add(record.model_dump(mode="json"))
            logger.info(f"Stored {notification_type.value} notification for user {user_id}")
            return True

        notification_id = self.notification_id(event_id, user_id)
        try:
            collection.document(notification_id).create(record.model_dump(mode="json"))
        except AlreadyExists:
            logger.warning(f"Notification {notification_id} already stored, event was delivered twice")
            return False

        logger.info(f"Stored notification {notification_id} for user {user_id}")
        return True
