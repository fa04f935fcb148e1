"""
Cloud Functions entry points for Firestore document triggers.

Each invocation decodes its own event into a local DocumentChange; the only
state shared between invocations is the Firebase client.
"""
import functools
import logging

import functions_framework
from cloudevents.http import CloudEvent
from google.api_core.exceptions import GoogleAPICallError

from .config import settings
from .events import DocumentChange
from .exceptions import NotificationDispatchError
from .firebase_client import FirebaseClient
from .match_dispatcher import MatchDispatcher
from .message_dispatcher import MessageDispatcher
from .notification_store import NotificationStore
from .token_reconciler import TokenReconciler
from .user_lookup import UserLookup

logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=None)
def get_firebase_client() -> FirebaseClient:
    return FirebaseClient()


def _components():
    firebase = get_firebase_client()
    users = UserLookup(firebase.firestore_db)
    notifications = NotificationStore(firebase.firestore_db)
    reconciler = TokenReconciler(firebase, users)
    return users, notifications, reconciler


def get_message_dispatcher() -> MessageDispatcher:
    return MessageDispatcher(*_components())


def get_match_dispatcher() -> MatchDispatcher:
    return MatchDispatcher(*_components())


def _change_from_event(cloud_event: CloudEvent, path_template: str) -> DocumentChange:
    return DocumentChange.from_event_data(
        cloud_event.data,
        event_id=cloud_event["id"],
        path_template=path_template
    )


@functions_framework.cloud_event
def message_trigger(cloud_event: CloudEvent) -> None:
    """Triggered when a document is created in the messages collection."""
    change = _change_from_event(cloud_event, settings.message_document_path)
    logger.info(f"Received message event {change.event_id} for {change.path}")

    try:
        get_message_dispatcher().on_message_created(change)
    except (NotificationDispatchError, GoogleAPICallError) as e:
        logger.error(f"Message event {change.event_id} failed: {str(e)}", exc_info=True)
        raise


@functions_framework.cloud_event
def match_trigger(cloud_event: CloudEvent) -> None:
    """Triggered when a document in the users collection is updated."""
    change = _change_from_event(cloud_event, settings.user_document_path)
    logger.info(f"Received user event {change.event_id} for {change.path}")

    try:
        get_match_dispatcher().on_user_updated(change)
    except (NotificationDispatchError, GoogleAPICallError) as e:
        logger.error(f"User event {change.event_id} failed: {str(e)}", exc_info=True)
        raise
