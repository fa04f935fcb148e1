import logging
from typing import Optional, Tuple

from .events import DocumentChange
from .notification_store import NotificationStore
from .schemas import DeliveryReport, MatchTransition, UserProfile
from .templates import MATCH_NOTIFICATION_TYPES, match_payload
from .token_reconciler import TokenReconciler
from .user_lookup import UserLookup

logger = logging.getLogger(__name__)


def classify_match(acting_user_id: str,
                   previous_match_id: Optional[str],
                   counterpart: UserProfile) -> MatchTransition:
    """
    Decide what a matchedUserID change means for the counterpart.

    Setting the field is an acceptance when the counterpart already points
    back at the acting user, otherwise a new request. Clearing or replacing
    it is a withdrawal when the counterpart never pointed back, otherwise an
    unmatch.
    """
    if previous_match_id is None:
        if counterpart.matchedUserID == acting_user_id:
            return MatchTransition.ACCEPTED
        return MatchTransition.REQUESTED
    if counterpart.matchedUserID is None:
        return MatchTransition.WITHDRAWN
    return MatchTransition.UNMATCHED


class MatchDispatcher:
    """Notifies the other party when a user's matchedUserID changes."""

    def __init__(self, users: UserLookup, notifications: NotificationStore, reconciler: TokenReconciler):
        self.users = users
        self.notifications = notifications
        self.reconciler = reconciler

    def on_user_updated(self, change: DocumentChange) -> Optional[DeliveryReport]:
        """
        Process an update to a user document.

        Args:
            change: The update event with before and after snapshots

        Returns:
            DeliveryReport if a push was sent, None otherwise
        """
        if not change.after.exists:
            logger.error("No user data in event, nothing to notify")
            return None

        acting_user_id = change.params.get("userId") or change.after.id

        # An empty mask carries no information, fall through to the value comparison
        if change.update_mask and "matchedUserID" not in change.update_mask:
            logger.info(f"Update to user {acting_user_id} does not touch matchedUserID, skipping notification")
            return None

        before_match = change.before.get("matchedUserID") or None
        after_match = change.after.get("matchedUserID") or None

        if before_match == after_match:
            logger.info(f"matchedUserID unchanged for user {acting_user_id}, skipping notification")
            return None

        logger.info(f"matchedUserID changed for user {acting_user_id}: {before_match} -> {after_match}")

        resolved = self._resolve_counterpart(acting_user_id, before_match, after_match)
        if resolved is None:
            return None
        transition, counterpart = resolved

        actor = UserProfile.model_validate({**(change.after.to_dict() or {}), "id": acting_user_id})
        payload = match_payload(transition, actor)
        logger.info(f"Sending {transition.value} notification to user {counterpart.id}")

        stored = self.notifications.store_notification(
            change.event_id,
            counterpart.id,
            payload.body,
            MATCH_NOTIFICATION_TYPES[transition]
        )
        if not stored:
            logger.info(f"Skipping push for user {acting_user_id} match change, already dispatched")
            return None

        if not counterpart.deviceTokens:
            logger.warning(f"No device tokens found for user {counterpart.id}")
            return None

        return self.reconciler.send_and_reconcile(counterpart.id, counterpart.deviceTokens, payload)

    def _resolve_counterpart(self,
                             acting_user_id: str,
                             before_match: Optional[str],
                             after_match: Optional[str]) -> Optional[Tuple[MatchTransition, UserProfile]]:
        # A new match points at the new user, anything else concerns the previous one
        counterpart_id = after_match if before_match is None else before_match
        counterpart = self.users.get_user(counterpart_id)
        if counterpart is None:
            return None
        return classify_match(acting_user_id, before_match, counterpart), counterpart
