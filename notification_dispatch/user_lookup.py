import logging
from typing import List, Optional

from google.api_core.exceptions import GoogleAPICallError

from .config import settings
from .exceptions import UserLookupError
from .schemas import UserProfile

logger = logging.getLogger(__name__)


class UserLookup:
    """Point reads and token writes against the users collection."""

    def __init__(self, firestore_db):
        self.firestore_db = firestore_db

    def _user_ref(self, user_id: str):
        return self.firestore_db.collection(settings.users_collection).document(user_id)

    def get_user(self, user_id: Optional[str]) -> Optional[UserProfile]:
        """
        Resolve a user id to the user's profile.

        Args:
            user_id: The user's ID

        Returns:
            UserProfile, or None if the user does not exist

        Raises:
            UserLookupError: if the read itself failed
        """
        if not user_id:
            logger.error("Cannot look up a user without an id")
            return None

        try:
            user = self._user_ref(user_id).get()
        except GoogleAPICallError as e:
            logger.error(f"Error fetching user {user_id}: {str(e)}")
            raise UserLookupError(user_id, e) from e

        if not user.exists:
            logger.error(f"Cannot find user {user_id}, they do not exist or their data is null")
            return None

        data = user.to_dict() or {}
        return UserProfile.model_validate({**data, "id": user_id})

    def update_device_tokens(self, user_id: str, tokens: List[str]) -> None:
        """Overwrite the user's deviceTokens field."""
        self._user_ref(user_id).update({"deviceTokens": list(tokens)})
        logger.info(f"Updated device tokens for user {user_id} ({len(tokens)} remaining)")
