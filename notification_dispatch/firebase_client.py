import json
import logging
from typing import List, Optional

import firebase_admin
from firebase_admin import credentials, firestore, messaging

from .config import settings
from .schemas import PushPayload

logger = logging.getLogger(__name__)


class FirebaseClient:
    """Firebase client wrapping the Firestore database and FCM."""

    def __init__(self):
        """Initialize Firebase client with Firestore and FCM capabilities."""
        self.app = None
        self.firestore_db = None
        self.initialized = False
        self.initialize()

    def initialize(self) -> None:
        """Initialize Firebase Admin SDK, reusing the default app when present."""
        if self.initialized:
            return

        try:
            self.app = firebase_admin.get_app()
            logger.info("Retrieved existing Firebase app")
        except ValueError:
            self.app = firebase_admin.initialize_app(
                credential=self._load_credential(),
                options=self._app_options()
            )
            logger.info(f"Initialized Firebase app: {self.app.name}")

        self.firestore_db = firestore.client(self.app)
        self.initialized = True
        logger.info("Firebase client initialized successfully")

    @staticmethod
    def _load_credential() -> Optional[credentials.Base]:
        """
        Build credentials from the configured service account secret.

        Returns None so the SDK falls back to Application Default Credentials,
        which is what the functions runtime provides.
        """
        cert_json = settings.firebase_secret
        if not cert_json:
            logger.info("Firebase secret not configured, using application default credentials")
            return None

        cert_dict = json.loads(cert_json)
        if isinstance(cert_dict, str):
            cert_dict = json.loads(cert_dict)
        return credentials.Certificate(cert_dict)

    @staticmethod
    def _app_options() -> dict:
        if settings.firebase_project_id:
            return {"projectId": settings.firebase_project_id}
        return {}

    @staticmethod
    def build_multicast_message(tokens: List[str], payload: PushPayload) -> messaging.MulticastMessage:
        """
        Create a multicast message for a batch of device tokens.

        FCM v1 has no sound field on the generic notification, so the sound and
        click action ride on the Android and APNs overrides.
        """
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(
                title=payload.title,
                body=payload.body
            ),
            data={k: str(v) for k, v in payload.data.items()},
            android=messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    sound=payload.sound,
                    click_action=payload.data.get("click_action")
                )
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(sound=payload.sound)
                )
            )
        )

    def send_multicast(self, tokens: List[str], payload: PushPayload) -> messaging.BatchResponse:
        """
        Send one payload to up to 500 device tokens.

        Args:
            tokens: Device tokens, at most one FCM batch
            payload: Notification content

        Returns:
            BatchResponse with one SendResponse per token, in token order
        """
        message = self.build_multicast_message(tokens, payload)
        logger.debug(f"Sending multicast to {len(tokens)} tokens")
        return messaging.send_each_for_multicast(message, app=self.app)
