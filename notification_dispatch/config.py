from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings for the notification dispatch functions"""

    # Application settings
    service_name: str = "pairchat-notifications"
    log_level: str = "INFO"
    environment: str = "dev"

    # Firebase settings
    firebase_secret: Optional[str] = None  # service account JSON, ADC when unset
    firebase_project_id: Optional[str] = None

    # Firestore collections
    users_collection: str = "users"
    notifications_collection: str = "notifications"

    # Trigger document paths
    message_document_path: str = "messages/{messageId}"
    user_document_path: str = "users/{userId}"

    # FCM settings
    fcm_batch_size: int = 500  # FCM allows up to 500 tokens per multicast request
    notification_sound: str = "default"
    click_action: str = "FLUTTER_NOTIFICATION_CLICK"
    permanent_token_error_codes: List[str] = [
        "invalid-registration-token",
        "registration-token-not-registered",
    ]

    # Notification content settings
    max_notification_content_length: int = 100
    truncation_marker: str = "..."
    message_title_template: str = "New message from {sender}"
    message_body_template: str = "{content}"
    message_data_message: str = "You've received a new message!"

    # Notification records are keyed by event id when enabled
    deduplicate_notifications: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


# Create settings instance
settings = Settings()
