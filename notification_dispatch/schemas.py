from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NotificationType(str, Enum):
    MESSAGE = "message"
    MATCH_REQUESTED = "match_requested"
    MATCH_ACCEPTED = "match_accepted"
    MATCH_UNMATCHED = "match_unmatched"
    MATCH_WITHDRAWN = "match_withdrawn"


class MatchTransition(str, Enum):
    """Interpretation of a change to a user's matchedUserID field"""
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    UNMATCHED = "unmatched"
    WITHDRAWN = "withdrawn"


class UserProfile(BaseModel):
    """User record as stored in the users collection"""
    model_config = ConfigDict(extra="ignore")

    id: str
    username: str = ""
    deviceTokens: List[str] = Field(default_factory=list)
    matchedUserID: Optional[str] = None

    @field_validator("username", mode="before")
    @classmethod
    def _null_username(cls, value):
        return value or ""

    @field_validator("deviceTokens", mode="before")
    @classmethod
    def _null_tokens(cls, value):
        return [token if isinstance(token, str) else "" for token in value or []]

    @field_validator("matchedUserID", mode="before")
    @classmethod
    def _empty_match(cls, value):
        return value or None

    @property
    def display_name(self) -> str:
        return self.username or self.id


class ChatMessage(BaseModel):
    """Chat message document that triggers a push"""
    model_config = ConfigDict(extra="ignore")

    fromId: str
    toId: str
    content: Optional[str] = ""


class NotificationRecord(BaseModel):
    """In-app notification persisted to the notifications collection"""
    userID: str
    message: str
    sentTime: str
    type: NotificationType


class PushPayload(BaseModel):
    """Notification content sent once to every device of a user"""
    title: str
    body: str
    sound: str = "default"
    data: Dict[str, str] = Field(default_factory=dict)


class DeliveryResult(BaseModel):
    """Outcome of sending a payload to one device token"""
    token: str
    success: bool
    error_code: Optional[str] = None


class DeliveryReport(BaseModel):
    user_id: str
    results: List[DeliveryResult] = Field(default_factory=list)
    remaining_tokens: List[str] = Field(default_factory=list)
    removed_tokens: List[str] = Field(default_factory=list)
    persisted: bool = False

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)
