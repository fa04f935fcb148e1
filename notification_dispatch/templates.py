from typing import Dict, Optional, Tuple

from .config import settings
from .schemas import MatchTransition, NotificationType, PushPayload, UserProfile

# title, body, data message; {actor} is the user whose write fired the trigger
MATCH_TEMPLATES: Dict[MatchTransition, Tuple[str, str, str]] = {
    MatchTransition.REQUESTED: (
        "New match request",
        "{actor} wants to match with you!",
        "You've received a new match request!",
    ),
    MatchTransition.ACCEPTED: (
        "It's a match!",
        "{actor} accepted your match request!",
        "Your match request was accepted!",
    ),
    MatchTransition.UNMATCHED: (
        "Match ended",
        "{actor} unmatched you.",
        "You've been unmatched.",
    ),
    MatchTransition.WITHDRAWN: (
        "Match request withdrawn",
        "{actor} withdrew their match request.",
        "A match request was withdrawn.",
    ),
}

MATCH_NOTIFICATION_TYPES = {
    MatchTransition.REQUESTED: NotificationType.MATCH_REQUESTED,
    MatchTransition.ACCEPTED: NotificationType.MATCH_ACCEPTED,
    MatchTransition.UNMATCHED: NotificationType.MATCH_UNMATCHED,
    MatchTransition.WITHDRAWN: NotificationType.MATCH_WITHDRAWN,
}


def truncate_content(content: Optional[str], max_length: Optional[int] = None) -> str:
    """Shorten content longer than max_length, ending it with the truncation marker."""
    if not content:
        return ""
    if max_length is None:
        max_length = settings.max_notification_content_length
    if len(content) > max_length:
        marker = settings.truncation_marker
        return content[:max_length - len(marker)] + marker
    return content


def _payload(title: str, body: str, data_message: str) -> PushPayload:
    return PushPayload(
        title=title,
        body=body,
        sound=settings.notification_sound,
        data={
            "click_action": settings.click_action,
            "message": data_message,
        }
    )


def message_payload(sender: UserProfile, recipient: UserProfile, content: Optional[str]) -> PushPayload:
    """Build the push for a new chat message; both parties are available to the templates."""
    fields = {
        "sender": sender.display_name,
        "recipient": recipient.display_name,
        "content": truncate_content(content),
    }
    return _payload(
        settings.message_title_template.format(**fields),
        settings.message_body_template.format(**fields),
        settings.message_data_message.format(**fields),
    )


def match_payload(transition: MatchTransition, actor: UserProfile) -> PushPayload:
    title, body, data_message = MATCH_TEMPLATES[transition]
    return _payload(
        title.format(actor=actor.display_name),
        body.format(actor=actor.display_name),
        data_message,
    )
