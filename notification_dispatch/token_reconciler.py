import logging
from typing import Iterable, List, Optional, Sequence

from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging
from google.api_core.exceptions import GoogleAPICallError

from .config import settings
from .exceptions import EmptyTokenListError
from .schemas import DeliveryReport, DeliveryResult, PushPayload
from .user_lookup import UserLookup

logger = logging.getLogger(__name__)

# Reported for tokens that cannot be addressed at all
MALFORMED_TOKEN_CODE = "invalid-registration-token"
# Prefixed to codes of failures that hit a whole batch rather than one token
BATCH_ERROR_PREFIX = "batch-"

# Most specific classes first: the messaging errors subclass the generic ones
ERROR_CODES = [
    (messaging.UnregisteredError, "registration-token-not-registered"),
    (messaging.SenderIdMismatchError, "mismatched-credential"),
    (messaging.QuotaExceededError, "message-rate-exceeded"),
    (messaging.ThirdPartyAuthError, "third-party-auth-error"),
    (firebase_exceptions.InvalidArgumentError, "invalid-registration-token"),
    (firebase_exceptions.UnavailableError, "server-unavailable"),
    (firebase_exceptions.InternalError, "internal-error"),
]


def classify_error(error: Optional[Exception]) -> str:
    """Map an FCM send exception onto a delivery error code."""
    for error_class, code in ERROR_CODES:
        if isinstance(error, error_class):
            return code
    if isinstance(error, firebase_exceptions.FirebaseError) and error.code:
        return str(error.code).lower().replace("_", "-")
    return "unknown-error"


def is_permanent(error_code: Optional[str]) -> bool:
    if not error_code:
        return False
    if error_code.startswith("messaging/"):
        error_code = error_code[len("messaging/"):]
    return error_code in settings.permanent_token_error_codes


def is_valid_token(token) -> bool:
    return isinstance(token, str) and bool(token.strip())


def prune_tokens(tokens: Sequence[str], results: Sequence[DeliveryResult]) -> List[str]:
    """
    Drop every token whose delivery failed with a permanent error.

    Results are matched to tokens by position. A new list is built so that
    consecutive invalid tokens are all removed in one pass.
    """
    if len(tokens) != len(results):
        raise ValueError(f"Got {len(results)} delivery results for {len(tokens)} tokens")
    return [
        token for token, result in zip(tokens, results)
        if result.success or not is_permanent(result.error_code)
    ]


def _chunks(items: list, size: int) -> Iterable[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class TokenReconciler:
    """Sends a payload to all of a user's devices and prunes dead tokens."""

    def __init__(self, firebase_client, user_lookup: UserLookup):
        self.firebase = firebase_client
        self.users = user_lookup

    def deliver(self, tokens: List[str], payload: PushPayload) -> List[DeliveryResult]:
        """
        Send the payload to every token, batching at the FCM multicast limit.

        Empty or non-string tokens are never sent; FCM would reject the whole
        batch, so they are reported as invalid registrations instead.

        Returns:
            One DeliveryResult per token, in the same order as tokens
        """
        results: List[Optional[DeliveryResult]] = [None] * len(tokens)
        sendable = []
        for index, token in enumerate(tokens):
            if is_valid_token(token):
                sendable.append(index)
            else:
                logger.warning(f"Malformed device token at position {index}, marking invalid")
                results[index] = DeliveryResult(
                    token=token,
                    success=False,
                    error_code=MALFORMED_TOKEN_CODE
                )

        for batch_indexes in _chunks(sendable, settings.fcm_batch_size):
            batch = [tokens[i] for i in batch_indexes]
            try:
                batch_response = self.firebase.send_multicast(batch, payload)
            except (firebase_exceptions.FirebaseError, ValueError) as e:
                # The whole batch failed; the tokens are not known to be invalid
                code = f"{BATCH_ERROR_PREFIX}{classify_error(e)}"
                logger.error(f"Error sending batch of {len(batch)} tokens: {str(e)}")
                for i in batch_indexes:
                    results[i] = DeliveryResult(token=tokens[i], success=False, error_code=code)
                continue

            for i, response in zip(batch_indexes, batch_response.responses):
                token = tokens[i]
                if response.success:
                    results[i] = DeliveryResult(token=token, success=True)
                    continue
                code = classify_error(response.exception)
                logger.warning(f"Failure sending notification to {token[:20]}...: {code}")
                results[i] = DeliveryResult(token=token, success=False, error_code=code)
        return results

    def send_and_reconcile(self, user_id: str, tokens: List[str], payload: PushPayload) -> DeliveryReport:
        """
        Deliver a payload and persist the user's token list without dead tokens.

        Args:
            user_id: Owner of the tokens
            tokens: The user's device tokens, must not be empty
            payload: Notification content

        Returns:
            DeliveryReport with per-token results and the pruned token list

        Raises:
            EmptyTokenListError: if tokens is empty
        """
        if not tokens:
            raise EmptyTokenListError(f"No device tokens to deliver to for user {user_id}")

        # Non-string entries can only be pruned, keep them as unaddressable placeholders
        tokens = [token if isinstance(token, str) else "" for token in tokens]
        results = self.deliver(tokens, payload)
        remaining = prune_tokens(tokens, results)
        removed = [
            token for token, result in zip(tokens, results)
            if not result.success and is_permanent(result.error_code)
        ]

        report = DeliveryReport(
            user_id=user_id,
            results=results,
            remaining_tokens=remaining,
            removed_tokens=removed
        )
        logger.info(
            f"Delivered to user {user_id}: {report.success_count} sent, "
            f"{report.failure_count} failed, {len(removed)} invalid tokens removed"
        )

        # Written back unconditionally, last write wins against concurrent dispatches
        try:
            self.users.update_device_tokens(user_id, remaining)
            report.persisted = True
        except GoogleAPICallError as e:
            logger.error(f"Error updating device tokens for user {user_id}: {str(e)}")

        return report
