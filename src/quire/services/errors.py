"""Error taxonomy for the messaging core.

Every error is raised before any state is mutated and carries a stable
``code`` so clients can branch on it (for example to prompt for E2EE setup).
"""

from __future__ import annotations

from fastapi import status


class MessagingError(Exception):
    """Base class for failures reported synchronously to the caller."""

    code: str = "messaging_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Message operation failed"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        super().__init__(self.message)

    def as_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationFailed(MessagingError):
    """Missing receiver, self-messaging, or a malformed payload."""

    code = "invalid_request"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid message request"


class PlaintextNotAllowed(MessagingError):
    """Plain text was sent while encryption is mandatory."""

    code = "plaintext_not_allowed"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Plaintext messages are not allowed. Encryption is mandatory."


class RecipientNotE2EEReady(MessagingError):
    """Encrypted payload addressed to a user without a public key on file."""

    code = "recipient_not_e2ee_ready"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Recipient has not enabled E2EE yet. Cannot send encrypted message."


class BlockedByRecipient(MessagingError):
    code = "blocked_by_recipient"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are blocked from this user. You cannot send messages to this user."


class RecipientBlocked(MessagingError):
    code = "recipient_blocked"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You have blocked this user"


class NotMessageOwner(MessagingError):
    code = "not_message_owner"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Unauthorized - You can only delete your own messages"


class NotFound(MessagingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"
