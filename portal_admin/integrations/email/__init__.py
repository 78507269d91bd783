"""Email provider integrations."""

from portal_admin.integrations.email.resend_client import (
    EmailClientError,
    EmailMessage,
    EmailRateLimitedError,
    ResendClient,
    get_resend_client,
)

__all__ = ["EmailClientError", "EmailMessage", "EmailRateLimitedError", "ResendClient", "get_resend_client"]
