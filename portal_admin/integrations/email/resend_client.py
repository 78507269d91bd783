"""Resend API client used for release notification e-mails.

One e-mail per recipient. Each message carries an idempotency key so a
retried notification run does not deliver the same notice twice.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx

from portal_admin.core.config import get_settings


class EmailClientError(RuntimeError):
    """Raised when the e-mail provider rejects or fails a send."""


class EmailRateLimitedError(EmailClientError):
    """Raised on HTTP 429 from the provider."""


@dataclass(frozen=True)
class EmailMessage:
    from_address: str
    to: str
    subject: str
    text: str
    idempotency_key: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.to.strip():
            raise EmailClientError("email_recipient_missing")
        if not self.from_address.strip():
            raise EmailClientError("email_from_address_missing")
        if not self.subject.strip() or not self.text.strip():
            raise EmailClientError("email_content_missing")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": self.from_address.strip(),
            "to": [self.to.strip()],
            "subject": self.subject.strip(),
            "text": self.text.strip(),
        }
        tags = [
            {"name": key.strip(), "value": str(value).strip()}
            for key, value in self.tags.items()
            if key.strip()
        ]
        if tags:
            payload["tags"] = tags
        return payload


class ResendClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.resend.com",
        timeout_seconds: int = 20,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1, timeout_seconds)
        self._client = client

    @property
    def configured(self) -> bool:
        """False means callers should only track deliveries, not send."""

        return bool(self._api_key)

    def send(self, message: EmailMessage) -> str:
        """Send one message and return the provider's message id."""

        if not self.configured:
            raise EmailClientError("email_api_key_missing")
        message.validate()

        headers = {"Authorization": f"Bearer {self._api_key}"}
        if message.idempotency_key:
            headers["Idempotency-Key"] = message.idempotency_key
        url = f"{self._base_url}/emails"
        try:
            if self._client is not None:
                response = self._client.post(url, headers=headers, json=message.to_payload())
            else:
                with httpx.Client(timeout=self._timeout_seconds) as client:
                    response = client.post(url, headers=headers, json=message.to_payload())
        except httpx.HTTPError as exc:
            raise EmailClientError(f"email_transport_error detail={exc}") from exc

        if response.status_code == 429:
            raise EmailRateLimitedError("email_rate_limited status=429")
        if response.status_code < 200 or response.status_code >= 300:
            detail = response.text.strip()
            if len(detail) > 200:
                detail = detail[:200] + "..."
            raise EmailClientError(f"email_send_failed status={response.status_code} detail={detail}")

        try:
            body = response.json()
        except ValueError as exc:
            raise EmailClientError("email_invalid_json_response") from exc
        message_id = body.get("id") if isinstance(body, dict) else None
        if not message_id:
            raise EmailClientError("email_response_missing_id")
        return str(message_id)


@lru_cache(maxsize=1)
def get_resend_client() -> ResendClient:
    settings = get_settings()
    return ResendClient(
        api_key=settings.email_api_key,
        base_url=settings.email_api_base_url,
        timeout_seconds=settings.email_api_timeout_seconds,
    )
