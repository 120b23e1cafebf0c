"""Signed, best-effort webhook delivery for terminal job outcomes."""

from __future__ import annotations

import hashlib
import hmac
import logging
from secrets import compare_digest

import httpx

from codereel.core.logging_safety import safe_log_url
from codereel.schemas.events import WebhookPayload

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Signature"


def serialize_payload(payload: WebhookPayload) -> bytes:
    """Compact JSON in declared field order with absent fields omitted."""
    return payload.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str) -> bool:
    """Receiver-side check over the exact received bytes."""
    if not signature:
        return False
    return compare_digest(sign_payload(body, secret), signature.strip().lower())


class WebhookDispatcher:
    """Makes exactly one POST per call; failures are logged and never retried."""

    def __init__(
        self,
        *,
        url: str | None,
        secret: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._secret = secret
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self.attempt_count = 0

    async def dispatch(self, payload: WebhookPayload) -> bool:
        safe_url = safe_log_url(self._url)
        if not self._url:
            logger.info("webhook.skipped job_id=%s status=%s reason=no_url", payload.job_id, payload.status.value)
            return False

        body = serialize_payload(payload)
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign_payload(body, self._secret),
        }

        self.attempt_count += 1
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._url, content=body, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            logger.warning(
                "webhook.failed job_id=%s status=%s url=%s reason=%s",
                payload.job_id,
                payload.status.value,
                safe_url,
                type(exc).__name__,
            )
            return False

        if not response.is_success:
            logger.warning(
                "webhook.failed job_id=%s status=%s url=%s status_code=%s",
                payload.job_id,
                payload.status.value,
                safe_url,
                response.status_code,
            )
            return False

        logger.info(
            "webhook.delivered job_id=%s status=%s url=%s status_code=%s",
            payload.job_id,
            payload.status.value,
            safe_url,
            response.status_code,
        )
        return True


__all__ = ["SIGNATURE_HEADER", "WebhookDispatcher", "serialize_payload", "sign_payload", "verify_signature"]
