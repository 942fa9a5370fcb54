# Webhook notifier - signed job.completed / job.failed callbacks

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from openmedia.models import Job, JobStatus

logger = logging.getLogger(__name__)

USER_AGENT = "OpenMediaTranscoder/1.0"
SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"


def sign_payload(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the exact request body"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Receiver-side check of an X-Webhook-Signature header"""
    return hmac.compare_digest(sign_payload(body, secret), signature or "")


def build_payload(job: Job, timestamp: Optional[str] = None) -> Dict[str, Any]:
    snapshot = job.model_dump(mode="json")
    return {
        "event": "job.completed" if job.status == JobStatus.DONE else "job.failed",
        "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        "job": {
            "id": snapshot["id"],
            "status": snapshot["status"],
            "result_key_prefix": snapshot["result_key_prefix"],
            "poster_key": snapshot["poster_key"],
            "thumbnails_key": snapshot["thumbnails_key"],
            "result_files": snapshot["result_files"],
            "error": snapshot["error"],
            "created_at": snapshot["created_at"],
            "updated_at": snapshot["updated_at"],
        },
    }


def encode_payload(payload: Dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


class WebhookNotifier:
    """
    Delivers terminal-state notifications.

    Delivery is best effort: errors are logged and never reach the caller,
    and nothing is retried.
    """

    def __init__(self, secret: str, timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    def notify(self, job: Job) -> bool:
        """Returns True when the receiver answered 2xx"""
        if not job.webhook_url:
            return False

        try:
            logger.info(f"[Webhook] Sending notification to {job.webhook_url}...")
            payload = build_payload(job)
            body = encode_payload(payload)
            headers = {
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                SIGNATURE_HEADER: sign_payload(body, self.secret),
                TIMESTAMP_HEADER: payload["timestamp"],
            }

            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(job.webhook_url, content=body, headers=headers)

            if not response.is_success:
                logger.warning(f"[Webhook] Failed with status {response.status_code}")
                return False

            logger.info("[Webhook] Notification sent successfully")
            return True

        except Exception as e:
            logger.error(f"[Webhook] Error sending notification: {e}", exc_info=True)
            return False
