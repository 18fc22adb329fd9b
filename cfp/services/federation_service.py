"""
Federation with the external CFP directory.

Outgoing webhooks are signed with the event's webhook secret:
HMAC-SHA256 over "<timestamp_ms>.<body>", sent as "sha256=<hex>".
Deliveries that fail after the inline retries are parked in the
webhook_queue table and retried with exponential backoff until they
succeed or become dead letters.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from cfp.config import settings
from cfp.core import database
from cfp.core.encryption import decrypt_string
from cfp.core.exceptions import AuthenticationError, BusinessLogicError, EncryptionError, ResourceNotFoundError
from cfp.core.security import constant_time_equals, sign_payload
from cfp.models.event import Event
from cfp.models.federation import WebhookQueue
from cfp.models.submission import Submission

logger = logging.getLogger(__name__)

RETRY_DELAYS = (1, 5, 15)
MAX_QUEUE_ATTEMPTS = 5
QUEUE_BASE_DELAY_SECONDS = 1
QUEUE_MAX_DELAY_SECONDS = 60 * 60
REPLAY_WINDOW_MS = 5 * 60 * 1000
SIGNATURE_PREFIX = "sha256="

WEBHOOK_TYPES = ("submission.created", "submission.status_updated", "submission.updated")


def _now_ms() -> int:
    return int(time.time() * 1000)


def sign_webhook(body: str, secret: str, timestamp: str) -> str:
    return sign_payload(secret, f"{timestamp}.{body}")


def verify_webhook_signature(
    body: str,
    signature: Optional[str],
    timestamp: Optional[str],
    secret: str,
    now_ms: Optional[int] = None,
) -> bool:
    """Check an incoming signature; timestamps older or newer than five minutes fail."""
    if not signature or not timestamp or not secret:
        return False
    if not signature.startswith(SIGNATURE_PREFIX):
        return False
    try:
        timestamp_ms = int(timestamp)
    except ValueError:
        return False
    now_ms = _now_ms() if now_ms is None else now_ms
    if abs(now_ms - timestamp_ms) > REPLAY_WINDOW_MS:
        logger.warning("Webhook timestamp outside allowed window: %s", timestamp)
        return False
    expected = sign_webhook(body, secret, timestamp)
    return constant_time_equals(signature[len(SIGNATURE_PREFIX):], expected)


def queue_backoff_seconds(attempt: int) -> int:
    return min(QUEUE_BASE_DELAY_SECONDS * 2 ** max(attempt - 1, 0), QUEUE_MAX_DELAY_SECONDS)


def _event_secret(event: Event) -> Optional[str]:
    if not event.webhook_secret:
        return None
    try:
        return decrypt_string(event.webhook_secret)
    except EncryptionError as exc:
        logger.error("Cannot decrypt webhook secret for event %s: %s", event.id, exc)
        return None


@dataclass
class DeliveryResult:
    success: bool
    webhook_id: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    retry_count: int = 0


class FederationService:
    """Sends and re-sends federation webhooks. Pass an httpx.Client to reuse a transport."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._client = http_client
        self._sleep = sleep

    @staticmethod
    def is_enabled() -> bool:
        return settings.FEDERATION_ENABLED

    @staticmethod
    def webhook_url() -> str:
        return f"{settings.FEDERATION_API_URL.rstrip('/')}/submissions/notify"

    def _headers(self, body: str, secret: str, webhook_id: str) -> Dict[str, str]:
        timestamp = str(_now_ms())
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Id": webhook_id,
            "X-Webhook-Timestamp": timestamp,
            "X-Webhook-Signature": SIGNATURE_PREFIX + sign_webhook(body, secret, timestamp),
        }
        if settings.FEDERATION_API_KEY:
            headers["Authorization"] = f"Bearer {settings.FEDERATION_API_KEY}"
        return headers

    def _post(self, url: str, body: str, headers: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, content=body, headers=headers, timeout=settings.WEBHOOK_TIMEOUT_SECONDS)
        with httpx.Client(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
            return client.post(url, content=body, headers=headers)

    def deliver(self, url: str, body: str, secret: str, webhook_id: str) -> DeliveryResult:
        """POST with up to len(RETRY_DELAYS) retries; 4xx other than 429 is final."""
        last_error = "Max retries exceeded"
        max_retries = len(RETRY_DELAYS)
        for attempt in range(max_retries + 1):
            try:
                response = self._post(url, body, self._headers(body, secret, webhook_id))
            except httpx.HTTPError as exc:
                last_error = str(exc) or exc.__class__.__name__
            else:
                if response.is_success:
                    return DeliveryResult(True, webhook_id, response.status_code, retry_count=attempt)
                if 400 <= response.status_code < 500 and response.status_code != 429:
                    return DeliveryResult(
                        False, webhook_id, response.status_code,
                        error=f"HTTP {response.status_code}: {response.text[:500]}",
                        retry_count=attempt,
                    )
                last_error = f"HTTP {response.status_code}"
            if attempt < max_retries:
                self._sleep(RETRY_DELAYS[attempt])
        return DeliveryResult(False, webhook_id, error=last_error, retry_count=max_retries)

    def send_webhook(self, db: Session, event_id: int, webhook_type: str, data: Dict[str, Any]) -> DeliveryResult:
        """
        Send one webhook for a federated event.

        A failed delivery is parked in the webhook queue for later retry.
        """
        webhook_id = str(uuid.uuid4())
        event = db.query(Event).filter(Event.id == event_id).first()
        if event is None:
            return DeliveryResult(False, webhook_id, error="Event not found")
        secret = _event_secret(event)
        if not event.is_federated or not event.federated_event_id or not secret:
            return DeliveryResult(False, webhook_id, error="Event is not federated or missing webhook configuration")

        body = json.dumps({
            "id": webhook_id,
            "type": webhook_type,
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "federatedEventId": event.federated_event_id,
            "data": data,
        }, default=str)
        url = self.webhook_url()

        result = self.deliver(url, body, secret, webhook_id)
        logger.info(
            "Webhook %s (%s) for event %s: success=%s status=%s retries=%s",
            webhook_type, webhook_id, event_id, result.success, result.status_code, result.retry_count,
        )
        if not result.success:
            self.queue_failed(db, webhook_id, event_id, webhook_type, body, url, result.error)
        return result

    @staticmethod
    def queue_failed(
        db: Session,
        webhook_id: str,
        event_id: int,
        webhook_type: str,
        body: str,
        url: str,
        error: Optional[str],
    ) -> WebhookQueue:
        now = datetime.utcnow()
        entry = WebhookQueue(
            webhook_id=webhook_id,
            event_id=event_id,
            webhook_type=webhook_type,
            payload=body,
            webhook_url=url,
            attempt=1,
            last_error=error,
            last_attempt_at=now,
            next_retry_at=now + timedelta(seconds=queue_backoff_seconds(1)),
            status="pending_retry",
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        logger.warning("Queued failed webhook %s for retry: %s", webhook_id, error)
        return entry

    def retry_pending_webhooks(self, db: Session, limit: int = 50) -> Dict[str, int]:
        """Retry queued webhooks whose next_retry_at has passed."""
        now = datetime.utcnow()
        due = db.query(WebhookQueue).filter(
            WebhookQueue.status == "pending_retry",
            WebhookQueue.next_retry_at <= now,
        ).order_by(WebhookQueue.next_retry_at.asc()).limit(limit).all()

        summary = {"processed": 0, "succeeded": 0, "failed": 0, "dead_lettered": 0}
        for entry in due:
            summary["processed"] += 1
            event = db.query(Event).filter(Event.id == entry.event_id).first()
            secret = _event_secret(event) if event else None
            if secret is None:
                ok, error = False, "Event is not federated or missing webhook configuration"
            else:
                try:
                    response = self._post(entry.webhook_url, entry.payload,
                                          self._headers(entry.payload, secret, entry.webhook_id))
                    ok = response.is_success
                    error = None if ok else f"HTTP {response.status_code}"
                except httpx.HTTPError as exc:
                    ok, error = False, str(exc) or exc.__class__.__name__

            entry.attempt += 1
            entry.last_attempt_at = datetime.utcnow()
            entry.last_error = error
            if ok:
                entry.status = "success"
                entry.next_retry_at = None
                summary["succeeded"] += 1
            elif entry.attempt >= MAX_QUEUE_ATTEMPTS:
                entry.status = "dead_letter"
                entry.next_retry_at = None
                summary["dead_lettered"] += 1
                logger.error("Webhook %s moved to dead letter after %s attempts", entry.webhook_id, entry.attempt)
            else:
                entry.next_retry_at = entry.last_attempt_at + timedelta(seconds=queue_backoff_seconds(entry.attempt))
                summary["failed"] += 1
            db.commit()
        return summary

    @staticmethod
    def list_queue(db: Session, status: Optional[str] = None, limit: int = 100) -> List[WebhookQueue]:
        query = db.query(WebhookQueue)
        if status:
            query = query.filter(WebhookQueue.status == status)
        return query.order_by(WebhookQueue.created_at.desc(), WebhookQueue.id.desc()).limit(limit).all()

    @staticmethod
    def get_queue_stats(db: Session) -> Dict[str, int]:
        stats = {status: 0 for status in ("pending_retry", "dead_letter", "success")}
        for entry_status, in db.query(WebhookQueue.status).all():
            stats[entry_status] = stats.get(entry_status, 0) + 1
        stats["total"] = sum(stats.values())
        return stats

    @staticmethod
    def retry_dead_letter(db: Session, queue_id: int) -> WebhookQueue:
        """Put a dead letter back in line with a fresh attempt budget."""
        entry = db.query(WebhookQueue).filter(WebhookQueue.id == queue_id).first()
        if entry is None:
            raise ResourceNotFoundError("Webhook")
        if entry.status != "dead_letter":
            raise BusinessLogicError("Only dead-lettered webhooks can be retried")
        entry.status = "pending_retry"
        entry.attempt = 1
        entry.next_retry_at = datetime.utcnow()
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def delete_queued(db: Session, queue_id: int) -> None:
        entry = db.query(WebhookQueue).filter(WebhookQueue.id == queue_id).first()
        if entry is None:
            raise ResourceNotFoundError("Webhook")
        db.delete(entry)
        db.commit()

    # Incoming

    @staticmethod
    def find_federated_event(db: Session, target: str) -> Optional[Event]:
        """Federated event by local id or by the directory's federated id"""
        query = db.query(Event).filter(Event.is_federated.is_(True))
        if target.isdigit():
            event = query.filter(Event.id == int(target)).first()
            if event is not None:
                return event
        return query.filter(Event.federated_event_id == target).first()

    def verify_incoming(
        self,
        db: Session,
        body: str,
        signature: Optional[str],
        timestamp: Optional[str],
        event_id: Optional[str] = None,
    ) -> tuple:
        """
        Verify an incoming directory webhook.

        Returns:
            (event, payload) on success

        Raises:
            AuthenticationError: On any verification failure
        """
        if not signature or not timestamp:
            raise AuthenticationError("Missing required webhook headers")
        if not body:
            raise AuthenticationError("Empty request body")
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            raise AuthenticationError("Invalid JSON payload")
        if not isinstance(payload, dict):
            raise AuthenticationError("Invalid JSON payload")

        target = event_id or payload.get("federatedEventId")
        if not target:
            raise AuthenticationError("No event ID provided")

        event = self.find_federated_event(db, str(target))
        secret = _event_secret(event) if event is not None else None
        if not secret:
            raise AuthenticationError("Event not found or not federated")
        if not verify_webhook_signature(body, signature, timestamp, secret):
            raise AuthenticationError("Invalid webhook signature")

        logger.info(f"Verified incoming webhook {payload.get('id')} ({payload.get('type')}) for event {event.id}")
        return event, payload

    # Submission senders

    @staticmethod
    def submission_created_data(submission: Submission) -> Dict[str, Any]:
        return {
            "submissionId": submission.id,
            "speakerId": submission.federated_speaker_id,
            "title": submission.title,
            "abstract": submission.abstract,
            "trackName": submission.track.name if submission.track else None,
            "formatName": submission.format.name if submission.format else None,
        }

    def notify(self, event_id: int, webhook_type: str, data: Dict[str, Any]) -> None:
        """Send in a background thread with its own session, off the request path."""
        if not self.is_enabled():
            return

        def _run() -> None:
            db = database.SessionLocal()
            try:
                self.send_webhook(db, event_id, webhook_type, data)
            except Exception:
                logger.exception("Federation webhook %s for event %s failed", webhook_type, event_id)
                db.rollback()
            finally:
                db.close()

        threading.Thread(target=_run, name=f"webhook-{webhook_type}", daemon=True).start()

    def submission_created(self, submission: Submission) -> None:
        if submission.is_federated:
            self.notify(submission.event_id, "submission.created", self.submission_created_data(submission))

    def submission_status_updated(self, submission: Submission, new_status: str, feedback: Optional[str] = None) -> None:
        if submission.is_federated:
            self.notify(submission.event_id, "submission.status_updated", {
                "submissionId": submission.id,
                "status": new_status,
                "feedback": feedback,
            })

    def submission_updated(self, submission: Submission) -> None:
        if submission.is_federated:
            self.notify(submission.event_id, "submission.updated", {
                "submissionId": submission.id,
                "title": submission.title,
                "abstract": submission.abstract,
            })


federation_service = FederationService()
