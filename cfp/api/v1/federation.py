"""Incoming federation webhooks from the CFP directory"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from cfp.api.deps import client_ip
from cfp.core.database import get_db
from cfp.services.audit_service import audit_service
from cfp.services.federation_service import federation_service

router = APIRouter()


@router.post("/webhook")
async def receive_webhook(
    request: Request,
    event_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Receive a signed webhook

    The signature covers the raw body, so it is read before any parsing.
    The event is looked up by `event_id` or by the payload's
    `federatedEventId`.
    """
    body = (await request.body()).decode("utf-8", errors="replace")
    event, payload = federation_service.verify_incoming(
        db,
        body,
        request.headers.get("X-Webhook-Signature"),
        request.headers.get("X-Webhook-Timestamp"),
        event_id=event_id,
    )
    audit_service.safe_log_event(
        db,
        user_id=None,
        action="federation.webhook_received",
        entity_type="event",
        entity_id=event.id,
        ip_address=client_ip(request),
        metadata={
            "webhook_id": request.headers.get("X-Webhook-Id") or payload.get("id"),
            "type": payload.get("type"),
        },
    )
    return {"success": True, "received": True}
