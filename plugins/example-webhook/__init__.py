"""
Forwards submission activity to an external URL.

Hook handlers only enqueue a job, so a slow or unreachable receiver never
holds up the request that fired the hook. The job posts the JSON body signed
with HMAC-SHA256 ("sha256=<hex>" in X-Signature) when a secret is configured.
"""

import hashlib
import hmac
import json
from datetime import datetime

import httpx

DELIVER_JOB = "deliver"


def _sign(secret, body):
    return "sha256=" + hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def _enqueue(ctx, event_type, payload):
    if not ctx.config.get("url"):
        ctx.logger.warn("No webhook URL configured; skipping", {"event": event_type})
        return
    job_id = ctx.jobs.enqueue(DELIVER_JOB, {"event": event_type, "data": payload})
    ctx.logger.debug("Queued webhook delivery", {"event": event_type, "job_id": job_id})


def on_submission_created(ctx, payload):
    _enqueue(ctx, "submission.created", payload)


def on_status_changed(ctx, payload):
    _enqueue(ctx, "submission.statusChanged", payload)


def deliver(ctx, payload):
    url = ctx.config.get("url")
    if not url:
        raise ValueError("Webhook URL is not configured")

    body = json.dumps({
        "event": payload.get("event"),
        "data": payload.get("data") or {},
        "sent_at": datetime.utcnow().isoformat() + "Z",
    }, default=str)
    headers = {"Content-Type": "application/json"}
    secret = ctx.config.get("secret")
    if secret:
        headers["X-Signature"] = _sign(secret, body)

    timeout = float(ctx.config.get("timeoutSeconds") or 10)
    with httpx.Client(timeout=timeout) as client:
        response = client.post(url, content=body, headers=headers)
    # raising makes the worker retry with backoff
    response.raise_for_status()
    return {"status_code": response.status_code}


def send_test(ctx, params):
    """Deliver a ping synchronously so the admin sees the outcome right away."""
    return deliver(ctx, {"event": "test", "data": {"message": params.get("message", "ping")}})


hooks = {
    "submission.created": on_submission_created,
    "submission.statusChanged": on_status_changed,
}

jobs = {
    DELIVER_JOB: deliver,
}

actions = {
    "test": send_test,
}
