"""Run the plugin job worker (and federation webhook retries) as a standalone process."""

import logging
import time

from cfp.config import settings
from cfp.core import database
from cfp.plugins.jobs.worker import plugin_job_worker
from cfp.plugins.loader import initialize_plugins
from cfp.services.federation_service import federation_service

logger = logging.getLogger("cfp.worker")

WEBHOOK_RETRY_INTERVAL_SECONDS = 60


def _retry_webhooks() -> None:
    db = database.SessionLocal()
    try:
        result = federation_service.retry_pending_webhooks(db)
        if result.get("processed"):
            logger.info("Webhook retry pass: %s", result)
    except Exception:
        logger.exception("Webhook retry pass failed")
        db.rollback()
    finally:
        db.close()


def main() -> None:
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL), format="%(asctime)s - %(levelname)s - %(message)s")

    # Job handlers are registered by the plugins themselves
    db = database.SessionLocal()
    try:
        result = initialize_plugins(db)
        logger.info("Loaded %d plugins (%d failed)", len(result["loaded"]), len(result["failed"]))
    finally:
        db.close()

    plugin_job_worker.start()
    last_webhook_pass = 0.0
    try:
        while True:
            if settings.FEDERATION_ENABLED and time.time() - last_webhook_pass >= WEBHOOK_RETRY_INTERVAL_SECONDS:
                _retry_webhooks()
                last_webhook_pass = time.time()
            time.sleep(1)
    except KeyboardInterrupt:
        plugin_job_worker.stop()


if __name__ == "__main__":
    main()
