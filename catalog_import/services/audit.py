"""Audit sink: fire-and-forget webhook delivery of import events."""
import asyncio
import logging
import time
from typing import Any, Dict

import httpx
from sqlalchemy.orm import Session

from catalog_import.config import get_settings
from catalog_import.models.webhook import Webhook

logger = logging.getLogger(__name__)

AUDIT_EVENTS = [
    "import.parsed",
    "import.committed",
    "import.commit_failed",
    "import.undone",
]


async def trigger_webhooks(
    event_type: str, payload: Dict[str, Any], db: Session
) -> None:
    """
    Send an audit event to every enabled webhook subscribed to it.

    Never raises; delivery failures are logged.

    Args:
        event_type: Audit event (e.g., "import.committed")
        payload: Event data to send
        db: Database session
    """
    try:
        webhooks = (
            db.query(Webhook)
            .filter(Webhook.event_type == event_type, Webhook.enabled == True)  # noqa: E712
            .all()
        )
        if not webhooks:
            return

        body = {"event": event_type, "data": payload}
        async with httpx.AsyncClient(timeout=get_settings().webhook_timeout) as client:
            tasks = [_send_webhook(client, webhook.url, body) for webhook in webhooks]
            await asyncio.gather(*tasks, return_exceptions=True)
    except Exception as e:
        logger.error(f"❌ Failed to deliver audit event {event_type}: {e}")


async def _send_webhook(
    client: httpx.AsyncClient, url: str, payload: Dict[str, Any]
) -> None:
    try:
        response = await client.post(url, json=payload)
        if response.status_code >= 400:
            logger.warning(f"⚠️ Webhook {url} answered {response.status_code}")
    except Exception as e:
        logger.warning(f"⚠️ Failed to send webhook to {url}: {e}")


async def test_webhook(url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Test a webhook by sending a sample audit event and measuring response.

    Args:
        url: Webhook URL to test
        payload: Test payload

    Returns:
        Dict with test results including status code and response time
    """
    timeout = get_settings().webhook_timeout
    start_time = time.time()

    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload)
            return {
                "success": response.status_code < 400,
                "status_code": response.status_code,
                "response_time": round(time.time() - start_time, 3),
            }
    except httpx.TimeoutException:
        return {
            "success": False,
            "error": f"Request timeout (> {timeout:g} seconds)",
            "response_time": timeout,
        }
    except Exception as e:
        return {
            "success": False,
            "error": str(e),
            "response_time": round(time.time() - start_time, 3),
        }
