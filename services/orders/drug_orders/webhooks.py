"""
Webhook system for sending order event notifications.

Allows external systems (reporting, the assistant) to subscribe to order
events. Delivery is best effort: each URL gets one attempt, failures are
logged and never retried.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from . import config

logger = logging.getLogger(__name__)


async def send_webhook(event_type: str, data: Dict[str, Any], urls: Optional[List[str]] = None) -> None:
    """
    Send webhook notifications to all registered URLs.

    Args:
        event_type: Type of event (e.g., "order.created", "order_item.status_changed")
        data: Event data payload
        urls: Target URLs, defaults to WEBHOOK_URLS
    """
    urls = config.WEBHOOK_URLS if urls is None else urls
    if not urls:
        return

    payload = {
        "event": event_type,
        "data": data,
        "timestamp": datetime.utcnow().isoformat(),
    }

    async with httpx.AsyncClient(timeout=config.WEBHOOK_TIMEOUT) as client:
        # Send all webhooks concurrently
        await asyncio.gather(
            *(send_single_webhook(client, url, payload) for url in urls),
            return_exceptions=True,
        )


async def send_single_webhook(client: httpx.AsyncClient, url: str, payload: Dict[str, Any]) -> bool:
    """
    Send a webhook to a single URL.

    Args:
        client: HTTP client
        url: Webhook URL
        payload: Event payload

    Returns:
        True if the receiver answered with a non-error status
    """
    try:
        response = await client.post(url, json=payload)
    except httpx.HTTPError as e:
        logger.warning(f"Webhook error for {url}: {e}")
        return False

    if response.status_code >= 400:
        logger.warning(f"Webhook failed for {url}: HTTP {response.status_code}")
        return False
    return True


async def notify_order_created(order_id: int, order_no: str, total_amount: str, buyer_id: int, transaction_type: str) -> None:
    await send_webhook("order.created", {
        "order_id": order_id,
        "order_no": order_no,
        "total_amount": total_amount,
        "buyer_id": buyer_id,
        "transaction_type": transaction_type,
    })


async def notify_item_status_changed(order_id: int, item_id: int, status: str) -> None:
    await send_webhook("order_item.status_changed", {
        "order_id": order_id,
        "item_id": item_id,
        "status": status,
    })


async def notify_item_quantity_changed(order_id: int, item_id: int, quantity: int) -> None:
    await send_webhook("order_item.quantity_changed", {
        "order_id": order_id,
        "item_id": item_id,
        "quantity": quantity,
    })
