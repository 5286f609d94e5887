"""
Shopify Webhook Receiver
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ecotrack.database.connection import get_db_dependency
from ecotrack.ingestion.webhooks import WebhookEvent
from ecotrack.serving.api.dependencies import get_services, verify_shopify_webhook
from ecotrack.serving.services import AppServices

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/webhooks", dependencies=[Depends(verify_shopify_webhook)])
async def receive_webhook(
    request: Request,
    x_shopify_topic: str = Header(...),
    x_shopify_shop_domain: str = Header(...),
    x_shopify_webhook_id: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_db_dependency),
    services: AppServices = Depends(get_services),
) -> Dict[str, Any]:
    """
    Apply one webhook delivery.

    Deliveries for unknown shops or unsupported topics are acknowledged with
    ``handled: false`` so Shopify does not retry them.
    """
    try:
        payload = json.loads(await request.body())
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    event = WebhookEvent(
        topic=x_shopify_topic,
        shop_domain=x_shopify_shop_domain,
        payload=payload,
        webhook_id=x_shopify_webhook_id,
    )
    try:
        outcome = await services.webhooks.dispatch(session, event)
    except ValidationError as e:
        logger.warning("Invalid webhook payload", topic=x_shopify_topic, errors=e.error_count())
        raise HTTPException(status_code=400, detail=f"Invalid {x_shopify_topic} payload")

    return outcome.to_dict()
