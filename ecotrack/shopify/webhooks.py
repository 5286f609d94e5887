"""
Shopify Webhook Authentication
"""

import base64
import hashlib
import hmac
from typing import Optional

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_HEADER = "X-Shopify-Shop-Domain"
WEBHOOK_ID_HEADER = "X-Shopify-Webhook-Id"


def compute_hmac(secret: str, body: bytes) -> str:
    """Base64 HMAC-SHA256 of the raw request body, as Shopify signs it"""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def verify_hmac(secret: str, body: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(compute_hmac(secret, body), signature.strip())
