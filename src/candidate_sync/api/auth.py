"""Bearer token authentication for the webhook API."""

from fastapi import Header, HTTPException

from .config import get_settings


async def verify_webhook_token(authorization: str = Header(...)) -> None:
    """Validate the bearer token configured on the CRM webhook."""
    expected = f"Bearer {get_settings().WEBHOOK_API_KEY}"
    if authorization != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing bearer token")
