"""
SalesOps - Kajabi (token OAuth client_credentials)
"""

import logging

import config
from config import http_client
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("kajabi")

TOKEN_URL = "https://api.kajabi.com/v1/oauth/token"
DEFAULT_EXPIRES_IN = 7200


async def fetch_access_token() -> dict:
    """
    client_credentials -> {"access_token", "expires_in"}

    Raises:
        UpstreamError(503) si KAJABI_CLIENT_ID / SECRET absents
        UpstreamError(status amont, ou 502 si réponse OK sans token)
    """
    if not config.KAJABI_CLIENT_ID or not config.KAJABI_CLIENT_SECRET:
        raise UpstreamError("Kajabi credentials not configured", 503)

    async with http_client() as client:
        resp = await client.post(
            TOKEN_URL,
            data={
                "grant_type": "client_credentials",
                "client_id": config.KAJABI_CLIENT_ID,
                "client_secret": config.KAJABI_CLIENT_SECRET,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    body = response_body(resp)
    token = body.get("access_token") if isinstance(body, dict) else None
    if resp.status_code >= 400 or not token:
        status = 502 if resp.status_code < 400 else resp.status_code
        logger.error(f"Kajabi token failed ({resp.status_code})")
        raise UpstreamError("Failed to get Kajabi token", status, body)

    return {"access_token": token, "expires_in": body.get("expires_in") or DEFAULT_EXPIRES_IN}
