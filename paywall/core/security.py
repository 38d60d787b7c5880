"""Access cookie handling and API access logging"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request, Response

from paywall.schemas.access import AccessToken

api_access_logger = logging.getLogger("api_access")


def set_access_cookie(response: Response, token: AccessToken) -> None:
    """Store an access token in a cookie named after its article.

    Expiry matches the token's expires_at exactly.
    """
    expires_at = token.expires_at.astimezone(timezone.utc)
    remaining = int((expires_at - datetime.now(timezone.utc)).total_seconds())
    response.set_cookie(
        key=token.article_slug,
        value=token.token_id,
        path="/",
        httponly=True,
        secure=True,
        samesite="lax",
        expires=expires_at,
        max_age=max(remaining, 0)
    )


def get_client_ip(request: Request) -> str:
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return client_ip


def log_api_access(
    request: Request,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log request metadata. Query strings are omitted: magic links carry token ids."""
    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "client_ip": get_client_ip(request),
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "status_code": status_code,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")
