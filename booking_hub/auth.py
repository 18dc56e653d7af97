"""
Request authentication

Token verification is done by the upstream bookings API; here we only make
sure a bearer token is present and hand it to the principal's session.
"""
import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from .errors import AuthError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


class Principal(BaseModel):
    """The caller whose entities are aggregated"""

    token: str


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Principal:
    """Get the current principal from the Authorization header"""
    if not credentials or not credentials.credentials:
        logger.warning(f"🔒 Missing bearer token for {request.url.path}")
        raise AuthError(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )

    token = credentials.credentials.strip()
    if not token or len(token) > 4096:
        logger.warning(f"⚠️ Malformed bearer token for {request.url.path}, length: {len(token)}")
        raise AuthError("Invalid token format")

    return Principal(token=token)
