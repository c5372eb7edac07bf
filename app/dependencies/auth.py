"""
Authentication dependencies — Auth0 JWT verification and tenant scoping.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import get_settings
from app.core.auth0 import CLAIM_NAMESPACE, organization_claims, verify_auth0_token

logger = logging.getLogger(__name__)

# Make HTTPBearer optional when auth is disabled
security = HTTPBearer(auto_error=False)

MOCK_USER = {
    "id": "auth0|test-user-id",
    "email": "test@brandhub.app",
    "organization_id": "org_test",
    "organization_name": "Test Organization",
    "organization_role": "org:admin",
    "token": "",
}


def _user_from_claims(payload: Dict[str, Any], token: str) -> Dict[str, Any]:
    return {
        "id": payload.get("sub"),
        "email": payload.get("email") or payload.get(f"{CLAIM_NAMESPACE}/email", ""),
        **organization_claims(payload),
        "token": token,
    }


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """
    Verify the Auth0 JWT and return the caller.

    Returns dict with ``id`` (Auth0 sub), ``email``, ``organization_id``,
    ``organization_name``, ``organization_role`` and the raw ``token``
    (forwarded to the invite-issuing function).

    If AUTH_DISABLED=true in .env, returns a mock test user.
    """
    settings = get_settings()

    if settings.auth_disabled:
        logger.warning("Auth0 disabled - using mock test user")
        return dict(MOCK_USER)

    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials

    try:
        payload = await verify_auth0_token(token)
    except ValueError as e:
        logger.error("Auth0 token verification failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _user_from_claims(payload, token)


async def get_current_organization(
    user: Dict[str, Any] = Depends(get_current_user),
) -> Dict[str, Any]:
    """
    Require an active organization on the caller's token.

    Raises 403 when the token carries no tenant scope.
    """
    if not user.get("organization_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No active organization for this account",
        )
    return user


async def get_websocket_user(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Resolve a caller for WebSocket routes, where the bearer token arrives as
    a query parameter. Returns None when the token is missing or invalid.
    """
    settings = get_settings()
    if settings.auth_disabled:
        return dict(MOCK_USER)
    if not token:
        return None
    try:
        payload = await verify_auth0_token(token)
    except ValueError as e:
        logger.warning("WebSocket token rejected: %s", e)
        return None
    return _user_from_claims(payload, token)
