"""
Auth0 token verification and tenant claim extraction.

Signing keys come from the tenant's JWKS endpoint and are held in memory
for six hours. An unknown ``kid`` forces one refetch so key rotation does
not lock users out.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwt

from app.config import get_settings

logger = logging.getLogger(__name__)

CLAIM_NAMESPACE = "https://brandhub.app"


class JwksCache:
    """In-memory JWKS keyed by Auth0 domain."""

    TTL_SECONDS = 6 * 60 * 60

    def __init__(self) -> None:
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Dict[str, float] = {}

    async def _fetch(self, domain: str) -> Dict[str, Any]:
        async with httpx.AsyncClient() as client:
            resp = await client.get(f"https://{domain}/.well-known/jwks.json", timeout=10.0)
            resp.raise_for_status()
            return resp.json()

    async def signing_key(self, domain: str, kid: str) -> Optional[Dict[str, str]]:
        """Return the RSA key for ``kid``, refetching once if it is unknown."""
        key = self._lookup(await self._jwks(domain), kid)
        if key is None:
            logger.info("Key kid=%s not cached for %s, refetching JWKS", kid, domain)
            key = self._lookup(await self._jwks(domain, force=True), kid)
        return key

    async def _jwks(self, domain: str, force: bool = False) -> Dict[str, Any]:
        now = time.time()
        fresh = now - self._fetched_at.get(domain, 0.0) < self.TTL_SECONDS
        if not force and fresh and domain in self._keys:
            return self._keys[domain]

        logger.info("Refreshing Auth0 JWKS from %s", domain)
        self._keys[domain] = await self._fetch(domain)
        self._fetched_at[domain] = now
        return self._keys[domain]

    @staticmethod
    def _lookup(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, str]]:
        for key in jwks.get("keys", []):
            if key.get("kid") == kid:
                return {name: key[name] for name in ("kty", "kid", "use", "n", "e")}
        return None


_jwks_cache = JwksCache()


async def verify_auth0_token(token: str) -> Dict[str, Any]:
    """
    Verify an Auth0 RS256 JWT and return its claims.

    Raises:
        ValueError: If the token is malformed, signed by an unknown key, or
            fails issuer/audience/expiry validation.
    """
    settings = get_settings()
    domain = settings.auth0_domain
    audience = settings.auth0_audience

    if not domain or not audience:
        raise ValueError("Auth0 domain and audience must be configured")

    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JWTError as e:
        raise ValueError(f"Invalid token header: {e}")
    if not kid:
        raise ValueError("Token header missing 'kid'")

    rsa_key = await _jwks_cache.signing_key(domain, kid)
    if not rsa_key:
        raise ValueError(f"Unable to find matching key for kid={kid}")

    try:
        return jwt.decode(
            token,
            rsa_key,
            algorithms=["RS256"],
            audience=audience,
            issuer=f"https://{domain}/",
        )
    except JWTError as e:
        raise ValueError(f"Token verification failed: {e}")


def organization_claims(payload: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """
    Pull the tenant claims out of verified token claims.

    Auth0 Organizations put the active organization in ``org_id`` (and
    ``org_name`` when enabled); the member's role comes from a namespaced
    custom claim set by a login Action.
    """
    roles = payload.get(f"{CLAIM_NAMESPACE}/roles") or []
    return {
        "organization_id": payload.get("org_id"),
        "organization_name": payload.get("org_name"),
        "organization_role": roles[0] if roles else None,
    }
