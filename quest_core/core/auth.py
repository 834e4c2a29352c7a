"""Bearer token verification and FastAPI authentication dependencies.

Identity is issued by an external provider; this module only verifies
HS256 tokens signed with the shared secret and exposes the caller as a
``CurrentUser``.
"""

from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from quest_core.core.config import settings
from quest_core.schemas.auth import CurrentUser, TokenClaims
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

security = HTTPBearer(auto_error=False)


class JWTVerifier:
    """Verifies HS256 access tokens against the configured secret."""

    def __init__(self, secret: str, issuer: str = "", audience: str = ""):
        self.secret = secret
        self.issuer = issuer
        self.audience = audience

    def verify_token(self, token: str) -> TokenClaims:
        """Decode ``token`` and validate its signature and claims.

        Raises:
            jwt.InvalidTokenError: If the token is malformed, expired or
                signed with another key
        """
        if not self.secret:
            raise jwt.InvalidTokenError("AUTH_JWT_SECRET is not configured")

        options = {"require": ["sub", "exp"], "verify_aud": bool(self.audience)}
        payload = jwt.decode(
            token,
            self.secret,
            algorithms=["HS256"],
            audience=self.audience or None,
            issuer=self.issuer or None,
            options=options,
        )
        return TokenClaims(**payload)


def get_jwt_verifier() -> JWTVerifier:
    return JWTVerifier(
        secret=settings.auth.jwt_secret,
        issuer=settings.auth.jwt_issuer,
        audience=settings.auth.jwt_audience,
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    verifier: JWTVerifier = Depends(get_jwt_verifier),
) -> CurrentUser:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Raises:
        HTTPException: 401 when the header is missing or the token invalid
    """
    if not credentials:
        LOGGER.warning("No authorization credentials provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        claims = verifier.verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Invalid token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    return CurrentUser(id=claims.sub, email=claims.email, role=claims.role or "user")


def verify_realtime_identity(user_id: str, token: Optional[str], verifier: Optional[JWTVerifier] = None) -> bool:
    """Check an ``authenticate`` message from the realtime channel.

    Without a configured secret any non-empty ``user_id`` is accepted;
    otherwise the token subject must equal ``user_id``.
    """
    verifier = verifier or get_jwt_verifier()
    if not user_id:
        return False
    if not verifier.secret:
        return True
    if not token:
        return False
    try:
        return verifier.verify_token(token).sub == user_id
    except jwt.InvalidTokenError as e:
        LOGGER.warning(f"Realtime authentication rejected: {e}", extra={"user_id": user_id})
        return False
