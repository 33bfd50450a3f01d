"""Bearer-token authentication for the approval API.

Tokens are HS256 JWTs issued by the identity provider. The ``sub`` claim is the
actor id written to every audit entry, so a token without one is refused.
"""
from __future__ import annotations

from typing import Any, Dict

import jwt
from fastapi import Header, HTTPException, status

from src.core.config import settings


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bearer_token(authorization: str) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Missing bearer token")
    return token.strip()


def require_auth(authorization: str = Header(...)) -> Dict[str, Any]:
    """Return ``{"actor_id", "claims"}`` for the caller's bearer token."""
    token = _bearer_token(authorization)
    try:
        claims = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"require": ["sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token expired") from exc
    except jwt.MissingRequiredClaimError as exc:
        raise _unauthorized("Subject missing in token") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Invalid token") from exc

    actor_id = str(claims["sub"]).strip()
    if not actor_id:
        raise _unauthorized("Subject missing in token")

    return {"actor_id": actor_id, "claims": claims}
