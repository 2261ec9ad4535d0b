"""Request principal

Authentication happens upstream: the gateway verifies the caller and
forwards the identity in trusted headers. This module turns those
headers into an explicit Principal for each request.

Headers:
    X-User-Id: authenticated user id (required)
    X-User-Role: user | admin | system (default: user)
    X-Internal-Token: shared secret for internal callers (scheduler trigger)
"""

import secrets
from typing import Annotated

import structlog
from fastapi import Depends, Header, HTTPException

from ..config import get_settings
from ..core.entities import Principal, Role

logger = structlog.get_logger()


async def get_principal(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Principal:
    """Build the request principal from gateway headers"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    try:
        role = Role((x_user_role or Role.USER.value).lower())
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_user_role}") from None
    return Principal(user_id=x_user_id, role=role)


PrincipalDep = Annotated[Principal, Depends(get_principal)]


async def require_admin(principal: PrincipalDep) -> Principal:
    """Reject callers that are not admins"""
    if not principal.is_admin:
        logger.warning("admin_required", user_id=principal.user_id, role=principal.role.value)
        raise HTTPException(status_code=403, detail="Admin role required")
    return principal


AdminDep = Annotated[Principal, Depends(require_admin)]


async def verify_internal_token(
    x_internal_token: Annotated[str | None, Header()] = None,
) -> bool:
    """Check the shared secret of internal callers"""
    expected = get_settings().internal_token
    if not expected or not x_internal_token:
        raise HTTPException(status_code=403, detail="Internal token required")
    if not secrets.compare_digest(x_internal_token.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Invalid internal token")
    return True


InternalTokenDep = Annotated[bool, Depends(verify_internal_token)]
