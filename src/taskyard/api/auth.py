"""Operator authorization for the queue admin surface.

Authentication belongs to the host application: its middleware places the
authenticated principal on `request.state.user`. This module only checks
that the principal holds an operator role.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status

logger = logging.getLogger(__name__)

OPERATOR_ROLES = frozenset({"owner", "admin"})


@dataclass
class AuthenticatedUser:
    """Principal shape expected on request.state.user.

    Attributes:
        user_id: Identifier of the authenticated user.
        roles: Organization roles held by the user.
        is_active: Whether the account is active.
        metadata: Additional host-specific data.
    """

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


async def require_operator(request: Request) -> AuthenticatedUser:
    """Dependency that requires an owner or admin principal.

    Raises:
        HTTPException: 401 without a principal, 403 without an operator role.
    """
    user = getattr(request.state, "user", None)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not getattr(user, "is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    roles = frozenset(getattr(user, "roles", ()))
    if not roles & OPERATOR_ROLES:
        logger.warning(
            "Queue admin access denied: user_id=%s, roles=%s",
            getattr(user, "user_id", None),
            sorted(roles),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator role required",
        )

    return user


OperatorUser = Annotated[AuthenticatedUser, Depends(require_operator)]
