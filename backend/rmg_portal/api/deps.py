"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, status

from ..domain.models import ActorContext
from ..domain.enums import Role
from ..domain.errors import AuthenticationError, PermissionDeniedError
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


def actor_from_headers(
    user_id: Optional[str],
    name: Optional[str],
    email: Optional[str],
    department: Optional[str],
    role: Optional[str]
) -> ActorContext:
    """
    Build the acting user from identity headers set by the gateway

    Raises:
        AuthenticationError: id or role missing, or role unknown
    """
    if not user_id or not role:
        raise AuthenticationError("Identity headers X-User-Id and X-User-Role are required")
    try:
        parsed_role = Role(role.strip().upper())
    except ValueError:
        raise AuthenticationError(f"Unknown role '{role}'", details={"role": role})

    return ActorContext(
        employee_id=user_id.strip(),
        name=(name or user_id).strip(),
        email=email,
        department=department,
        role=parsed_role,
    )


async def get_current_actor_dep(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_department: Optional[str] = Header(None, alias="X-User-Department"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role")
) -> ActorContext:
    """
    Dependency to get the acting user from trusted identity headers

    Raises:
        HTTPException: 401 if identity headers are missing or invalid
    """
    try:
        return actor_from_headers(x_user_id, x_user_name, x_user_email, x_user_department, x_user_role)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.to_dict()
        )


def require_roles(*roles: Role):
    """
    Dependency factory restricting a route to the given roles

    Usage:
        actor: ActorContext = Depends(require_roles(Role.HR, Role.SUPER_ADMIN))
    """
    async def _dependency(
        actor: ActorContext = Depends(get_current_actor_dep)
    ) -> ActorContext:
        if actor.role not in roles:
            error = PermissionDeniedError(
                "You do not have access to this resource",
                details={"required_roles": [r.value for r in roles]}
            )
            raise HTTPException(status_code=error.http_status, detail=error.to_dict())
        return actor

    return _dependency
