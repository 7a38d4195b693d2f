from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.security import decode_token
from app.db.session import SessionLocal
from app.schemas.principal import Principal, Role

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_principal(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        principal = Principal(
            id=payload.get("sub"),
            tenant_id=payload.get("tenant_id"),
            role=payload.get("role"),
        )
    except (JWTError, ValidationError) as exc:
        raise credentials_exception from exc
    if principal.tenant_id is None and not principal.is_super_admin:
        raise credentials_exception
    return principal


def require_roles(*roles: Role) -> Callable[[Principal], Principal]:
    allowed_roles: Iterable[Role] = set(roles)

    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return principal

    return role_checker


def resolve_tenant(
    tenant_id: str | None = Query(default=None, max_length=36),
    principal: Principal = Depends(get_current_principal),
) -> str:
    """The tenant a request operates on: the caller's own, or any for super admins."""
    if principal.is_super_admin:
        if not tenant_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="tenant_id is required")
        return tenant_id
    if tenant_id and tenant_id != principal.tenant_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return principal.tenant_id
