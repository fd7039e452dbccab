"""FastAPI dependencies for authentication and authorization.

Dependencies:
  get_current_user       → decode JWT, load user from DB, return User
  get_principal          → the (id, role) pair the access policy works on
  require_role(...)      → restrict to specific roles
  get_client_ip          → best-effort origin address for the audit trail
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.auth.policy import Principal
from app.database import get_db
from app.models.user import User, UserRole

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core user dependency ────────────────────────────────────

async def resolve_user(token: str, db: AsyncSession) -> User | None:
    """Return the active user a bearer token belongs to, or None."""
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        return None
    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the JWT, load the user, and return it."""
    user = await resolve_user(token, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authorized, token invalid or user inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def get_principal(user: User = Depends(get_current_user)) -> Principal:
    return Principal.from_user(user)


# ── Role-based access control ───────────────────────────────

def require_role(*roles: UserRole):
    """Dependency factory: restrict to one or more roles.

    Usage:
        @router.get("/created-by-me")
        async def created(user: User = Depends(require_role(UserRole.MANAGER))):
            ...
    """
    async def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role '{user.role.value}' is not authorized to access this route",
            )
        return user

    return _check


# ── Request origin ──────────────────────────────────────────

def get_client_ip(request: Request) -> str | None:
    """First hop of X-Forwarded-For, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
