from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from diagnexus.auth import UserPrincipal
from diagnexus.database import get_db
from diagnexus.exceptions import Forbidden, Unauthorized
from diagnexus.services.auth_service import auth_service
from diagnexus.services.storage_service import StorageService

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: AsyncSession = Depends(get_db),
) -> UserPrincipal:
    """Resolve the bearer token to an active account or fail with 401."""
    if not creds or not creds.credentials:
        raise Unauthorized("Unauthorized")
    principal = await auth_service.resolve_token(creds.credentials, db)
    if principal is None:
        raise Unauthorized("Invalid or expired token")
    return principal


def require_roles(*roles: str):
    async def checker(current_user: UserPrincipal = Depends(get_current_user)) -> UserPrincipal:
        if current_user.role not in roles:
            raise Forbidden(f"{' or '.join(roles)} access required")
        return current_user
    return checker


require_admin = require_roles("Admin")


def get_storage(request: Request) -> StorageService:
    return request.app.state.storage
