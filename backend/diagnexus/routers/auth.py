from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession
from diagnexus.auth import UserPrincipal
from diagnexus.database import get_db
from diagnexus.deps import get_current_user
from diagnexus.schemas.auth import LoginRequest, LoginResponse
from diagnexus.schemas.common import ok
from diagnexus.services.auth_service import auth_service

router = APIRouter()


@router.post("/login")
async def login(body: LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    """
    Exchange email + password for a bearer token.
    The token is returned in the X-Auth-Token header and in the body.
    """
    result = await auth_service.authenticate(body.email, body.password, db)
    response.headers["X-Auth-Token"] = result.token
    payload = LoginResponse(user=result.user, access_token=result.token, expires_in=result.expires_in)
    return ok(payload.model_dump(mode="json"), message="Login successful")


@router.get("/me")
async def me(current_user: UserPrincipal = Depends(get_current_user)):
    return ok({
        "user_id": current_user.user_id,
        "name": current_user.name,
        "email": current_user.email,
        "role": current_user.role,
    })
