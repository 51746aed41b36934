from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from diagnexus.auth import UserPrincipal
from diagnexus.database import get_db
from diagnexus.deps import require_admin
from diagnexus.schemas.common import ok
from diagnexus.schemas.user import UserCreate, UserUpdate, UserResponse
from diagnexus.services.user_service import user_service

router = APIRouter()


def _dump(user) -> dict:
    return UserResponse.model_validate(user).model_dump(mode="json")


@router.get("")
async def list_users(
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    users = await user_service.list_users(db)
    return ok([_dump(u) for u in users])


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    user = await user_service.create_user(data, current_user, db)
    return ok(_dump(user), message="User created successfully")


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    user = await user_service.update_user(user_id, data, current_user, db)
    return ok(_dump(user), message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(require_admin),
):
    await user_service.soft_delete_user(user_id, current_user, db)
    return ok({"user_id": user_id}, message="User deleted successfully")
