import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from diagnexus.auth import UserPrincipal, hash_password
from diagnexus.exceptions import Conflict, NotFound
from diagnexus.models.user import User
from diagnexus.schemas.user import UserCreate, UserUpdate

logger = logging.getLogger("diagnexus.users")


class UserService:
    async def list_users(self, db: AsyncSession) -> list[User]:
        result = await db.execute(
            select(User)
            .where(User.is_active.is_(True))
            .order_by(User.created_at.desc(), User.user_id.desc())
        )
        return list(result.scalars().all())

    async def get_user(self, user_id: int, db: AsyncSession) -> User:
        user = await db.get(User, user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return user

    async def _email_taken(self, email: str, db: AsyncSession, exclude_id: int = None) -> bool:
        query = select(User.user_id).where(func.lower(User.email) == email.lower())
        if exclude_id is not None:
            query = query.where(User.user_id != exclude_id)
        return (await db.scalar(query)) is not None

    async def create_user(self, data: UserCreate, actor: UserPrincipal, db: AsyncSession) -> User:
        if await self._email_taken(data.email, db):
            raise Conflict("Email already exists")

        user = User(
            role=data.role,
            name=data.name.strip(),
            email=data.email,
            password_hash=await asyncio.to_thread(hash_password, data.password),
            updated_by=actor.user_id,
            is_active=True,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise Conflict("Email already exists") from e
        await db.refresh(user)
        logger.info("Admin %s created %s account %s", actor.user_id, user.role, user.user_id)
        return user

    async def update_user(self, user_id: int, data: UserUpdate, actor: UserPrincipal, db: AsyncSession) -> User:
        user = await self.get_user(user_id, db)

        update_data = data.model_dump(exclude_unset=True)
        # Explicit nulls mean "leave unchanged"
        update_data = {k: v for k, v in update_data.items() if v is not None}
        if "name" in update_data:
            update_data["name"] = update_data["name"].strip()
        if "email" in update_data and await self._email_taken(update_data["email"], db, exclude_id=user_id):
            raise Conflict("Email already exists")

        password = update_data.pop("password", None)
        if password:
            user.password_hash = await asyncio.to_thread(hash_password, password)
        for key, value in update_data.items():
            setattr(user, key, value)
        user.updated_by = actor.user_id
        user.updated_date = datetime.now(timezone.utc)

        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise Conflict("Email already exists") from e
        await db.refresh(user)
        logger.info("Admin %s updated user %s fields=%s", actor.user_id, user_id,
                    sorted(update_data) + (["password"] if password else []))
        return user

    async def soft_delete_user(self, user_id: int, actor: UserPrincipal, db: AsyncSession) -> None:
        user = await self.get_user(user_id, db)
        user.is_active = False
        user.updated_by = actor.user_id
        user.updated_date = datetime.now(timezone.utc)
        await db.commit()
        logger.info("Admin %s deactivated user %s", actor.user_id, user_id)


user_service = UserService()
