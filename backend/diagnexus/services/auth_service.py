import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from diagnexus.auth import (
    UserPrincipal,
    create_token,
    decode_token,
    token_fingerprint,
    verify_password,
)
from diagnexus.config import get_settings
from diagnexus.database import STORE_ERRORS
from diagnexus.exceptions import (
    AccountInactive,
    InvalidCredentials,
    InvalidInput,
    ServiceUnavailable,
    SideEffect,
)
from diagnexus.models.session_log import SessionLog
from diagnexus.models.user import User
from diagnexus.schemas.user import UserResponse

logger = logging.getLogger("diagnexus.auth")


@dataclass
class AuthResult:
    user: UserResponse
    token: str
    expires_in: int
    session_log: SideEffect


async def record_session(
    db: AsyncSession, user_id: int, marker: str, expires_at: datetime, name: str = "session_log"
) -> SideEffect:
    """Insert and commit a sessions row; a failure is reported, not raised.

    Commits the session, so callers must already have committed their own work
    and snapshotted any ORM state they still need.
    """
    try:
        db.add(SessionLog(user_id=user_id, token_hash=marker, expires_at=expires_at))
        await db.commit()
        return SideEffect(name=name, ok=True)
    except STORE_ERRORS as e:
        await db.rollback()
        logger.warning("Failed to write %s for user %s: %s", name, user_id, e)
        return SideEffect(name=name, ok=False, error=str(e))


class AuthService:
    async def authenticate(self, email: str, password: str, db: AsyncSession) -> AuthResult:
        if not email or not password:
            raise InvalidInput("Email and password are required")

        normalized = email.strip().lower()
        try:
            result = await db.execute(select(User).where(func.lower(User.email) == normalized))
            user = result.scalar_one_or_none()
        except STORE_ERRORS as e:
            logger.exception("Credential lookup failed")
            raise ServiceUnavailable("Authentication service unavailable") from e

        if user is None:
            logger.info("Login failed: unknown email %s", normalized)
            raise InvalidCredentials()
        if not user.is_active:
            logger.info("Login refused: account %s is inactive", user.user_id)
            raise AccountInactive()
        if not await asyncio.to_thread(verify_password, password, user.password_hash):
            logger.info("Login failed: bad password for user %s", user.user_id)
            raise InvalidCredentials()

        settings = get_settings()
        snapshot = UserResponse.model_validate(user)
        token = create_token(user)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=settings.token_expire_seconds)
        session_log = await record_session(db, snapshot.user_id, token_fingerprint(token), expires_at)

        logger.info("User %s (%s) logged in", snapshot.user_id, snapshot.role)
        return AuthResult(
            user=snapshot,
            token=token,
            expires_in=settings.token_expire_seconds,
            session_log=session_log,
        )

    async def resolve_token(self, token: str, db: AsyncSession) -> Optional[UserPrincipal]:
        """Return the principal for a valid token held by an active account, else None."""
        claims = decode_token(token)
        if claims is None:
            return None
        try:
            result = await db.execute(
                select(User).where(User.user_id == claims.user_id, User.is_active.is_(True))
            )
            user = result.scalar_one_or_none()
        except STORE_ERRORS as e:
            logger.exception("Token lookup failed")
            raise ServiceUnavailable("Authentication service unavailable") from e
        if user is None:
            logger.info("Token for user %s no longer maps to an active account", claims.user_id)
            return None
        return UserPrincipal.from_user(user)


auth_service = AuthService()
