"""
Auth primitives: password hashing, signed session tokens and the principal
attached to each request.

Tokens are HS256 JWTs keyed by ``JWT_SECRET_KEY``. A token on its own only
proves who it was issued to; ``AuthService.resolve_token`` still re-checks
that the account is active on every request.
"""

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
from diagnexus.config import get_settings

ALGORITHM = "HS256"

logger = logging.getLogger("diagnexus.auth")


@dataclass
class TokenClaims:
    user_id: int
    email: str
    role: str
    issued_at: int
    expires_at: int


@dataclass
class UserPrincipal:
    """Resolved identity attached to each request."""
    user_id: int
    name: str
    email: str
    role: str                     # "Admin" | "Doctor" | "Patient"

    @property
    def is_patient(self) -> bool:
        return self.role == "Patient"

    @property
    def can_view_all_reports(self) -> bool:
        return self.role in ("Admin", "Doctor")

    def can_access_owner(self, owner_id: int) -> bool:
        if self.can_view_all_reports:
            return True
        return owner_id == self.user_id

    @classmethod
    def from_user(cls, user) -> "UserPrincipal":
        return cls(user_id=user.user_id, name=user.name, email=user.email, role=user.role)


_pwd_contexts: dict[int, CryptContext] = {}


def _pwd_context() -> CryptContext:
    rounds = get_settings().bcrypt_rounds
    if rounds not in _pwd_contexts:
        _pwd_contexts[rounds] = CryptContext(
            schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds
        )
    return _pwd_contexts[rounds]


def hash_password(password: str) -> str:
    return _pwd_context().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context().verify(password, password_hash)
    except ValueError:
        # Malformed hash in the row
        logger.warning("Stored password hash could not be parsed")
        return False


def create_token(user, expires_in: Optional[int] = None) -> str:
    """Create a signed JWT for the given User model instance."""
    settings = get_settings()
    now = int(time.time())
    ttl = settings.token_expire_seconds if expires_in is None else expires_in
    payload = {
        "sub": str(user.user_id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[TokenClaims]:
    """Decode and validate a JWT. Returns None if invalid/expired."""
    try:
        settings = get_settings()
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[ALGORITHM])
        return TokenClaims(
            user_id=int(payload["sub"]),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            issued_at=int(payload.get("iat", 0)),
            expires_at=int(payload["exp"]),
        )
    except (JWTError, KeyError, ValueError, TypeError) as e:
        logger.info("Rejected token: %s", e)
        return None


def token_fingerprint(token: str) -> str:
    """What the session log stores instead of the token itself."""
    return hashlib.sha256(token.encode()).hexdigest()
