"""Authentication & Authorization for the TWAP oracle.

Attesters present a JWT. The token carries their permissions; Redis holds
the revocation list and the accounts table says whether the attester is
still active. The oracle engine only sees `authorize(caller) -> bool`.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Set
import jwt
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings


@dataclass
class AuthContext:
    """Authenticated caller context."""
    account_id: str
    username: str
    role: str
    permissions: Set[str]
    token_jti: str

    def has_permission(self, permission: str) -> bool:
        """Check if caller has a specific permission."""
        return permission in self.permissions or Permissions.ADMIN_FULL in self.permissions

    def can_attest(self) -> bool:
        return self.has_permission(Permissions.VOLATILITY_ATTEST)


class AuthError(Exception):
    """Authentication/Authorization error."""
    def __init__(self, message: str, code: str):
        self.message = message
        self.code = code
        super().__init__(message)


class Permissions:
    """Permission constants."""
    ORACLE_READ = "oracle:read"
    VOLATILITY_ATTEST = "volatility:attest"
    ADMIN_FULL = "admin:full"


def authorize_attester(caller: Any) -> bool:
    """Capability hook handed to the oracle engine."""
    return isinstance(caller, AuthContext) and caller.can_attest()


class AuthService:
    """JWT authentication service."""

    def __init__(self, redis_client: redis.Redis, secret: Optional[str] = None,
                 token_expiry_minutes: int = 15):
        self.secret = secret or get_settings().jwt_secret
        self.token_expiry_minutes = token_expiry_minutes
        self.redis = redis_client

    def issue_token(self, account_id: str, username: str, role: str,
                    permissions: Iterable[str]) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": account_id,
            "username": username,
            "role": role,
            "permissions": sorted(permissions),
            "iat": now,
            "exp": now + timedelta(minutes=self.token_expiry_minutes),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    async def validate_token(self, token: str, db: Optional[AsyncSession] = None) -> AuthContext:
        """Validate JWT token and return auth context."""
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                options={"verify_exp": True}
            )
        except jwt.ExpiredSignatureError:
            raise AuthError("Token expired", "TOKEN_EXPIRED")
        except jwt.InvalidTokenError as e:
            raise AuthError(f"Invalid token: {e}", "INVALID_TOKEN")

        jti = payload.get("jti", "")
        if await self.redis.exists(f"token_blacklist:{jti}"):
            raise AuthError("Token revoked", "TOKEN_REVOKED")

        if db is not None:
            await self._check_account(db, payload["sub"])

        return AuthContext(
            account_id=payload["sub"],
            username=payload.get("username", ""),
            role=payload.get("role", ""),
            permissions=set(payload.get("permissions", [])),
            token_jti=jti
        )

    @staticmethod
    async def _check_account(db: AsyncSession, account_id: str) -> None:
        from .models import Account

        account = await db.get(Account, account_id)
        if not account:
            raise AuthError("Account not found", "ACCOUNT_NOT_FOUND")
        if not account.is_active:
            raise AuthError("Account disabled", "ACCOUNT_DISABLED")
        if account.locked_until and account.locked_until > datetime.now(timezone.utc):
            raise AuthError("Account locked", "ACCOUNT_LOCKED")

    async def revoke_token(self, jti: str, ttl_seconds: int = 86400) -> None:
        """Revoke a token by adding it to the blacklist."""
        await self.redis.setex(f"token_blacklist:{jti}", ttl_seconds, "1")


def require_permission(*permissions: str):
    """Decorator to require specific permissions."""
    def decorator(func):
        async def wrapper(self, auth: AuthContext, *args, **kwargs):
            if not any(auth.has_permission(p) for p in permissions):
                raise AuthError(
                    f"Missing permission: {', '.join(permissions)}",
                    "FORBIDDEN"
                )
            return await func(self, auth, *args, **kwargs)
        return wrapper
    return decorator
