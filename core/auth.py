"""
Credential Primitives: signed tokens and password digests.

This module wraps the two cryptographic collaborators of the identity service.
It holds no user state; persisting the refresh credential and comparing it on
refresh is the job of `services.identity_service`.

Key Components:
- JWTManager: Mints and verifies HS256 JSON Web Tokens. Access and refresh
  tokens are signed with separate secrets and carry a `type` claim, so a
  token of one kind is never accepted as the other. Every token carries a
  random `jti`, which makes each minted token unique even when two are issued
  for the same user within the same second (refresh rotation relies on this).
- PasswordManager: bcrypt hashing, verification and the password policy.
  Hashing is an explicit step the service calls before persisting; the table
  model never hashes implicitly.

Configuration:
- `ACCESS_TOKEN_SECRET` / `REFRESH_TOKEN_SECRET`: signing keys. When unset a
  random key is generated per process and a warning is logged.
- `ACCESS_TOKEN_EXPIRY_MINUTES` (default 1440) and `REFRESH_TOKEN_EXPIRY_DAYS`
  (default 10).
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Any, Optional

import bcrypt
import jwt

from core.logging_config import get_logger
from core.exceptions import AuthenticationError, ValidationError

logger = get_logger(__name__)

# bcrypt only looks at the first 72 bytes and newer releases refuse longer input
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8


class TokenType(Enum):
    """Token types"""

    ACCESS = "access"
    REFRESH = "refresh"


class JWTManager:
    """JWT token management"""

    def __init__(
        self,
        access_secret: Optional[str] = None,
        refresh_secret: Optional[str] = None,
        algorithm: str = "HS256",
        access_token_expire: Optional[timedelta] = None,
        refresh_token_expire: Optional[timedelta] = None,
    ):
        self.access_secret = (
            access_secret
            or os.getenv("ACCESS_TOKEN_SECRET")
            or self._generate_secret_key("ACCESS_TOKEN_SECRET")
        )
        self.refresh_secret = (
            refresh_secret
            or os.getenv("REFRESH_TOKEN_SECRET")
            or self._generate_secret_key("REFRESH_TOKEN_SECRET")
        )
        self.algorithm = algorithm
        self.access_token_expire = access_token_expire or timedelta(
            minutes=int(os.getenv("ACCESS_TOKEN_EXPIRY_MINUTES", "1440"))
        )
        self.refresh_token_expire = refresh_token_expire or timedelta(
            days=int(os.getenv("REFRESH_TOKEN_EXPIRY_DAYS", "10"))
        )

    def _generate_secret_key(self, env_name: str) -> str:
        """Generate a secure secret key"""
        logger.warning(
            f"Generated new JWT secret key. This should be set via {env_name} environment variable."
        )
        return secrets.token_urlsafe(32)

    def _secret_for(self, token_type: TokenType) -> str:
        if token_type is TokenType.REFRESH:
            return self.refresh_secret
        return self.access_secret

    def _encode(self, claims: Dict[str, Any], token_type: TokenType, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "type": token_type.value,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(payload, self._secret_for(token_type), algorithm=self.algorithm)

    def create_access_token(
        self,
        user_id: str,
        username: str,
        email: str,
        full_name: str,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create JWT access token"""
        token = self._encode(
            {
                "sub": user_id,
                "username": username,
                "email": email,
                "full_name": full_name,
            },
            TokenType.ACCESS,
            expires_delta or self.access_token_expire,
        )
        logger.debug(f"Created access token for user {user_id}")
        return token

    def create_refresh_token(
        self, user_id: str, expires_delta: Optional[timedelta] = None
    ) -> str:
        """Create JWT refresh token"""
        token = self._encode(
            {"sub": user_id},
            TokenType.REFRESH,
            expires_delta or self.refresh_token_expire,
        )
        logger.debug(f"Created refresh token for user {user_id}")
        return token

    def verify_token(
        self, token: str, token_type: TokenType = TokenType.ACCESS
    ) -> Dict[str, Any]:
        """Verify signature, expiry and type; return the claims"""
        try:
            payload = jwt.decode(
                token,
                self._secret_for(token_type),
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"Invalid token: {str(e)}")

        if payload.get("type") != token_type.value:
            raise AuthenticationError(
                f"Invalid token type. Expected {token_type.value}"
            )

        return payload


class PasswordManager:
    """Password hashing and verification"""

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash password using bcrypt"""
        PasswordManager.validate_password_strength(password)

        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify password against hash"""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError as e:
            # Malformed digest or over-long password; neither can match
            logger.error(f"Password verification error: {e}")
            return False

    @staticmethod
    def validate_password_strength(password: str) -> bool:
        """Validate password meets length requirements"""
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
                field="password",
            )

        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"Password must be no more than {MAX_PASSWORD_BYTES} bytes long",
                field="password",
            )

        return True


# Global token manager
_jwt_manager: Optional[JWTManager] = None


def get_jwt_manager() -> JWTManager:
    """Get global JWT manager"""
    global _jwt_manager
    if _jwt_manager is None:
        _jwt_manager = JWTManager()
    return _jwt_manager


def init_jwt_manager(**kwargs) -> JWTManager:
    """Initialize global JWT manager"""
    global _jwt_manager
    _jwt_manager = JWTManager(**kwargs)
    logger.info("Initialized JWT manager")
    return _jwt_manager
