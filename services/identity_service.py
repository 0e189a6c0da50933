"""
Identity & Session Service.

This module owns user accounts and their session credentials. Every operation
receives the database session and, where relevant, the id of the
authenticated principal explicitly; nothing is read from ambient request
state.

Session model:
- An access token is short-lived and stateless; it is never stored.
- A refresh token is long-lived and stored on the user record. A refresh call
  succeeds only when the presented token is byte-for-byte the stored one, and
  it rotates the stored value. A token that has been rotated out (or cleared by
  logout) is rejected without touching the database, so each user has at most
  one live session.

    NoSession --login--> Active[R1] --refresh(R1)--> Active[R2] --logout--> NoSession
                                     refresh(R1) again -> AuthenticationError

Validation always happens before any write, so a rejected call has no side
effects. Database failures roll back and surface as `InternalError`.
"""

import secrets
from typing import Any, Dict, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.auth import JWTManager, PasswordManager, TokenType, get_jwt_manager
from core.database import commit_or_raise
from core.exceptions import (
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    ValidationError,
    VideoAPIException,
)
from core.logging_config import get_logger
from core.models import User, utc_now
from core.validation import InputValidator
from providers.storage_provider import StorageProvider, get_storage_provider

logger = get_logger(__name__)

PUBLIC_USER_FIELDS = (
    "id",
    "username",
    "email",
    "full_name",
    "avatar",
    "cover_image",
    "created_at",
    "updated_at",
)


def public_user(user: User) -> Dict[str, Any]:
    """User fields that may leave the service (no password, no refresh token)"""
    return {field: getattr(user, field) for field in PUBLIC_USER_FIELDS}


class IdentityService:
    """Service layer for accounts and session credentials"""

    def __init__(
        self,
        jwt_manager: Optional[JWTManager] = None,
        storage: Optional[StorageProvider] = None,
    ):
        self._jwt_manager = jwt_manager
        self._storage = storage

    @property
    def jwt_manager(self) -> JWTManager:
        return self._jwt_manager or get_jwt_manager()

    @property
    def storage(self) -> StorageProvider:
        return self._storage or get_storage_provider()

    async def _require_user(self, session: AsyncSession, user_id: str) -> User:
        if InputValidator.is_blank(user_id):
            raise ValidationError("User id is missing", field="user_id")
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def _discard_uploads(self, uploads):
        """Remove assets uploaded for a registration that did not commit"""
        for uploaded in uploads:
            try:
                await self.storage.delete(uploaded)
            except InternalError as e:
                logger.warning(f"Orphaned upload {uploaded.get('url')}: {e.message}")

    # Registration ---------------------------------------------------------

    async def register(
        self,
        session: AsyncSession,
        full_name: Optional[str],
        email: Optional[str],
        username: Optional[str],
        password: Optional[str],
        avatar_path: Optional[str],
        cover_image_path: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a new account and return its public fields"""
        InputValidator.require_fields(
            {
                "full_name": full_name,
                "email": email,
                "username": username,
                "password": password,
            }
        )
        username = InputValidator.validate_username(username)
        email = InputValidator.validate_email(email).lower()
        PasswordManager.validate_password_strength(password)

        result = await session.execute(
            select(User).where(or_(User.username == username, User.email == email))
        )
        if result.scalars().first() is not None:
            raise ConflictError("User with email or username already exists")

        if InputValidator.is_blank(avatar_path):
            raise ValidationError("Avatar file is required", field="avatar")

        password_digest = PasswordManager.hash_password(password)

        uploads = []
        try:
            avatar = await self.storage.upload(avatar_path)
            uploads.append(avatar)
            cover_image = None
            if not InputValidator.is_blank(cover_image_path):
                cover_image = await self.storage.upload(cover_image_path)
                uploads.append(cover_image)

            user = User(
                full_name=full_name.strip(),
                email=email,
                username=username,
                password=password_digest,
                avatar=avatar["url"],
                cover_image=cover_image["url"] if cover_image else "",
            )
            session.add(user)
            await commit_or_raise(session, "register user")
        except VideoAPIException:
            await self._discard_uploads(uploads)
            raise

        logger.info(f"User registered: {user.username}", extra={"user_id": user.id})
        return public_user(user)

    # Session lifecycle ----------------------------------------------------

    async def issue_session(self, session: AsyncSession, user_id: str) -> Dict[str, str]:
        """Mint an access/refresh pair and persist the refresh token"""
        try:
            user = await session.get(User, user_id)
            if user is None:
                raise InternalError("Something went wrong while generating tokens")

            access_token = self.jwt_manager.create_access_token(
                user.id, user.username, user.email, user.full_name
            )
            refresh_token = self.jwt_manager.create_refresh_token(user.id)

            # Direct field update; the rest of the record is not revalidated
            user.refresh_token = refresh_token
            session.add(user)
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Token generation failed for user {user_id}: {e}")
            raise InternalError("Something went wrong while generating tokens") from e

        try:
            await commit_or_raise(session, "issue session")
        except ConflictError as e:
            raise InternalError("Something went wrong while generating tokens") from e
        logger.info("Session issued", extra={"user_id": user_id})
        return {"access_token": access_token, "refresh_token": refresh_token}

    async def login(
        self,
        session: AsyncSession,
        password: Optional[str],
        username: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Check credentials and open a session"""
        if InputValidator.is_blank(username) and InputValidator.is_blank(email):
            raise ValidationError("username or email is required", field="username")
        if InputValidator.is_blank(password):
            raise ValidationError("password is required", field="password")

        conditions = []
        if not InputValidator.is_blank(username):
            conditions.append(User.username == InputValidator.normalize_name(username))
        if not InputValidator.is_blank(email):
            conditions.append(User.email == email.strip().lower())

        result = await session.execute(select(User).where(or_(*conditions)))
        user = result.scalars().first()
        if user is None:
            raise NotFoundError("User")

        if not PasswordManager.verify_password(password, user.password):
            logger.warning("Login rejected: invalid credentials", extra={"user_id": user.id})
            raise AuthenticationError("Invalid user credentials")

        tokens = await self.issue_session(session, user.id)
        logger.info(f"User logged in: {user.username}", extra={"user_id": user.id})
        return {"user": public_user(user), **tokens}

    async def logout(self, session: AsyncSession, user_id: str) -> None:
        """Clear the stored refresh token. Safe to call repeatedly."""
        await session.execute(
            update(User).where(User.id == user_id).values(refresh_token=None)
        )
        await commit_or_raise(session, "logout")
        logger.info("User logged out", extra={"user_id": user_id})

    async def refresh(
        self, session: AsyncSession, presented_token: Optional[str]
    ) -> Dict[str, str]:
        """Exchange the current refresh token for a new pair (rotation)"""
        if InputValidator.is_blank(presented_token):
            raise AuthenticationError("Unauthorized request")

        payload = self.jwt_manager.verify_token(presented_token, TokenType.REFRESH)

        user = await session.get(User, payload["sub"])
        if user is None:
            raise AuthenticationError("Invalid refresh token")

        stored = user.refresh_token
        if stored is None or not secrets.compare_digest(
            presented_token.encode("utf-8"), stored.encode("utf-8")
        ):
            logger.warning(
                "Refresh rejected: token is not the current one",
                extra={"user_id": user.id},
            )
            raise AuthenticationError("Refresh token is expired or used")

        tokens = await self.issue_session(session, user.id)
        logger.info("Access token refreshed", extra={"user_id": user.id})
        return tokens

    async def authenticate(self, session: AsyncSession, access_token: Optional[str]) -> User:
        """Resolve the principal behind an access token"""
        if InputValidator.is_blank(access_token):
            raise AuthenticationError("Unauthorized request")

        payload = self.jwt_manager.verify_token(access_token, TokenType.ACCESS)
        user = await session.get(User, payload["sub"])
        if user is None:
            raise AuthenticationError("Invalid access token")
        return user

    # Account maintenance --------------------------------------------------

    async def change_password(
        self,
        session: AsyncSession,
        user_id: str,
        old_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        InputValidator.require_fields(
            {"old_password": old_password, "new_password": new_password}
        )
        user = await self._require_user(session, user_id)

        if not PasswordManager.verify_password(old_password, user.password):
            raise ValidationError("Invalid old password", field="old_password")

        user.password = PasswordManager.hash_password(new_password)
        user.updated_at = utc_now()
        session.add(user)
        await commit_or_raise(session, "change password")
        logger.info("Password changed", extra={"user_id": user_id})

    async def get_current_user(self, session: AsyncSession, user_id: str) -> Dict[str, Any]:
        return public_user(await self._require_user(session, user_id))

    async def update_account_details(
        self,
        session: AsyncSession,
        user_id: str,
        full_name: Optional[str],
        email: Optional[str],
    ) -> Dict[str, Any]:
        InputValidator.require_fields({"full_name": full_name, "email": email})
        email = InputValidator.validate_email(email).lower()
        user = await self._require_user(session, user_id)

        result = await session.execute(
            select(User).where(User.email == email, User.id != user_id)
        )
        if result.scalars().first() is not None:
            raise ConflictError("Email is already in use")

        user.full_name = full_name.strip()
        user.email = email
        user.updated_at = utc_now()
        session.add(user)
        await commit_or_raise(session, "update account details")

        logger.info("Account details updated", extra={"user_id": user_id})
        return public_user(user)

    async def _replace_image(
        self, session: AsyncSession, user_id: str, local_path: Optional[str], field: str, label: str
    ) -> Dict[str, Any]:
        if InputValidator.is_blank(local_path):
            raise ValidationError(f"{label} file is missing", field=field)
        user = await self._require_user(session, user_id)

        uploaded = await self.storage.upload(local_path)
        if not uploaded.get("url"):
            raise InternalError(f"Error while uploading {label.lower()}")

        setattr(user, field, uploaded["url"])
        user.updated_at = utc_now()
        session.add(user)
        await commit_or_raise(session, f"update {field}")

        logger.info(f"{label} updated", extra={"user_id": user_id})
        return public_user(user)

    async def update_avatar(
        self, session: AsyncSession, user_id: str, local_path: Optional[str]
    ) -> Dict[str, Any]:
        return await self._replace_image(session, user_id, local_path, "avatar", "Avatar")

    async def update_cover_image(
        self, session: AsyncSession, user_id: str, local_path: Optional[str]
    ) -> Dict[str, Any]:
        return await self._replace_image(
            session, user_id, local_path, "cover_image", "Cover image"
        )


# Create singleton instance
identity_service = IdentityService()
