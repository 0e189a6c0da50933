"""
User, Session and Channel Endpoints.

HTTP surface of the identity service and the channel views. Handlers only
translate between HTTP and service calls: they read the request, pass the
authenticated principal explicitly, set or clear the session cookies, and wrap
results in the `ApiResponse` envelope. Errors raised by the services are
rendered by the exception handlers in `core.middleware`.

Endpoints Provided (prefix `/api/v1/users`):
- `POST /register`: multipart registration with avatar and optional cover image.
- `POST /login`: opens a session; sets `accessToken` / `refreshToken` cookies.
- `POST /logout`: clears the stored refresh token and both cookies.
- `POST /refresh-token`: rotates the session (cookie or body token).
- `POST /change-password`, `GET /current-user`, `PATCH /update-account`,
  `PATCH /avatar`, `PATCH /cover-image`: account maintenance.
- `GET /c/{username}`: channel profile; `is_subscribed` reflects the caller.
- `GET /history`: the caller's watch history.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status
from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_channel_service,
    get_current_user,
    get_identity_service,
    get_optional_user,
)
from api.uploads import discard_upload, save_upload
from core.database import get_session
from core.logging_config import get_logger, log_function_call
from core.models import User
from core.responses import ApiResponse
from services.channel_service import ChannelService
from services.identity_service import IdentityService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/v1/users", tags=["Users"])

COOKIE_OPTIONS = {"httponly": True, "secure": True}


# Request Models
class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(CamelModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    old_password: Optional[str] = None
    new_password: Optional[str] = None


class UpdateAccountRequest(CamelModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None


def set_session_cookies(response: Response, access_token: str, refresh_token: str):
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, **COOKIE_OPTIONS)
    response.set_cookie(REFRESH_TOKEN_COOKIE, refresh_token, **COOKIE_OPTIONS)


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
@log_function_call(logger)
async def register_user(
    full_name: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    cover_image: Optional[UploadFile] = File(None),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    """Register a new user"""
    avatar_path = await save_upload(avatar)
    cover_image_path = await save_upload(cover_image)
    try:
        user = await identity.register(
            session,
            full_name=full_name,
            email=email,
            username=username,
            password=password,
            avatar_path=avatar_path,
            cover_image_path=cover_image_path,
        )
    finally:
        discard_upload(avatar_path)
        discard_upload(cover_image_path)

    return ApiResponse.ok(user, "User registered successfully", status.HTTP_201_CREATED)


@router.post("/login", response_model=ApiResponse)
@log_function_call(logger)
async def login_user(
    request: LoginRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    """Authenticate user and open a session"""
    result = await identity.login(
        session, request.password, username=request.username, email=request.email
    )
    set_session_cookies(response, result["access_token"], result["refresh_token"])
    return ApiResponse.ok(result, "User logged in successfully")


@router.post("/logout", response_model=ApiResponse)
@log_function_call(logger)
async def logout_user(
    response: Response,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    """End the session of the current user"""
    await identity.logout(session, current_user.id)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **COOKIE_OPTIONS)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **COOKIE_OPTIONS)
    return ApiResponse.ok({}, "User logged out")


@router.post("/refresh-token", response_model=ApiResponse)
@log_function_call(logger)
async def refresh_access_token(
    http_request: Request,
    response: Response,
    request: Optional[RefreshTokenRequest] = None,
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    """Rotate the session using the refresh token (cookie first, then body)"""
    presented = http_request.cookies.get(REFRESH_TOKEN_COOKIE) or (
        request.refresh_token if request else None
    )
    tokens = await identity.refresh(session, presented)
    set_session_cookies(response, tokens["access_token"], tokens["refresh_token"])
    return ApiResponse.ok(tokens, "Access token refreshed")


@router.post("/change-password", response_model=ApiResponse)
@log_function_call(logger)
async def change_password(
    request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    await identity.change_password(
        session, current_user.id, request.old_password, request.new_password
    )
    return ApiResponse.ok({}, "Password changed successfully")


@router.get("/current-user", response_model=ApiResponse)
@log_function_call(logger)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    user = await identity.get_current_user(session, current_user.id)
    return ApiResponse.ok(user, "Current user fetched successfully")


@router.patch("/update-account", response_model=ApiResponse)
@log_function_call(logger)
async def update_account_details(
    request: UpdateAccountRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    user = await identity.update_account_details(
        session, current_user.id, request.full_name, request.email
    )
    return ApiResponse.ok(user, "Account details updated successfully")


@router.patch("/avatar", response_model=ApiResponse)
@log_function_call(logger)
async def update_user_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    local_path = await save_upload(avatar)
    try:
        user = await identity.update_avatar(session, current_user.id, local_path)
    finally:
        discard_upload(local_path)
    return ApiResponse.ok(user, "Avatar image updated successfully")


@router.patch("/cover-image", response_model=ApiResponse)
@log_function_call(logger)
async def update_user_cover_image(
    cover_image: Optional[UploadFile] = File(None),
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
):
    local_path = await save_upload(cover_image)
    try:
        user = await identity.update_cover_image(session, current_user.id, local_path)
    finally:
        discard_upload(local_path)
    return ApiResponse.ok(user, "Cover image updated successfully")


@router.get("/c/{username}", response_model=ApiResponse)
@log_function_call(logger)
async def get_user_channel_profile(
    username: str,
    viewer: Optional[User] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_session),
    channels: ChannelService = Depends(get_channel_service),
):
    """Public channel profile with subscriber counts"""
    channel = await channels.get_user_channel_profile(
        session, username, viewer_id=viewer.id if viewer else None
    )
    return ApiResponse.ok(channel, "User channel fetched successfully")


@router.get("/history", response_model=ApiResponse)
@log_function_call(logger)
async def get_watch_history(
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    channels: ChannelService = Depends(get_channel_service),
):
    history = await channels.get_watch_history(session, current_user.id)
    return ApiResponse.ok(history, "Watch history fetched successfully")
