from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_session
from core.exceptions import AuthenticationError
from core.models import User
from services.channel_service import ChannelService, channel_service
from services.identity_service import IdentityService, identity_service
from services.playlist_service import PlaylistService, playlist_service

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

bearer_scheme = HTTPBearer(auto_error=False)


def get_identity_service() -> IdentityService:
    return identity_service


def get_channel_service() -> ChannelService:
    return channel_service


def get_playlist_service() -> PlaylistService:
    return playlist_service


def extract_access_token(
    request: Request, credentials: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    """Access token from the session cookie, else from `Authorization: Bearer`"""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    if credentials is not None:
        return credentials.credentials
    return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
) -> User:
    """Authenticated principal; 401 when the access token is missing or invalid"""
    return await identity.authenticate(session, extract_access_token(request, credentials))


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
    identity: IdentityService = Depends(get_identity_service),
) -> Optional[User]:
    """Authenticated principal, or None for anonymous requests"""
    token = extract_access_token(request, credentials)
    if not token:
        return None
    try:
        return await identity.authenticate(session, token)
    except AuthenticationError:
        return None
