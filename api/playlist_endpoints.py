"""
Playlist Endpoints.

All routes require an authenticated user. The caller's identity is passed to
the service explicitly. Any caller may change a playlist addressed by the path;
changes by someone other than the owner are logged.

Endpoints Provided (prefix `/api/v1/playlist`):
- `POST /`: create a playlist owned by the caller.
- `GET /user/{user_id}`: playlists of a user with video totals.
- `GET /{playlist_id}`, `PATCH /{playlist_id}`, `DELETE /{playlist_id}`.
- `PATCH /add/{video_id}/{playlist_id}`: append a video.
- `PATCH /remove/{video_id}/{playlist_id}`: remove every occurrence of a video.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_current_user, get_playlist_service
from api.user_endpoints import CamelModel
from core.database import get_session
from core.logging_config import get_logger, log_function_call
from core.models import User
from core.responses import ApiResponse
from services.playlist_service import PlaylistService

logger = get_logger(__name__)
router = APIRouter(
    prefix="/api/v1/playlist",
    tags=["Playlists"],
    dependencies=[Depends(get_current_user)],
)


class PlaylistRequest(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.post("/", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
@log_function_call(logger)
async def create_playlist(
    request: PlaylistRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.create_playlist(
        session, current_user.id, request.name, request.description
    )
    return ApiResponse.ok(playlist, "Playlist created successfully", status.HTTP_201_CREATED)


@router.get("/user/{user_id}", response_model=ApiResponse)
@log_function_call(logger)
async def get_user_playlists(
    user_id: str,
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    result = await playlists.get_user_playlists(session, user_id)
    return ApiResponse.ok(result, "User playlists fetched successfully")


@router.get("/{playlist_id}", response_model=ApiResponse)
@log_function_call(logger)
async def get_playlist_by_id(
    playlist_id: str,
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.get_playlist_by_id(session, playlist_id)
    return ApiResponse.ok(playlist, "Playlist fetched successfully")


@router.patch("/add/{video_id}/{playlist_id}", response_model=ApiResponse)
@log_function_call(logger)
async def add_video_to_playlist(
    video_id: str,
    playlist_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.add_video_to_playlist(
        session, playlist_id, video_id, actor_id=current_user.id
    )
    return ApiResponse.ok(playlist, "Video added to playlist successfully")


@router.patch("/remove/{video_id}/{playlist_id}", response_model=ApiResponse)
@log_function_call(logger)
async def remove_video_from_playlist(
    video_id: str,
    playlist_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.remove_video_from_playlist(
        session, playlist_id, video_id, actor_id=current_user.id
    )
    return ApiResponse.ok(playlist, "Video removed from playlist successfully")


@router.patch("/{playlist_id}", response_model=ApiResponse)
@log_function_call(logger)
async def update_playlist(
    playlist_id: str,
    request: PlaylistRequest,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.update_playlist(
        session, playlist_id, request.name, request.description, actor_id=current_user.id
    )
    return ApiResponse.ok(playlist, "Playlist updated successfully")


@router.delete("/{playlist_id}", response_model=ApiResponse)
@log_function_call(logger)
async def delete_playlist(
    playlist_id: str,
    current_user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    playlists: PlaylistService = Depends(get_playlist_service),
):
    playlist = await playlists.delete_playlist(session, playlist_id, actor_id=current_user.id)
    return ApiResponse.ok(playlist, "Playlist deleted successfully")
