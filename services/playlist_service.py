"""
Playlist service: creation, listing and existence-checked mutations.

Playlist names are case-folded before they are stored or compared, so an
owner cannot hold both "My List" and "my list". Video references are kept in
insertion order; the same video may appear more than once and removal takes
out every occurrence.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import commit_or_raise
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.logging_config import get_logger
from core.models import Playlist, PlaylistVideo, User, Video, utc_now
from core.pipeline import ViewPipeline
from core.validation import InputValidator

logger = get_logger(__name__)

PLAYLIST_SUMMARY_FIELDS = (
    "id",
    "name",
    "description",
    "created_at",
    "updated_at",
    "total_videos",
    "owner_details",
)


class PlaylistService:
    """Service layer for playlist operations"""

    async def _playlist_document(self, session: AsyncSession, playlist: Playlist) -> Dict[str, Any]:
        result = await session.execute(
            select(PlaylistVideo.video_id)
            .where(PlaylistVideo.playlist_id == playlist.id)
            .order_by(PlaylistVideo.position, PlaylistVideo.id)
        )
        return {
            "id": playlist.id,
            "name": playlist.name,
            "description": playlist.description,
            "owner_id": playlist.owner_id,
            "videos": list(result.scalars().all()),
            "created_at": playlist.created_at,
            "updated_at": playlist.updated_at,
        }

    async def _require_playlist(self, session: AsyncSession, playlist_id: str) -> Playlist:
        playlist = await session.get(Playlist, playlist_id)
        if playlist is None:
            raise NotFoundError("Playlist", playlist_id)
        return playlist

    async def _ensure_name_available(
        self, session: AsyncSession, owner_id: str, name: str, exclude_id: Optional[str] = None
    ):
        query = select(Playlist).where(Playlist.owner_id == owner_id, Playlist.name == name)
        if exclude_id is not None:
            query = query.where(Playlist.id != exclude_id)
        result = await session.execute(query)
        if result.scalars().first() is not None:
            raise ConflictError("Playlist with same name already exists for the user")

    def _note_actor(self, playlist: Playlist, actor_id: Optional[str], action: str):
        # Mutations are not restricted to the owner; record when someone else acts
        if actor_id and actor_id != playlist.owner_id:
            logger.warning(
                f"Playlist {playlist.id} owned by {playlist.owner_id} {action} by {actor_id}",
                extra={"user_id": actor_id},
            )

    async def create_playlist(
        self,
        session: AsyncSession,
        owner_id: str,
        name: Optional[str],
        description: Optional[str],
    ) -> Dict[str, Any]:
        """Create a new playlist for a user"""
        InputValidator.require_fields({"name": name, "description": description})
        if InputValidator.is_blank(owner_id):
            raise ValidationError("Owner id is missing", field="owner_id")

        name = InputValidator.normalize_name(name)
        await self._ensure_name_available(session, owner_id, name)

        playlist = Playlist(name=name, description=description.strip(), owner_id=owner_id)
        session.add(playlist)
        await commit_or_raise(session, "create playlist")

        logger.info(f"Playlist created: {playlist.id} for user {owner_id}")
        return await self._playlist_document(session, playlist)

    def user_playlists_pipeline(self, owner_id: str) -> ViewPipeline:
        return (
            ViewPipeline(Playlist)
            .match(Playlist.owner_id == owner_id)
            .lookup_count(
                "total_videos",
                PlaylistVideo,
                PlaylistVideo.playlist_id == Playlist.id,
                through=(Video, Video.id == PlaylistVideo.video_id),
            )
            .lookup_one(
                "owner_details", User, Playlist.owner_id, ("username", "full_name", "avatar")
            )
            .sort(Playlist.created_at, Playlist.id)
            .project(*PLAYLIST_SUMMARY_FIELDS)
        )

    async def get_user_playlists(
        self, session: AsyncSession, owner_id: Optional[str]
    ) -> List[Dict[str, Any]]:
        """All playlists of a user with video totals; may be empty"""
        if InputValidator.is_blank(owner_id):
            raise ValidationError("user Id is missing", field="user_id")
        return await self.user_playlists_pipeline(owner_id).all(session)

    async def get_playlist_by_id(
        self, session: AsyncSession, playlist_id: Optional[str]
    ) -> Dict[str, Any]:
        if InputValidator.is_blank(playlist_id):
            raise ValidationError("playlist Id is missing", field="playlist_id")
        playlist = await self._require_playlist(session, playlist_id)
        return await self._playlist_document(session, playlist)

    async def add_video_to_playlist(
        self,
        session: AsyncSession,
        playlist_id: Optional[str],
        video_id: Optional[str],
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Append a video reference; returns the updated playlist"""
        InputValidator.require_fields({"playlist_id": playlist_id, "video_id": video_id})
        playlist = await self._require_playlist(session, playlist_id)
        if await session.get(Video, video_id) is None:
            raise NotFoundError("Video", video_id)
        self._note_actor(playlist, actor_id, "modified")

        result = await session.execute(
            select(func.max(PlaylistVideo.position)).where(
                PlaylistVideo.playlist_id == playlist_id
            )
        )
        last_position = result.scalar()
        session.add(
            PlaylistVideo(
                playlist_id=playlist_id,
                video_id=video_id,
                position=0 if last_position is None else last_position + 1,
            )
        )
        playlist.updated_at = utc_now()
        session.add(playlist)
        await commit_or_raise(session, "add video to playlist")

        logger.info(f"Video added to playlist {playlist_id}: {video_id}")
        return await self._playlist_document(session, playlist)

    async def remove_video_from_playlist(
        self,
        session: AsyncSession,
        playlist_id: Optional[str],
        video_id: Optional[str],
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Remove every reference to a video; returns the updated playlist"""
        InputValidator.require_fields({"playlist_id": playlist_id, "video_id": video_id})
        playlist = await self._require_playlist(session, playlist_id)
        self._note_actor(playlist, actor_id, "modified")

        await session.execute(
            delete(PlaylistVideo).where(
                PlaylistVideo.playlist_id == playlist_id,
                PlaylistVideo.video_id == video_id,
            )
        )
        playlist.updated_at = utc_now()
        session.add(playlist)
        await commit_or_raise(session, "remove video from playlist")

        logger.info(f"Video removed from playlist {playlist_id}: {video_id}")
        return await self._playlist_document(session, playlist)

    async def delete_playlist(
        self, session: AsyncSession, playlist_id: Optional[str], actor_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Delete a playlist; returns the record as it was before deletion"""
        if InputValidator.is_blank(playlist_id):
            raise ValidationError("Playlist Id is missing", field="playlist_id")
        playlist = await self._require_playlist(session, playlist_id)
        self._note_actor(playlist, actor_id, "deleted")
        snapshot = await self._playlist_document(session, playlist)

        await session.execute(
            delete(PlaylistVideo).where(PlaylistVideo.playlist_id == playlist_id)
        )
        await session.delete(playlist)
        await commit_or_raise(session, "delete playlist")

        logger.info(f"Playlist deleted: {playlist_id}")
        return snapshot

    async def update_playlist(
        self,
        session: AsyncSession,
        playlist_id: Optional[str],
        name: Optional[str],
        description: Optional[str],
        actor_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Replace name and description; returns the updated playlist"""
        InputValidator.require_fields(
            {"playlist_id": playlist_id, "name": name, "description": description}
        )
        playlist = await self._require_playlist(session, playlist_id)
        self._note_actor(playlist, actor_id, "updated")

        name = InputValidator.normalize_name(name)
        if name != playlist.name:
            await self._ensure_name_available(
                session, playlist.owner_id, name, exclude_id=playlist.id
            )

        playlist.name = name
        playlist.description = description.strip()
        playlist.updated_at = utc_now()
        session.add(playlist)
        await commit_or_raise(session, "update playlist")

        logger.info(f"Playlist updated: {playlist_id}")
        return await self._playlist_document(session, playlist)


# Create singleton instance
playlist_service = PlaylistService()
