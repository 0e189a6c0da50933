"""
Channel views: public channel profile and watch history.

Both operations are read-only view pipelines (see `core.pipeline`).
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import NotFoundError, ValidationError
from core.logging_config import get_logger
from core.models import Subscription, User, Video, WatchHistory
from core.pipeline import ViewPipeline
from core.validation import InputValidator

logger = get_logger(__name__)

CHANNEL_PROFILE_FIELDS = (
    "id",
    "full_name",
    "username",
    "avatar",
    "cover_image",
    "email",
    "subscribers_count",
    "channels_subscribed_to_count",
    "is_subscribed",
)

OWNER_SUMMARY_FIELDS = ("full_name", "username", "avatar")


class ChannelService:
    """Service layer for channel-facing views"""

    def channel_profile_pipeline(self, username: str, viewer_id: Optional[str] = None) -> ViewPipeline:
        return (
            ViewPipeline(User)
            .match(User.username == username)
            .lookup_count(
                "subscribers_count", Subscription, Subscription.channel_id == User.id
            )
            .lookup_count(
                "channels_subscribed_to_count",
                Subscription,
                Subscription.subscriber_id == User.id,
            )
            .lookup_flag(
                "is_subscribed",
                Subscription,
                Subscription.channel_id == User.id,
                Subscription.subscriber_id == viewer_id,
                when=viewer_id is not None,
            )
            .project(*CHANNEL_PROFILE_FIELDS)
        )

    async def get_user_channel_profile(
        self, session: AsyncSession, username: Optional[str], viewer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Channel profile with subscriber counts.

        `is_subscribed` tells whether `viewer_id` (the requesting user, None
        for anonymous requests) subscribes to this channel.
        """
        if InputValidator.is_blank(username):
            raise ValidationError("username is missing", field="username")

        username = InputValidator.normalize_name(username)
        channel = await self.channel_profile_pipeline(username, viewer_id).first(session)
        if channel is None:
            raise NotFoundError("Channel", username)

        logger.debug(f"Channel profile fetched for {username}")
        return channel

    def watch_history_pipeline(self, user_id: str) -> ViewPipeline:
        return (
            ViewPipeline(WatchHistory)
            .match(WatchHistory.user_id == user_id)
            .join(Video, WatchHistory.video_id == Video.id)
            .lookup_one("owner", User, Video.owner_id, OWNER_SUMMARY_FIELDS)
            .sort(WatchHistory.position, WatchHistory.id)
            .project(
                Video.id,
                Video.title,
                Video.description,
                Video.video_file,
                Video.thumbnail,
                Video.duration,
                Video.views,
                Video.is_published,
                Video.created_at,
                "owner",
            )
        )

    async def get_watch_history(
        self, session: AsyncSession, user_id: Optional[str]
    ) -> List[Dict[str, Any]]:
        """Watched videos in history order, each with an inlined owner summary"""
        if InputValidator.is_blank(user_id):
            raise ValidationError("User id is missing", field="user_id")
        if await session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        return await self.watch_history_pipeline(user_id).all(session)


# Create singleton instance
channel_service = ChannelService()
