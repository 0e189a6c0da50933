"""
Unit tests for playlist creation, listing and existence-checked mutations.
"""
import pytest
from sqlalchemy import func
from sqlmodel import select

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.models import Playlist, PlaylistVideo
from services import playlist_service
from services.playlist_service import PLAYLIST_SUMMARY_FIELDS, PlaylistService


@pytest.fixture
def playlists():
    return PlaylistService()


async def count_rows(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.unit
class TestCreatePlaylist:
    async def test_create_playlist(self, session, playlists, create_user):
        alice = await create_user("alice")

        playlist = await playlists.create_playlist(session, alice.id, "  Road Trip ", "Songs")

        assert playlist["name"] == "road trip"
        assert playlist["description"] == "Songs"
        assert playlist["owner_id"] == alice.id
        assert playlist["videos"] == []

    async def test_create_playlist_name_is_case_insensitive(self, session, playlists, create_user):
        alice = await create_user("alice")
        await playlists.create_playlist(session, alice.id, "My List", "first")

        with pytest.raises(ConflictError):
            await playlists.create_playlist(session, alice.id, "my list", "second")

        assert await count_rows(session, Playlist) == 1

    async def test_same_name_for_different_owners(self, session, playlists, create_user):
        alice = await create_user("alice")
        bob = await create_user("bob")

        await playlists.create_playlist(session, alice.id, "Favourites", "a")
        await playlists.create_playlist(session, bob.id, "Favourites", "b")

        assert await count_rows(session, Playlist) == 2

    @pytest.mark.parametrize("name, description", [("", "desc"), ("name", None), ("  ", "  ")])
    async def test_create_playlist_requires_fields(
        self, session, playlists, create_user, name, description
    ):
        alice = await create_user("alice")

        with pytest.raises(ValidationError, match="All fields are required"):
            await playlists.create_playlist(session, alice.id, name, description)


@pytest.mark.unit
class TestReadPlaylists:
    async def test_get_user_playlists(self, session, playlists, create_user, create_video):
        alice = await create_user("alice")
        bob = await create_user("bob")
        video = await create_video("clip")
        mine = await playlists.create_playlist(session, alice.id, "Mine", "d")
        await playlists.create_playlist(session, bob.id, "Bobs", "d")
        await playlists.add_video_to_playlist(session, mine["id"], video.id)
        await playlists.add_video_to_playlist(session, mine["id"], video.id)

        result = await playlists.get_user_playlists(session, alice.id)

        assert len(result) == 1
        summary = result[0]
        assert set(summary) == set(PLAYLIST_SUMMARY_FIELDS)
        assert summary["id"] == mine["id"]
        assert summary["total_videos"] == 2
        assert summary["owner_details"] == {
            "username": "alice",
            "full_name": "Alice",
            "avatar": "https://media.test/alice.png",
        }

    async def test_total_videos_ignores_deleted_videos(
        self, session, playlists, create_user, create_video
    ):
        alice = await create_user("alice")
        video = await create_video("clip")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")
        await playlists.add_video_to_playlist(session, playlist["id"], video.id)
        session.add(PlaylistVideo(playlist_id=playlist["id"], video_id="gone", position=5))
        await session.commit()

        result = await playlists.get_user_playlists(session, alice.id)

        assert result[0]["total_videos"] == 1

    async def test_get_user_playlists_empty(self, session, playlists, create_user):
        alice = await create_user("alice")

        assert await playlists.get_user_playlists(session, alice.id) == []

    async def test_get_user_playlists_requires_id(self, session, playlists):
        with pytest.raises(ValidationError):
            await playlists.get_user_playlists(session, " ")

    async def test_get_playlist_by_id(self, session, playlists, create_user):
        alice = await create_user("alice")
        created = await playlists.create_playlist(session, alice.id, "Mine", "d")

        fetched = await playlists.get_playlist_by_id(session, created["id"])

        assert fetched["id"] == created["id"]
        assert fetched["name"] == "mine"

    async def test_get_playlist_by_id_missing(self, session, playlists):
        with pytest.raises(NotFoundError, match="Playlist not found"):
            await playlists.get_playlist_by_id(session, "missing")


@pytest.mark.unit
class TestPlaylistVideos:
    async def test_add_video_keeps_order_and_duplicates(
        self, session, playlists, create_user, create_video
    ):
        alice = await create_user("alice")
        first = await create_video("first")
        second = await create_video("second")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")

        await playlists.add_video_to_playlist(session, playlist["id"], first.id)
        await playlists.add_video_to_playlist(session, playlist["id"], second.id)
        updated = await playlists.add_video_to_playlist(session, playlist["id"], first.id)

        assert updated["videos"] == [first.id, second.id, first.id]

    async def test_add_video_to_missing_playlist_leaves_store_untouched(
        self, session, playlists, create_video
    ):
        video = await create_video("clip")

        with pytest.raises(NotFoundError, match="Playlist not found"):
            await playlists.add_video_to_playlist(session, "missing", video.id)

        assert await count_rows(session, PlaylistVideo) == 0

    async def test_add_missing_video(self, session, playlists, create_user):
        alice = await create_user("alice")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")

        with pytest.raises(NotFoundError, match="Video not found"):
            await playlists.add_video_to_playlist(session, playlist["id"], "missing")

        assert await count_rows(session, PlaylistVideo) == 0

    async def test_add_video_requires_ids(self, session, playlists):
        with pytest.raises(ValidationError):
            await playlists.add_video_to_playlist(session, "", "video")

    async def test_remove_video_removes_every_occurrence(
        self, session, playlists, create_user, create_video
    ):
        alice = await create_user("alice")
        first = await create_video("first")
        second = await create_video("second")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")
        for video in (first, second, first):
            await playlists.add_video_to_playlist(session, playlist["id"], video.id)

        updated = await playlists.remove_video_from_playlist(session, playlist["id"], first.id)

        assert updated["videos"] == [second.id]

    async def test_remove_video_from_missing_playlist(self, session, playlists):
        with pytest.raises(NotFoundError):
            await playlists.remove_video_from_playlist(session, "missing", "video")


@pytest.mark.unit
class TestUpdateAndDelete:
    async def test_update_playlist(self, session, playlists, create_user):
        alice = await create_user("alice")
        playlist = await playlists.create_playlist(session, alice.id, "Old", "old")

        updated = await playlists.update_playlist(session, playlist["id"], "New Name", "new")

        assert updated["name"] == "new name"
        assert updated["description"] == "new"

    async def test_update_playlist_same_name_different_case(self, session, playlists, create_user):
        alice = await create_user("alice")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")

        updated = await playlists.update_playlist(session, playlist["id"], "MINE", "changed")

        assert updated["name"] == "mine"
        assert updated["description"] == "changed"

    async def test_update_playlist_name_conflict(self, session, playlists, create_user):
        alice = await create_user("alice")
        await playlists.create_playlist(session, alice.id, "Taken", "d")
        playlist = await playlists.create_playlist(session, alice.id, "Other", "d")

        with pytest.raises(ConflictError):
            await playlists.update_playlist(session, playlist["id"], "TAKEN", "d")

        unchanged = await playlists.get_playlist_by_id(session, playlist["id"])
        assert unchanged["name"] == "other"

    async def test_update_missing_playlist(self, session, playlists):
        with pytest.raises(NotFoundError):
            await playlists.update_playlist(session, "missing", "name", "description")

    async def test_delete_playlist_returns_snapshot(
        self, session, playlists, create_user, create_video
    ):
        alice = await create_user("alice")
        video = await create_video("clip")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")
        await playlists.add_video_to_playlist(session, playlist["id"], video.id)

        deleted = await playlists.delete_playlist(session, playlist["id"])

        assert deleted["id"] == playlist["id"]
        assert deleted["videos"] == [video.id]
        assert await count_rows(session, Playlist) == 0
        assert await count_rows(session, PlaylistVideo) == 0
        with pytest.raises(NotFoundError):
            await playlists.get_playlist_by_id(session, playlist["id"])

    async def test_delete_missing_playlist(self, session, playlists):
        with pytest.raises(NotFoundError):
            await playlists.delete_playlist(session, "missing")


@pytest.mark.unit
class TestActorLogging:
    async def test_changes_by_another_user_are_logged(
        self, session, playlists, create_user, create_video, mock_logger, monkeypatch
    ):
        monkeypatch.setattr(playlist_service, "logger", mock_logger)
        alice = await create_user("alice")
        bob = await create_user("bob")
        video = await create_video("clip")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")

        await playlists.add_video_to_playlist(session, playlist["id"], video.id, actor_id=bob.id)
        await playlists.update_playlist(session, playlist["id"], "Ours", "d", actor_id=bob.id)
        await playlists.delete_playlist(session, playlist["id"], actor_id=bob.id)

        warnings = [call.args[0] for call in mock_logger.warning.call_args_list]
        assert len(warnings) == 3
        assert all(alice.id in message and bob.id in message for message in warnings)

    async def test_owner_changes_are_not_flagged(
        self, session, playlists, create_user, create_video, mock_logger, monkeypatch
    ):
        monkeypatch.setattr(playlist_service, "logger", mock_logger)
        alice = await create_user("alice")
        video = await create_video("clip")
        playlist = await playlists.create_playlist(session, alice.id, "Mine", "d")

        await playlists.add_video_to_playlist(session, playlist["id"], video.id, actor_id=alice.id)
        await playlists.remove_video_from_playlist(
            session, playlist["id"], video.id, actor_id=alice.id
        )

        mock_logger.warning.assert_not_called()
