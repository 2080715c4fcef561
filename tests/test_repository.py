"""Tests for the in-memory repositories and stream statuses."""

import pytest

from modules.transcoding import (
    DEFAULT_TRANSCODINGS,
    InMemorySettings,
    Player,
    StatusService,
    TranscodeScheme,
    Transcoding,
    TranscodingRepository,
    UserSettings,
)


@pytest.fixture
def repo():
    return TranscodingRepository.from_config(DEFAULT_TRANSCODINGS)


class TestTranscodingRepository:

    def test_from_config(self, repo):
        transcodings = repo.get_all_transcodings()
        assert [t.id for t in transcodings] == [1, 2, 3, 4]
        assert transcodings[0].target_format == "mp3"
        assert transcodings[0].accepts("FLAC")

    def test_unregistered_player_gets_default_active(self, repo):
        repo.create_transcoding(Transcoding(None, "opus", "flac", "opus", "ffmpeg -i %s -", default_active=False))
        ids = [t.id for t in repo.get_transcodings_for_player(Player(id="new"))]
        assert ids == [1, 2, 3, 4]

    def test_per_player_activation(self, repo):
        player = Player(id="p")
        repo.set_transcodings_for_player(player, [3, 1, 42])
        assert [t.id for t in repo.get_transcodings_for_player(player)] == [3, 1]

    def test_default_active_transcoding_enabled_for_known_players(self, repo):
        player = Player(id="p")
        repo.register_player(player)

        created = repo.create_transcoding(Transcoding(None, "ogg", "flac", "ogg", "oggenc %s"))

        assert created.id == 5
        assert created in repo.get_transcodings_for_player(player)

    def test_inactive_transcoding_not_enabled(self, repo):
        player = Player(id="p")
        repo.register_player(player)
        created = repo.create_transcoding(Transcoding(None, "ogg", "flac", "ogg", "oggenc %s", default_active=False))
        assert created not in repo.get_transcodings_for_player(player)

    def test_update_and_delete(self, repo):
        player = Player(id="p")
        repo.register_player(player)
        updated = Transcoding(1, "mp3 low", "flac", "mp3", "lame %s -")
        repo.update_transcoding(updated)
        assert repo.get_all_transcodings()[0].name == "mp3 low"

        repo.delete_transcoding(1)
        assert 1 not in [t.id for t in repo.get_transcodings_for_player(player)]

        with pytest.raises(KeyError):
            repo.update_transcoding(Transcoding(99, "x", "a", "b", "c"))


class TestInMemorySettings:

    def test_unknown_user_is_unlimited(self):
        settings = InMemorySettings()
        assert settings.get_user_settings("bob").transcode_scheme is TranscodeScheme.OFF

    def test_update(self):
        settings = InMemorySettings([UserSettings("bob", TranscodeScheme.MAX_64)])
        assert settings.get_user_settings("bob").transcode_scheme is TranscodeScheme.MAX_64
        settings.update_user_settings(UserSettings("bob", TranscodeScheme.MAX_192))
        assert settings.get_user_settings("bob").transcode_scheme is TranscodeScheme.MAX_192


class TestStatusService:

    def test_lifecycle(self):
        service = StatusService()
        player = Player(id="p")
        status = service.create_stream_status(player)
        status.add_bytes_transferred(100)

        assert service.get_all_stream_statuses() == [status]
        assert status.to_dict()["bytes_transferred"] == 100

        service.remove_stream_status(status)

        assert service.get_all_stream_statuses() == []
        assert status.to_dict()["state"] == "completed"

    def test_attach_after_terminate_closes_stream(self):
        class Stream:
            closed = False

            def close(self):
                self.closed = True

        status = StatusService().create_stream_status(Player(id="p"))
        status.terminate()
        stream = Stream()
        status.attach(stream)
        assert stream.closed

    def test_terminate_all(self):
        service = StatusService()
        a = service.create_stream_status(Player(id="a"))
        b = service.create_stream_status(Player(id="b"))
        service.terminate_all()
        assert a.is_terminated and b.is_terminated
