"""Tests for transcoding selection."""

import pytest

from modules.transcoding.domain import MediaFile, MediaType, Transcoding
from modules.transcoding.policy import (
    is_need_transcoding,
    is_transcoder_installed,
    select_transcoding,
)

HLS_COMMAND = "ffmpeg -ss %o -t %d -i %s -f mpegts -"


@pytest.fixture
def installed(transcode_dir):
    (transcode_dir / "ffmpeg").touch()
    (transcode_dir / "lame.exe").touch()
    return str(transcode_dir)


def flac():
    return MediaFile(path="/music/a.flac", format="FLAC", bit_rate=900)


def mkv():
    return MediaFile(path="/video/a.mkv", format="mkv", media_type=MediaType.VIDEO)


class TestIsTranscoderInstalled:

    def test_all_steps_present(self, installed):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -", "lame - -")
        assert is_transcoder_installed(installed, t)

    def test_prefix_match(self, installed):
        t = Transcoding(1, "t", "flac", "mp3", "lame -b %b -")
        assert is_transcoder_installed(installed, t)

    def test_missing_step(self, installed):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -", None, "sox - -")
        assert not is_transcoder_installed(installed, t)

    def test_missing_directory(self, tmp_path):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -")
        assert not is_transcoder_installed(str(tmp_path / "nowhere"), t)


class TestSelectTranscoding:

    def test_raw_is_passthrough(self, installed):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [t], installed, "raw") is None
        assert select_transcoding(flac(), [t], installed, "raw", hls=True, hls_command=HLS_COMMAND) is None

    def test_hls_bypasses_registered_list(self, installed):
        result = select_transcoding(mkv(), [], installed, hls=True, hls_command=HLS_COMMAND)
        assert result.target_format == "ts"
        assert result.source_formats == "mkv"
        assert result.step1 == HLS_COMMAND
        assert result.id is None

    def test_source_format_is_case_insensitive(self, installed):
        t = Transcoding(1, "t", "ogg flac", "mp3", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [t], installed) is t

    def test_no_applicable_transcoding(self, installed):
        t = Transcoding(1, "t", "ogg", "mp3", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [t], installed) is None

    def test_uninstalled_transcoding_is_skipped(self, installed):
        missing = Transcoding(1, "missing", "flac", "ogg", "oggenc -")
        present = Transcoding(2, "present", "flac", "mp3", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [missing, present], installed) is present

    def test_preferred_target_format(self, installed):
        mp3 = Transcoding(1, "mp3", "flac", "mp3", "ffmpeg -i %s -")
        ogg = Transcoding(2, "ogg", "flac", "OGG", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [mp3, ogg], installed, "ogg") is ogg

    def test_falls_back_to_first_applicable(self, installed):
        mp3 = Transcoding(1, "mp3", "flac", "mp3", "ffmpeg -i %s -")
        ogg = Transcoding(2, "ogg", "flac", "ogg", "ffmpeg -i %s -")
        assert select_transcoding(flac(), [mp3, ogg], installed, "opus") is mp3
        assert select_transcoding(flac(), [mp3, ogg], installed) is mp3

    def test_video_prefers_requested_format_over_earlier_match(self, installed):
        flv = Transcoding(1, "flv", "mkv avi", "flv", "ffmpeg -i %s -f flv -")
        mp4 = Transcoding(2, "mp4", "mkv avi", "mp4", "ffmpeg -i %s -f mp4 -")
        assert select_transcoding(mkv(), [flv, mp4], installed, "MP4") is mp4


class TestIsNeedTranscoding:

    @pytest.fixture
    def transcoding(self):
        return Transcoding(1, "t", "mp3", "mp3", "ffmpeg -i %s -b:a %bk -")

    def test_no_transcoding(self, mp3_file):
        assert not is_need_transcoding(None, 128, 320, "ogg", mp3_file)

    def test_bit_rate_exceeds_ceiling(self, transcoding, mp3_file):
        assert is_need_transcoding(transcoding, 128, 320, None, mp3_file)

    def test_unknown_bit_rate_with_ceiling(self, transcoding, mp3_file):
        assert is_need_transcoding(transcoding, 128, 0, None, mp3_file)

    def test_within_ceiling_same_format(self, transcoding, mp3_file):
        assert not is_need_transcoding(transcoding, 320, 320, "MP3", mp3_file)

    def test_unlimited_same_format(self, transcoding, mp3_file):
        assert not is_need_transcoding(transcoding, 0, 320, None, mp3_file)

    def test_format_differs(self, transcoding, mp3_file):
        assert is_need_transcoding(transcoding, 0, 320, "ogg", mp3_file)
