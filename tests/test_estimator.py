"""Tests for expected length and range support."""

import pytest

from modules.transcoding.domain import MediaFile, Transcoding
from modules.transcoding.estimator import get_expected_length, is_range_allowed


@pytest.fixture
def transcoding():
    return Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -b:a %bk -")


class TestExpectedLength:

    def test_untranscoded_is_exact_file_size(self, mp3_file):
        assert get_expected_length(mp3_file, None, 128) == 1024

    def test_untranscoded_reads_disk_when_size_unknown(self, tmp_path):
        path = tmp_path / "a.ogg"
        path.write_bytes(b"x" * 777)
        media_file = MediaFile(path=str(path), format="ogg")
        assert get_expected_length(media_file, None, None) == 777

    def test_transcoded_estimate(self, mp3_file, transcoding):
        assert get_expected_length(mp3_file, transcoding, 128) == (200 + 2) * 128 * 1000 // 8
        assert get_expected_length(mp3_file, transcoding, 128) == 3232000

    def test_unknown_duration(self, transcoding):
        media_file = MediaFile(path="/x.flac", format="flac")
        assert get_expected_length(media_file, transcoding, 128) is None

    def test_unknown_bit_rate(self, mp3_file, transcoding):
        assert get_expected_length(mp3_file, transcoding, None) is None


class TestRangeAllowed:

    def test_untranscoded(self):
        assert is_range_allowed(None, None)

    def test_unknown_length(self, transcoding):
        assert not is_range_allowed(transcoding, None)

    def test_last_step_uses_bit_rate(self, transcoding):
        assert is_range_allowed(transcoding, 1000)

    def test_last_step_without_bit_rate(self):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -b:a %bk -", "lame - -")
        assert not is_range_allowed(t, 1000)

    def test_empty_steps_are_skipped(self):
        t = Transcoding(1, "t", "flac", "mp3", "ffmpeg -i %s -f wav -", "lame -b %b - -", "")
        assert is_range_allowed(t, 1000)
