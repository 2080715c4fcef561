"""Tests for bit rate negotiation."""

import pytest

from modules.transcoding.bitrate import (
    VIDEO_DEFAULT_BIT_RATE,
    create_bitrate,
    create_max_bitrate,
    effective_scheme,
)
from modules.transcoding.domain import MediaFile, MediaType
from modules.transcoding.scheme import TranscodeScheme


def audio(bit_rate=None, vbr=False):
    return MediaFile(path="/music/a.mp3", format="mp3", bit_rate=bit_rate, variable_bit_rate=vbr)


def video(bit_rate=None):
    return MediaFile(path="/video/a.mkv", format="mkv", bit_rate=bit_rate, media_type=MediaType.VIDEO)


class TestCreateBitrate:

    @pytest.mark.parametrize("media_file", [audio(), audio(vbr=True), video()])
    def test_unknown_bit_rate_is_unlimited(self, media_file):
        assert create_bitrate(media_file) == 0

    def test_video_is_not_quantized(self):
        assert create_bitrate(video(1024)) == 1024

    @pytest.mark.parametrize("reported, expected", [(250, 224), (200, 192), (320, 320), (5000, 1411)])
    def test_cbr_audio_rounded_down_to_valid_rate(self, reported, expected):
        assert create_bitrate(audio(reported)) == expected

    def test_cbr_audio_below_lowest_ceiling_is_unchanged(self):
        assert create_bitrate(audio(16)) == 16

    @pytest.mark.parametrize("reported, expected", [(128, 128), (950, 320), (256, 256), (1200, 1411)])
    def test_vbr_audio_compensated_and_rounded_down(self, reported, expected):
        result = create_bitrate(audio(reported, vbr=True))
        assert result == expected
        assert result <= reported * 6 / 5


class TestCreateMaxBitrate:

    def test_unlimited_scheme_returns_file_bit_rate(self):
        assert create_max_bitrate(TranscodeScheme.OFF, audio(), 0) == 0
        assert create_max_bitrate(TranscodeScheme.OFF, audio(), 320) == 320

    def test_file_below_ceiling(self):
        assert create_max_bitrate(TranscodeScheme.MAX_320, audio(), 256) == 256

    def test_file_above_ceiling(self):
        assert create_max_bitrate(TranscodeScheme.MAX_256, audio(), 320) == 256

    def test_unknown_file_bit_rate(self):
        assert create_max_bitrate(TranscodeScheme.MAX_256, audio(), 0) == 256

    def test_video_ignores_scheme(self):
        assert create_max_bitrate(TranscodeScheme.MAX_128, video(), 5000) == VIDEO_DEFAULT_BIT_RATE
        assert create_max_bitrate(TranscodeScheme.OFF, video(), 0) == VIDEO_DEFAULT_BIT_RATE


class TestEffectiveScheme:

    def test_strictest_of_all_three(self):
        scheme = effective_scheme(TranscodeScheme.MAX_256, TranscodeScheme.MAX_192, 160)
        assert scheme is TranscodeScheme.MAX_160

    def test_no_override(self):
        assert effective_scheme(TranscodeScheme.OFF, TranscodeScheme.MAX_128) is TranscodeScheme.MAX_128

    def test_all_unlimited(self):
        assert effective_scheme(TranscodeScheme.OFF, None, None) is TranscodeScheme.OFF
