"""
码率协商

根据播放器、用户、请求中的码率上限以及文件本身的码率，计算实际使用的最大码率。
"""

from typing import Optional

from .domain import MediaFile
from .scheme import TranscodeScheme

# 视频始终使用固定的默认码率上限（kbps）
VIDEO_DEFAULT_BIT_RATE = 2000

# 可变码率音频需要约 20% 的额外带宽才能达到同等质量的固定码率
VBR_COMPENSATION_NUMERATOR = 6
VBR_COMPENSATION_DENOMINATOR = 5


def effective_scheme(
    player_scheme: Optional[TranscodeScheme],
    user_scheme: Optional[TranscodeScheme],
    max_bit_rate: Optional[int] = None
) -> TranscodeScheme:
    """合并播放器、用户和请求的码率上限，取最严格者"""
    scheme = player_scheme or TranscodeScheme.OFF
    return scheme.strictest(user_scheme).strictest(
        TranscodeScheme.from_max_bit_rate(max_bit_rate if max_bit_rate is not None else TranscodeScheme.OFF.max_bit_rate))


def create_bitrate(media_file: MediaFile) -> int:
    """文件本身的码率（kbps），未知时返回 0（不限制）

    可变码率音频先乘以 6/5；音频再向下取整到标准上限，
    保证 CBR 编码器得到有效的码率。视频不做取整。
    """
    if media_file.bit_rate is None:
        return TranscodeScheme.OFF.max_bit_rate
    bit_rate = media_file.bit_rate
    if not media_file.is_video:
        if media_file.variable_bit_rate:
            bit_rate = bit_rate * VBR_COMPENSATION_NUMERATOR // VBR_COMPENSATION_DENOMINATOR
        bit_rate = TranscodeScheme.quantize(bit_rate)
    return bit_rate


def create_max_bitrate(scheme: TranscodeScheme, media_file: MediaFile, bit_rate: int) -> int:
    """实际使用的最大码率（kbps），0 表示不限制"""
    max_bit_rate = VIDEO_DEFAULT_BIT_RATE if media_file.is_video else scheme.max_bit_rate
    if max_bit_rate == 0 or (bit_rate != 0 and bit_rate < max_bit_rate):
        return bit_rate
    return max_bit_rate
