"""预计输出长度与 HTTP Range 支持判断"""

import logging
from typing import Optional

from .domain import MediaFile, Transcoding

logger = logging.getLogger(__name__)

# 多估算 2 秒，避免计算误差导致提前截断
DURATION_PADDING_SECONDS = 2


def get_expected_length(
    media_file: MediaFile,
    transcoding: Optional[Transcoding],
    max_bit_rate: Optional[int]
) -> Optional[int]:
    """预计的输出长度（字节），无法估算时返回 None

    不转码时为文件的实际大小。
    """
    if transcoding is None:
        return media_file.get_file_size()

    duration = media_file.duration_seconds
    if duration is None:
        logger.warning(f"Unknown duration for {media_file.path}. Unable to estimate transcoded size.")
        return None

    if not max_bit_rate:
        logger.error(f"Unknown bit rate for {media_file.path}. Unable to estimate transcoded size.")
        return None

    return (duration + DURATION_PADDING_SECONDS) * max_bit_rate * 1000 // 8


def is_range_allowed(transcoding: Optional[Transcoding], expected_length: Optional[int]) -> bool:
    """是否支持 HTTP Range

    转码时只有长度可估算，且最后一个步骤使用了 %b，字节偏移和时间偏移的换算才可靠。
    """
    if transcoding is None:
        return True
    if expected_length is None:
        return False
    for step in (transcoding.step3, transcoding.step2, transcoding.step1):
        if step:
            return "%b" in step
    return False
