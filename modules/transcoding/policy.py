"""
转码策略

选择适用的转码方案，并判断是否真的需要转码。选择和必要性是两个独立的判断：
有可用方案不代表一定要转码。
"""

import os
import logging
from typing import Iterable, Optional

from .command import executable_name
from .domain import FORMAT_RAW, MediaFile, Transcoding

logger = logging.getLogger(__name__)


def is_step_installed(transcode_dir: str, step: Optional[str]) -> bool:
    """步骤的可执行文件是否存在于转码器目录（空步骤视为已安装）"""
    if not step:
        return True
    executable = executable_name(step)
    if not executable:
        return True
    try:
        return any(name.startswith(executable) for name in os.listdir(transcode_dir))
    except OSError:
        return False


def is_transcoder_installed(transcode_dir: str, transcoding: Transcoding) -> bool:
    """转码方案的所有步骤是否都已安装

    未安装只是配置缺失，该方案不参与选择，不抛出错误。
    """
    return all(is_step_installed(transcode_dir, step)
               for step in (transcoding.step1, transcoding.step2, transcoding.step3))


def create_hls_transcoding(media_file: MediaFile, hls_command: str) -> Transcoding:
    """HLS 使用的临时一步方案，不在注册列表中"""
    return Transcoding(None, "hls", media_file.format, "ts", hls_command, None, None, True)


def select_transcoding(
    media_file: MediaFile,
    transcodings: Iterable[Transcoding],
    transcode_dir: str,
    preferred_target_format: Optional[str] = None,
    hls: bool = False,
    hls_command: Optional[str] = None
) -> Optional[Transcoding]:
    """为文件选择转码方案

    Args:
        media_file: 媒体文件
        transcodings: 播放器启用的转码方案（按顺序）
        transcode_dir: 转码器目录
        preferred_target_format: 首选目标格式，用于在多个方案中选择，可为 None
        hls: 是否为 HLS 请求
        hls_command: HLS 命令模板

    Returns:
        适用的转码方案，不需要转码时返回 None
    """
    if preferred_target_format == FORMAT_RAW:
        return None

    if hls:
        return create_hls_transcoding(media_file, hls_command)

    applicable = [t for t in transcodings
                  if t.accepts(media_file.format) and is_transcoder_installed(transcode_dir, t)]
    if not applicable:
        return None

    if preferred_target_format:
        for transcoding in applicable:
            if transcoding.target_format.lower() == preferred_target_format.lower():
                if media_file.is_video:
                    logger.debug(f"Video target format matched: {transcoding.name}")
                return transcoding

    return applicable[0]


def is_need_transcoding(
    transcoding: Optional[Transcoding],
    max_bit_rate: int,
    bit_rate: int,
    preferred_target_format: Optional[str],
    media_file: MediaFile
) -> bool:
    """已选出方案时，码率超限或格式不同才需要转码"""
    if transcoding is None:
        return False
    if max_bit_rate != 0 and (bit_rate == 0 or bit_rate > max_bit_rate):
        return True
    return bool(preferred_target_format) and (media_file.format or "").lower() != preferred_target_format.lower()
