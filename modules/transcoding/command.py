"""
转码命令模板

把配置中的命令字符串拆分为参数列表，并替换占位符：

- %s 源文件路径
- %t 标题 / %l 专辑 / %a 艺术家
- %b 码率（kbps）
- %o 时间偏移（秒）/ %d 时长（秒）
- %w / %h 视频宽高（偶数）

可执行文件始终从转码器目录中解析，不接受任意路径。
"""

import os
import re
import shutil
import logging
import tempfile
from dataclasses import dataclass
from typing import List, Optional

from .domain import MediaFile, VideoTranscodingSettings
from .scheme import TranscodeScheme

logger = logging.getLogger(__name__)

SPLIT_PATTERN = re.compile(r'"([^"]*)"|(\S+)')

UNKNOWN_TITLE = "Unknown Song"
UNKNOWN_ALBUM = "Unknown Album"
UNKNOWN_ARTIST = "Unknown Artist"

# 码率未知（不限制）时 %b 使用的值
UNLIMITED_BIT_RATE_ARG = TranscodeScheme.MAX_320.max_bit_rate


def split_command(command: Optional[str]) -> List[str]:
    """按空白拆分命令，双引号内的内容作为一个参数

    例如 'u2 rem "greatest hits"' 拆分为 ['u2', 'rem', 'greatest hits']。
    """
    if not command:
        return []
    result = []
    for m in SPLIT_PATTERN.finditer(command):
        if m.group(1) is None:
            result.append(m.group(2))  # 未加引号
        else:
            result.append(m.group(1))  # 引号内
    return result


def executable_name(step: Optional[str]) -> Optional[str]:
    """获取步骤命令的可执行文件名（去掉任何目录部分）"""
    tokens = split_command(step)
    if not tokens:
        return None
    return os.path.basename(tokens[0].replace("\\", "/"))


def requires_ascii_source_path() -> bool:
    """当前平台传递非 ASCII 路径给子进程是否不可靠

    Windows 上子进程参数的编码问题会导致转码器打不开文件。
    """
    return os.name == "nt"


def _is_ascii_printable(value: str) -> bool:
    return all(32 <= ord(ch) < 127 for ch in value)


@dataclass
class RenderedStage:
    """渲染后的一个步骤

    tmp_file 为替代源文件创建的临时副本，进程结束后需要删除。
    """

    argv: List[str]
    tmp_file: Optional[str] = None


class CommandTemplate:
    """命令模板渲染器"""

    def __init__(self, transcode_dir: str):
        self.transcode_dir = transcode_dir

    def resolve_executable(self, token: str) -> str:
        return os.path.join(self.transcode_dir, os.path.basename(token.replace("\\", "/")))

    def render(
        self,
        command: str,
        media_file: MediaFile,
        max_bit_rate: Optional[int],
        video_settings: Optional[VideoTranscodingSettings] = None
    ) -> RenderedStage:
        """渲染一个步骤的命令

        Args:
            command: 命令模板
            media_file: 媒体文件
            max_bit_rate: 最大码率（kbps），None 表示不限制
            video_settings: 视频转码参数，可为 None

        Returns:
            RenderedStage
        """
        tokens = split_command(command)
        if not tokens:
            raise ValueError("Empty transcoding command")

        title = media_file.title or UNKNOWN_TITLE
        album = media_file.album_name or UNKNOWN_ALBUM
        artist = media_file.artist or UNKNOWN_ARTIST
        bit_rate = str(max_bit_rate if max_bit_rate else UNLIMITED_BIT_RATE_ARG)

        argv = [self.resolve_executable(tokens[0])]
        tmp_file = None

        for token in tokens[1:]:
            token = token.replace("%b", bit_rate)
            token = token.replace("%t", title)
            token = token.replace("%l", album)
            token = token.replace("%a", artist)
            if video_settings is not None:
                token = token.replace("%o", str(video_settings.time_offset))
                token = token.replace("%d", str(video_settings.duration))
                token = token.replace("%w", str(video_settings.width))
                token = token.replace("%h", str(video_settings.height))
            if "%s" in token:
                if tmp_file is None:
                    tmp_file = self._create_ascii_copy(media_file)
                token = token.replace("%s", tmp_file or media_file.path)
            argv.append(token)

        return RenderedStage(argv=argv, tmp_file=tmp_file)

    def _create_ascii_copy(self, media_file: MediaFile) -> Optional[str]:
        """需要时把源文件复制到 ASCII 文件名的临时文件

        Returns:
            临时文件路径，不需要时返回 None
        """
        path = os.path.abspath(media_file.path)
        if not requires_ascii_source_path() or media_file.is_video or _is_ascii_printable(path):
            return None

        suffix = os.path.splitext(path)[1]
        fd, tmp_path = tempfile.mkstemp(prefix="transcode", suffix=suffix)
        os.close(fd)
        try:
            shutil.copyfile(path, tmp_path)
        except OSError:
            os.remove(tmp_path)
            raise
        logger.debug(f"Created tmp file: {tmp_path}")
        return tmp_path
