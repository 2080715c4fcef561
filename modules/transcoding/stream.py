"""
流服务

视频尺寸解析、首选格式、同一播放器的旧流终止、填充数据等与单次流响应相关的操作。
"""

import re
import time
import logging
from typing import BinaryIO, Optional, Tuple

from .config import TranscodingConfig
from .domain import (
    USERNAME_ANONYMOUS,
    MediaFile,
    Parameters,
    Player,
    PreferredFormatScheme,
    VideoTranscodingSettings,
)
from .service import TranscodingService
from .status import StatusService, StreamStatus

logger = logging.getLogger(__name__)

# 按请求码率（kbps）选择视频宽度
MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL1 = 400
MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL2 = 600
MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL3 = 1800

MAX_REQUESTED_VIDEO_SIZE = 2000
DEFAULT_VIDEO_SIZE = (400, 224)

# 时长未知时的默认值
UNKNOWN_DURATION = 2 ** 31 - 1

SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$")

DUMMY_BYTE = b"\xff"


def even(size: int) -> int:
    """向上取偶数，部分 ffmpeg 版本要求宽高为偶数"""
    return size + (size % 2)


class StreamService:
    """流服务"""

    def __init__(
        self,
        config: TranscodingConfig,
        transcoding_service: TranscodingService,
        status_service: StatusService
    ):
        self.config = config
        self.transcoding_service = transcoding_service
        self.status_service = status_service

    def get_format(self, requested_format: Optional[str], player: Player, is_rest: Optional[bool] = None) -> Optional[str]:
        """获取请求的目标格式

        非 REST 请求（或匿名用户）未指定格式时，按首选格式方案使用配置中的默认格式。
        """
        scheme = PreferredFormatScheme.of(self.config.preferred_format_scheme)
        if (scheme is PreferredFormatScheme.ANONYMOUS and player.username == USERNAME_ANONYMOUS) or \
                (scheme is PreferredFormatScheme.OTHER_THAN_REQUEST and not is_rest):
            return requested_format or self.config.preferred_format or None
        return requested_format

    def create_video_transcoding_settings(
        self,
        media_file: MediaFile,
        max_bit_rate: Optional[int] = None,
        time_offset: int = 0,
        duration: Optional[int] = None,
        size: Optional[str] = None,
        hls: bool = False
    ) -> VideoTranscodingSettings:
        """创建视频转码参数

        Args:
            media_file: 媒体文件
            max_bit_rate: 请求的码率（kbps），可为 None
            time_offset: 时间偏移（秒）
            duration: 时长（秒），为 None 时使用剩余时长
            size: 请求的尺寸，如 "640x480"
            hls: 是否为 HLS 请求

        Returns:
            VideoTranscodingSettings
        """
        if duration is None:
            if media_file.duration_seconds is None:
                duration = UNKNOWN_DURATION
            else:
                duration = media_file.duration_seconds - time_offset

        dim = self.get_requested_video_size(size)
        if dim is None:
            dim = self.get_suitable_video_size(media_file.width, media_file.height, max_bit_rate)

        return VideoTranscodingSettings(dim[0], dim[1], time_offset, duration, hls)

    def get_requested_video_size(self, size_spec: Optional[str]) -> Optional[Tuple[int, int]]:
        """解析 "WxH" 形式的尺寸，超出范围时返回 None"""
        if size_spec is None:
            return None
        match = SIZE_PATTERN.match(size_spec.strip())
        if not match:
            return None
        w, h = int(match.group(1)), int(match.group(2))
        if 0 <= w <= MAX_REQUESTED_VIDEO_SIZE and 0 <= h <= MAX_REQUESTED_VIDEO_SIZE:
            return even(w), even(h)
        return None

    def get_suitable_video_size(
        self,
        existing_width: Optional[int],
        existing_height: Optional[int],
        max_bit_rate: Optional[int]
    ) -> Tuple[int, int]:
        """按码率选择宽度，并保持原视频的宽高比"""
        if max_bit_rate is None:
            return DEFAULT_VIDEO_SIZE

        if max_bit_rate < MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL1:
            w = 400
        elif max_bit_rate < MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL2:
            w = 480
        elif max_bit_rate < MAXBITRATE_THRESHOLD_FOR_VIDEO_SIZE_LEVEL3:
            w = 640
        else:
            w = 960
        h = even(w * 9 // 16)

        if not existing_width or not existing_height:
            return w, h

        if existing_width < w or existing_height < h:
            return even(existing_width), even(existing_height)

        aspect_rate = existing_width / existing_height
        h = int(round(w / aspect_rate))
        return even(w), even(h)

    def close_all_streams_for(self, player: Player, is_podcast: bool = False, is_single_file: bool = False):
        """终止播放器正在进行的流（播客和单文件播放可以并存）"""
        if is_podcast or is_single_file:
            return
        for status in self.status_service.get_stream_statuses_for_player(player):
            if status.is_active:
                status.terminate()

    def shutdown(self):
        """停止所有流并关闭转码线程池（服务关闭时）"""
        logger.info("Shutting down stream service")
        self.status_service.terminate_all()
        self.transcoding_service.shutdown()

    def start_stream(
        self,
        player: Player,
        parameters: Parameters,
        is_podcast: bool = False,
        is_single_file: bool = False
    ) -> Tuple[StreamStatus, BinaryIO]:
        """终止旧流，登记新流并打开输入流

        Raises:
            TranscoderStartError: 转码进程无法启动
            UpstreamReadError: 源文件无法打开
        """
        self.close_all_streams_for(player, is_podcast, is_single_file)
        status = self.status_service.create_stream_status(player, parameters.media_file)
        try:
            stream = self.transcoding_service.get_transcoded_input_stream(parameters)
        except IOError:
            self.status_service.remove_stream_status(status)
            raise
        status.attach(stream)
        return status, stream

    def iter_dummy_delayed(self, length: Optional[int] = None, buffer_size: Optional[int] = None):
        """稍后生成最多一个缓冲区的填充数据，避免被终止的客户端不断重连

        Args:
            length: 剩余可写的字节数，None 表示不限制
            buffer_size: 缓冲区大小
        """
        buffer_size = buffer_size or self.config.buffer_size
        time.sleep(self.config.dummy_delay)
        n = buffer_size if length is None else min(buffer_size, length)
        yield from self.iter_dummy(n, buffer_size)

    def iter_dummy(self, length: int, buffer_size: Optional[int] = None):
        """以块的形式生成 length 字节的填充数据"""
        buffer_size = buffer_size or self.config.buffer_size
        remaining = length
        while remaining > 0:
            n = min(buffer_size, remaining)
            yield DUMMY_BYTE * n
            remaining -= n
