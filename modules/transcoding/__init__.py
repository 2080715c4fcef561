"""
转码流服务模块

把任意音视频文件结合播放器的能力配置，转换为可播放的 HTTP 字节流。

核心特性：
- 按播放器、用户、请求三层码率上限选择转码方案
- 最多三个外部转码进程串联，进程输出直接作为下一个进程的输入
- 预估转码后的长度，以支持 HTTP Range
- 从转码器目录解析可执行文件，安全替换命令模板中的占位符
"""

from .config import DEFAULT_HLS_COMMAND, DEFAULT_TRANSCODINGS, TranscodingConfig, get_transcoding_config
from .domain import (
    MediaFile,
    MediaType,
    Parameters,
    Player,
    PreferredFormatScheme,
    Transcoding,
    UserSettings,
    VideoTranscodingSettings,
)
from .errors import TranscodingError, TranscoderStartError, UpstreamReadError
from .scheme import TranscodeScheme
from .repository import TranscodingRepository, InMemorySettings
from .process import TranscodeInputStream
from .service import TranscodingService
from .status import StatusService, StreamStatus
from .stream import StreamService

__all__ = [
    'DEFAULT_HLS_COMMAND',
    'DEFAULT_TRANSCODINGS',
    'TranscodingConfig',
    'get_transcoding_config',
    'MediaFile',
    'MediaType',
    'Parameters',
    'Player',
    'PreferredFormatScheme',
    'Transcoding',
    'UserSettings',
    'VideoTranscodingSettings',
    'TranscodingError',
    'TranscoderStartError',
    'UpstreamReadError',
    'TranscodeScheme',
    'TranscodingRepository',
    'InMemorySettings',
    'TranscodeInputStream',
    'TranscodingService',
    'StatusService',
    'StreamStatus',
    'StreamService',
]
