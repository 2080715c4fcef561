"""
转码领域模型

媒体文件、转码方案、播放器等数据结构。媒体文件和转码方案由外部持有，
Parameters 在单次请求内构建，构建完成后不可变。
"""

import os
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List

from .scheme import TranscodeScheme

FORMAT_RAW = "raw"
USERNAME_ANONYMOUS = "anonymous"


class MediaType(Enum):
    """媒体类型"""
    MUSIC = "music"
    PODCAST = "podcast"
    AUDIOBOOK = "audiobook"
    VIDEO = "video"


class PreferredFormatScheme(Enum):
    """请求未指定格式时，是否使用默认的首选格式"""
    ANONYMOUS = "anonymous"            # 仅匿名用户使用首选格式
    OTHER_THAN_REQUEST = "other_than_request"  # 非 REST 请求都使用首选格式
    REQUEST_ONLY = "request_only"      # 只使用请求中的格式

    @classmethod
    def of(cls, name: Optional[str]) -> 'PreferredFormatScheme':
        for scheme in cls:
            if name and (scheme.name == str(name).upper() or scheme.value == str(name).lower()):
                return scheme
        return cls.ANONYMOUS


@dataclass
class MediaFile:
    """媒体文件（由媒体库扫描产生，只读）"""

    path: str
    format: str
    bit_rate: Optional[int] = None  # kbps
    variable_bit_rate: bool = False
    duration_seconds: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None
    media_type: MediaType = MediaType.MUSIC

    # 标签
    title: Optional[str] = None
    album_name: Optional[str] = None
    artist: Optional[str] = None

    file_size: Optional[int] = None

    def __post_init__(self):
        if isinstance(self.media_type, str):
            self.media_type = MediaType(self.media_type)

    @property
    def is_video(self) -> bool:
        return self.media_type is MediaType.VIDEO

    def get_file_size(self) -> int:
        """获取文件大小（字节），未记录时读取磁盘"""
        if self.file_size is not None:
            return self.file_size
        return os.path.getsize(self.path)


@dataclass
class Transcoding:
    """转码方案

    source_formats 为空格分隔的源格式列表，step1 必填，step2/step3 可选。
    """

    id: Optional[int]
    name: str
    source_formats: str
    target_format: str
    step1: str
    step2: Optional[str] = None
    step3: Optional[str] = None
    default_active: bool = True

    @property
    def source_formats_list(self) -> List[str]:
        return (self.source_formats or "").split()

    @property
    def steps(self) -> List[str]:
        """非空的步骤，按执行顺序"""
        return [step for step in (self.step1, self.step2, self.step3) if step]

    def accepts(self, fmt: Optional[str]) -> bool:
        if not fmt:
            return False
        return any(source.lower() == fmt.lower() for source in self.source_formats_list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Transcoding':
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            source_formats=data.get("source_formats", ""),
            target_format=data.get("target_format", ""),
            step1=data.get("step1", ""),
            step2=data.get("step2") or None,
            step3=data.get("step3") or None,
            default_active=bool(data.get("default_active", True)),
        )


@dataclass
class Player:
    """播放器"""

    id: str
    name: str = ""
    username: Optional[str] = None
    transcode_scheme: TranscodeScheme = TranscodeScheme.OFF
    ip_address: Optional[str] = None


@dataclass
class UserSettings:
    username: str
    transcode_scheme: TranscodeScheme = TranscodeScheme.OFF


@dataclass(frozen=True)
class VideoTranscodingSettings:
    """视频转码参数，对应 %w %h %o %d"""

    width: int
    height: int
    time_offset: int = 0
    duration: int = 0
    hls: bool = False


@dataclass(frozen=True)
class Parameters:
    """一次流请求的转码参数

    transcoding 为 None 表示直接输出原文件；expected_length 为 None 表示无法估算。
    """

    media_file: MediaFile
    video_transcoding_settings: Optional[VideoTranscodingSettings] = None
    max_bit_rate: Optional[int] = None
    transcoding: Optional[Transcoding] = None
    range_allowed: bool = True
    expected_length: Optional[int] = None

    @property
    def is_transcode(self) -> bool:
        return self.transcoding is not None
