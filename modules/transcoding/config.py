"""
转码配置模块

定义转码相关的配置参数和默认值。
"""

import os
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field

# HLS 使用的一步转码命令
DEFAULT_HLS_COMMAND = (
    "ffmpeg -ss %o -t %d -i %s -async 1 -b:v %bk -s %wx%h -ar 44100 -ac 2 -v 0 "
    "-f mpegts -c:v libx264 -preset superfast -c:a libmp3lame -threads 0 -"
)

# 默认注册的转码方案
DEFAULT_TRANSCODINGS: List[Dict[str, Any]] = [
    {
        "id": 1,
        "name": "mp3 audio",
        "source_formats": "mp3 ogg oga aac m4a flac wav wma aif aiff ape mpc shn",
        "target_format": "mp3",
        "step1": "ffmpeg -i %s -map 0:0 -b:a %bk -v 0 -f mp3 -",
        "default_active": True,
    },
    {
        "id": 2,
        "name": "flv/h264 video",
        "source_formats": "avi mpg mpeg mp4 m4v mkv mov wmv ogv divx m2ts",
        "target_format": "flv",
        "step1": "ffmpeg -ss %o -i %s -async 1 -b:v %bk -s %wx%h -ar 44100 -ac 2 -v 0 "
                 "-f flv -c:v libx264 -preset superfast -threads 0 -",
        "default_active": True,
    },
    {
        "id": 3,
        "name": "mkv video",
        "source_formats": "avi mpg mpeg mp4 m4v mkv mov wmv ogv divx m2ts",
        "target_format": "mkv",
        "step1": "ffmpeg -ss %o -i %s -c:v libx264 -preset superfast -b:v %bk -c:a libvorbis "
                 "-f matroska -threads 0 -",
        "default_active": True,
    },
    {
        "id": 4,
        "name": "mp4/h264 video",
        "source_formats": "avi flv mpg mpeg m4v mkv mov wmv ogv divx m2ts",
        "target_format": "mp4",
        "step1": "ffmpeg -ss %o -i %s -async 1 -b:v %bk -s %wx%h -ar 44100 -ac 2 -v 0 "
                 "-f mp4 -c:v libx264 -preset superfast -threads 0 -movflags frag_keyframe+empty_moov -",
        "default_active": True,
    },
]


@dataclass
class TranscodingConfig:
    """转码配置

    从全局配置中读取转码相关参数，提供默认值。
    """

    # 目录配置
    home_dir: str = "data"
    transcode_dir: Optional[str] = None  # 转码器所在目录，为空时使用 home_dir/transcode

    # HLS 与首选格式
    hls_command: str = DEFAULT_HLS_COMMAND
    preferred_format: str = "mp3"
    preferred_format_scheme: str = "anonymous"

    # 日志
    verbose_log_playing: bool = False  # 转码器 stderr 以 INFO 级别输出

    # 转码线程池（与请求处理线程分开）
    max_workers: int = 32

    # 流输出
    buffer_size: int = 8192
    stop_timeout: float = 3.0  # 终止转码进程后的等待时间（秒）
    dummy_delay: float = 2.0  # 发送填充数据前的等待时间（秒）

    transcodings: List[Dict[str, Any]] = field(default_factory=lambda: list(DEFAULT_TRANSCODINGS))

    @classmethod
    def from_app_config(cls, app_config: dict) -> 'TranscodingConfig':
        """从应用配置创建 TranscodingConfig

        Args:
            app_config: 全局配置字典

        Returns:
            TranscodingConfig 实例
        """
        transcoding_config = app_config.get("transcoding", {}) or {}

        config = cls()

        if "home_dir" in transcoding_config:
            config.home_dir = transcoding_config["home_dir"] or config.home_dir
        if "transcode_dir" in transcoding_config:
            config.transcode_dir = transcoding_config["transcode_dir"] or None

        if "hls_command" in transcoding_config:
            config.hls_command = transcoding_config["hls_command"] or DEFAULT_HLS_COMMAND
        if "preferred_format" in transcoding_config:
            config.preferred_format = transcoding_config["preferred_format"] or ""
        if "preferred_format_scheme" in transcoding_config:
            config.preferred_format_scheme = transcoding_config["preferred_format_scheme"] or "anonymous"

        if "verbose_log_playing" in transcoding_config:
            config.verbose_log_playing = bool(transcoding_config["verbose_log_playing"])

        if "max_workers" in transcoding_config:
            config.max_workers = int(transcoding_config["max_workers"] or 32)

        if "buffer_size" in transcoding_config:
            config.buffer_size = int(transcoding_config["buffer_size"] or 8192)
        if "stop_timeout" in transcoding_config:
            config.stop_timeout = float(transcoding_config["stop_timeout"] or 3.0)
        if "dummy_delay" in transcoding_config:
            config.dummy_delay = float(transcoding_config["dummy_delay"] or 0)

        if "transcodings" in transcoding_config and transcoding_config["transcodings"] is not None:
            config.transcodings = list(transcoding_config["transcodings"])

        return config

    def get_transcode_dir(self) -> str:
        """获取转码器目录

        Returns:
            转码器目录路径
        """
        if self.transcode_dir:
            return self.transcode_dir
        return os.path.join(self.home_dir, "transcode")


def get_transcoding_config(app_config: dict) -> TranscodingConfig:
    """获取转码配置的便捷函数

    Args:
        app_config: 全局配置字典

    Returns:
        TranscodingConfig 实例
    """
    return TranscodingConfig.from_app_config(app_config)
