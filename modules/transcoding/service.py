"""
转码服务

转码是把媒体文件转换为其他格式或码率（降采样）的过程。本模块根据播放器、用户、
请求参数选择转码方案，估算输出长度，并创建（可能经过转码的）输入流。

典型用法：

    parameters = service.get_parameters(media_file, player, max_bit_rate, fmt, video_settings)
    with service.get_transcoded_input_stream(parameters) as stream:
        ...
"""

import os
import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import BinaryIO, List, Optional

from .bitrate import create_bitrate, create_max_bitrate, effective_scheme
from .command import CommandTemplate, RenderedStage
from .config import TranscodingConfig
from .domain import MediaFile, Parameters, Player, Transcoding, VideoTranscodingSettings
from .errors import TranscoderStartError, UpstreamReadError
from .estimator import get_expected_length, is_range_allowed
from .policy import is_need_transcoding, is_transcoder_installed, select_transcoding
from .process import build_transcode_chain, schedule_tmp_file_deletion
from .repository import SettingsProvider, TranscodingSource
from .scheme import TranscodeScheme

logger = logging.getLogger(__name__)


class TranscodingService:
    """转码服务

    依赖转码方案仓库和用户设置两个只读接口，转码进程的辅助线程运行在独立的线程池中。
    """

    def __init__(
        self,
        config: TranscodingConfig,
        transcodings: TranscodingSource,
        settings: SettingsProvider,
        executor: Optional[Executor] = None
    ):
        """初始化转码服务

        Args:
            config: 转码配置
            transcodings: 转码方案仓库
            settings: 用户设置
            executor: 转码线程池，为 None 时按 max_workers 创建
        """
        self.config = config
        self.transcodings = transcodings
        self.settings = settings
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="Transcode"
        )
        self._transcode_dir: Optional[str] = None

    def shutdown(self):
        if self._owns_executor:
            self.executor.shutdown(wait=False)

    def get_transcode_directory(self) -> str:
        """转码器所在目录，不存在时创建"""
        if self._transcode_dir:
            return self._transcode_dir
        transcode_dir = self.config.get_transcode_dir()
        if not os.path.exists(transcode_dir):
            try:
                os.makedirs(transcode_dir, exist_ok=True)
                logger.info(f"Created directory {transcode_dir}")
            except OSError as e:
                logger.warning(f"Failed to create directory {transcode_dir}: {e}")
        self._transcode_dir = transcode_dir
        return transcode_dir

    def is_transcoder_installed(self, transcoding: Transcoding) -> bool:
        return is_transcoder_installed(self.get_transcode_directory(), transcoding)

    def get_transcoding(
        self,
        media_file: MediaFile,
        player: Player,
        preferred_target_format: Optional[str] = None,
        hls: bool = False
    ) -> Optional[Transcoding]:
        """获取适用于文件和播放器的转码方案，不转码时返回 None"""
        return select_transcoding(
            media_file,
            self.transcodings.get_transcodings_for_player(player),
            self.get_transcode_directory(),
            preferred_target_format=preferred_target_format,
            hls=hls,
            hls_command=self.config.hls_command
        )

    def is_transcoding_required(self, media_file: MediaFile, player: Player) -> bool:
        """使用相同参数调用 get_transcoded_input_stream 时是否会转码"""
        return self.get_transcoding(media_file, player) is not None

    def is_transcoding_supported(self, media_file: Optional[MediaFile] = None) -> bool:
        """是否有转码方案可用；指定文件时检查是否有方案接受该文件格式"""
        transcodings = self.transcodings.get_all_transcodings()
        if media_file is None:
            return bool(transcodings)
        return any(t.accepts(media_file.format) for t in transcodings)

    def get_suffix(self, player: Player, media_file: MediaFile, preferred_target_format: Optional[str] = None) -> str:
        """考虑转码后的文件后缀，例如 "mp3" """
        transcoding = self.get_transcoding(media_file, player, preferred_target_format)
        return media_file.format if transcoding is None else transcoding.target_format

    def get_user_transcode_scheme(self, player: Player) -> Optional[TranscodeScheme]:
        """播放器所属用户的码率上限，没有用户时返回 None"""
        if not player.username:
            return None
        return self.settings.get_user_settings(player.username).transcode_scheme

    def get_parameters(
        self,
        media_file: MediaFile,
        player: Player,
        max_bit_rate: Optional[int] = None,
        preferred_target_format: Optional[str] = None,
        video_transcoding_settings: Optional[VideoTranscodingSettings] = None
    ) -> Parameters:
        """构建一次流请求的转码参数

        方案适用于该文件且已为播放器启用，并且格式或码率需要改变时才会转码。

        Args:
            media_file: 媒体文件
            player: 播放器
            max_bit_rate: 覆盖播放器和用户的码率上限，可为 None
            preferred_target_format: 首选目标格式，可为 None
            video_transcoding_settings: 视频转码参数，可为 None

        Returns:
            Parameters
        """
        scheme = effective_scheme(player.transcode_scheme, self.get_user_transcode_scheme(player), max_bit_rate)
        bit_rate = create_bitrate(media_file)
        mb = create_max_bitrate(scheme, media_file, bit_rate)
        hls = video_transcoding_settings is not None and video_transcoding_settings.hls
        transcoding = self.get_transcoding(media_file, player, preferred_target_format, hls)

        if not is_need_transcoding(transcoding, mb, bit_rate, preferred_target_format, media_file):
            transcoding = None

        resolved_max_bit_rate = None if mb == 0 else mb
        expected_length = get_expected_length(media_file, transcoding, resolved_max_bit_rate)
        return Parameters(
            media_file=media_file,
            video_transcoding_settings=video_transcoding_settings,
            max_bit_rate=resolved_max_bit_rate,
            transcoding=transcoding,
            range_allowed=is_range_allowed(transcoding, expected_length),
            expected_length=expected_length,
        )

    def get_transcoded_input_stream(self, parameters: Parameters) -> BinaryIO:
        """获取（可能经过转码的）输入流

        Raises:
            TranscoderStartError: 转码进程无法启动
            UpstreamReadError: 源文件无法打开
        """
        if parameters.transcoding is not None:
            return self.create_transcoded_input_stream(parameters)
        path = parameters.media_file.path
        try:
            return open(path, "rb")
        except OSError as e:
            raise UpstreamReadError(path, str(e)) from e

    def render_stages(self, parameters: Parameters) -> List[RenderedStage]:
        """渲染各步骤命令（按执行顺序，跳过空步骤）"""
        template = CommandTemplate(self.get_transcode_directory())
        stages: List[RenderedStage] = []
        try:
            for step in parameters.transcoding.steps:
                stages.append(template.render(
                    step,
                    parameters.media_file,
                    parameters.max_bit_rate,
                    parameters.video_transcoding_settings
                ))
        except OSError:
            for stage in stages:
                if stage.tmp_file:
                    schedule_tmp_file_deletion(self.executor, stage.tmp_file)
            raise
        return stages

    def create_transcoded_input_stream(self, parameters: Parameters) -> BinaryIO:
        transcoding = parameters.transcoding
        path = parameters.media_file.path
        if not transcoding.step1:
            raise TranscoderStartError(path, reason=f"Transcoding {transcoding.name} has no first step")
        try:
            stages = self.render_stages(parameters)
        except OSError as e:
            # Windows 上复制临时文件失败
            raise TranscoderStartError(path, reason=str(e)) from e
        return build_transcode_chain(
            stages,
            path,
            self.executor,
            verbose=self.config.verbose_log_playing,
            stop_timeout=self.config.stop_timeout,
            buffer_size=self.config.buffer_size
        )
