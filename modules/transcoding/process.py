"""
转码进程管理模块

TranscodeInputStream 把一个外部进程包装为可读的字节流，多个实例可以串联，
前一个进程的 stdout 作为后一个进程的 stdin，例如 OGG -> WAV -> MP3。
"""

import io
import os
import time
import logging
import subprocess
from concurrent.futures import Executor
from typing import List, Optional

from .command import RenderedStage
from .errors import TranscoderStartError, UpstreamReadError

logger = logging.getLogger(__name__)

TMP_FILE_DELETE_TRIALS = 3
TMP_FILE_DELETE_INTERVAL = 3.0


class TranscodeInputStream(io.RawIOBase):
    """转码输入流

    读取外部进程的 stdout。source 不为空时，其数据会在线程池中复制到进程的 stdin。
    关闭时终止进程，并关闭上游流，删除临时文件。
    """

    def __init__(
        self,
        command: List[str],
        executor: Executor,
        source: Optional[io.RawIOBase] = None,
        tmp_file: Optional[str] = None,
        verbose: bool = False,
        stop_timeout: float = 3.0,
        buffer_size: int = 8192
    ):
        """启动转码进程

        Args:
            command: 命令参数列表
            executor: 转码线程池
            source: 输入数据，可为 None
            tmp_file: 关闭时需要删除的临时文件，可为 None
            verbose: 是否以 INFO 级别输出进程的 stderr
            stop_timeout: 终止进程后等待退出的时间（秒）
            buffer_size: 复制输入数据的缓冲区大小

        Raises:
            OSError: 进程无法启动
        """
        super().__init__()
        self.command = list(command)
        self.name = os.path.basename(self.command[0])
        self.source = source
        self.tmp_file = tmp_file
        self._executor = executor
        self._verbose = verbose
        self._stop_timeout = stop_timeout
        self._buffer_size = buffer_size

        logger.info("Starting transcoder: " + " ".join(f"[{arg}]" for arg in self.command))

        self.process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE if source is not None else subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE
        )

        try:
            # 必须持续读取 stderr，否则进程可能阻塞
            executor.submit(self._log_stderr)
            if source is not None:
                executor.submit(self._feed_stdin)
        except RuntimeError as e:
            self._stop_process()
            raise OSError(f"Transcode executor unavailable: {e}") from e

    def _log_stderr(self):
        level = logging.INFO if self._verbose else logging.DEBUG
        try:
            for line in iter(self.process.stderr.readline, b""):
                logger.log(level, f"({self.name}) {line.decode('utf-8', 'replace').rstrip()}")
        except (OSError, ValueError) as e:
            logger.debug(f"Stopped reading stderr of {self.name}: {e}")
        finally:
            try:
                self.process.stderr.close()
            except OSError:
                pass

    def _feed_stdin(self):
        stdin = self.process.stdin
        try:
            while True:
                chunk = self.source.read(self._buffer_size)
                if not chunk:
                    break
                stdin.write(chunk)
                stdin.flush()
        except (OSError, ValueError) as e:
            # 远端播放器关闭连接时会出现
            logger.debug(f"Stopped feeding {self.name}: {e}")
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        try:
            return self.process.stdout.readinto1(b)
        except ValueError:
            if self.closed:
                return 0
            raise
        except OSError as e:
            raise UpstreamReadError(self.name, str(e)) from e

    def close(self):
        """终止进程并释放资源"""
        if self.closed:
            return
        if getattr(self, "process", None) is None:
            # 进程未能启动
            super().close()
            return
        try:
            self._stop_process()
            for pipe in (self.process.stdout, self.process.stdin):
                if pipe is not None:
                    try:
                        pipe.close()
                    except OSError as e:
                        logger.debug(f"Error closing pipe of {self.name}: {e}")
        finally:
            super().close()
            if self.source is not None:
                self.source.close()
            if self.tmp_file:
                schedule_tmp_file_deletion(self._executor, self.tmp_file)

    def _stop_process(self):
        if self.process.poll() is not None:
            return
        self.process.terminate()
        try:
            self.process.wait(timeout=self._stop_timeout)
        except subprocess.TimeoutExpired:
            self.process.kill()
            self.process.wait()
        logger.debug(f"Stopped transcoder process {self.process.pid} ({self.name})")


def delete_tmp_file(tmp_file: str) -> bool:
    """删除临时文件，失败时重试

    Returns:
        是否已删除
    """
    for trial in range(TMP_FILE_DELETE_TRIALS):
        try:
            if os.path.exists(tmp_file):
                os.remove(tmp_file)
            return True
        except OSError:
            if trial < TMP_FILE_DELETE_TRIALS - 1:
                time.sleep(TMP_FILE_DELETE_INTERVAL)
    logger.warning(f"Failed to delete tmp file: {tmp_file}")
    return False


def schedule_tmp_file_deletion(executor: Executor, tmp_file: str):
    try:
        executor.submit(delete_tmp_file, tmp_file)
    except RuntimeError:
        delete_tmp_file(tmp_file)


def build_transcode_chain(
    stages: List[RenderedStage],
    source_path: str,
    executor: Executor,
    verbose: bool = False,
    stop_timeout: float = 3.0,
    buffer_size: int = 8192
) -> TranscodeInputStream:
    """依次启动各步骤，前一步的输出作为后一步的输入

    任何一步启动失败时，已启动的进程会被终止，临时文件会被删除。

    Args:
        stages: 渲染后的步骤（按执行顺序）
        source_path: 源文件路径，用于错误信息
        executor: 转码线程池

    Returns:
        最后一步的输出流

    Raises:
        TranscoderStartError: 进程无法启动
    """
    if not stages:
        raise ValueError("At least one transcoding step is required")

    stream = None
    for index, stage in enumerate(stages):
        try:
            stream = TranscodeInputStream(
                stage.argv,
                executor,
                source=stream,
                tmp_file=stage.tmp_file,
                verbose=verbose,
                stop_timeout=stop_timeout,
                buffer_size=buffer_size
            )
        except OSError as e:
            logger.error(f"Failed to start transcoder {stage.argv[0]}: {e}")
            if stream is not None:
                stream.close()
            for pending in stages[index:]:
                if pending.tmp_file:
                    schedule_tmp_file_deletion(executor, pending.tmp_file)
            raise TranscoderStartError(source_path, stage.argv, str(e)) from e
    return stream
