"""
转码错误类型

进程启动失败、读取失败等 I/O 错误都继承自 IOError，调用方可以按 I/O 错误统一处理。
配置缺失（转码器未安装）和长度无法估算不属于错误，不会抛出。
"""


class TranscodingError(Exception):
    """转码相关错误的基类"""
    pass


class TranscoderStartError(TranscodingError, IOError):
    """转码进程无法启动

    message 中包含源文件路径和命令，只用于日志；
    返回给客户端时使用 public_message。
    """

    public_message = "Transcoder failed to start"

    def __init__(self, source_path: str, command=None, reason: str = ""):
        self.source_path = source_path
        self.command = list(command) if command else []
        self.reason = reason
        detail = f"Transcoder failed: {source_path}"
        if self.command:
            detail += f" (command: {' '.join(self.command)})"
        if reason:
            detail += f": {reason}"
        super().__init__(detail)


class UpstreamReadError(TranscodingError, IOError):
    """源文件在读取过程中消失或不可读"""

    public_message = "Media source could not be read"

    def __init__(self, source_path: str, reason: str = ""):
        self.source_path = source_path
        self.reason = reason
        super().__init__(f"Failed to read {source_path}: {reason}" if reason else f"Failed to read {source_path}")
