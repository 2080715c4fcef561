"""
流传输状态

记录每个播放器当前的流，新流开始时可以终止同一播放器之前的流。
"""

import time
import uuid
import logging
import threading
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from .domain import MediaFile, Player

logger = logging.getLogger(__name__)


class StreamState(Enum):
    """流状态枚举"""
    ACTIVE = "active"          # 传输中
    TERMINATED = "terminated"  # 已被终止（被新流替换或服务停止）
    COMPLETED = "completed"    # 已结束


@dataclass(eq=False)
class StreamStatus:
    """一次流传输的状态"""

    player: Player
    status_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    media_file: Optional[MediaFile] = None
    bytes_transferred: int = 0
    state: StreamState = StreamState.ACTIVE

    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    # 正在读取的输入流，终止时关闭
    stream: Optional[Any] = field(default=None, repr=False)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return self.state is StreamState.ACTIVE

    @property
    def is_terminated(self) -> bool:
        return self.state is StreamState.TERMINATED

    def attach(self, stream):
        """关联输入流；已终止时立即关闭"""
        with self.lock:
            self.stream = stream
            terminated = self.is_terminated
        if terminated and stream is not None:
            stream.close()

    def add_bytes_transferred(self, count: int):
        self.bytes_transferred += count
        self.updated_at = time.time()

    def terminate(self):
        """终止传输，关闭输入流使阻塞中的读取返回"""
        with self.lock:
            if not self.is_active:
                return
            self.state = StreamState.TERMINATED
            self.updated_at = time.time()
            stream = self.stream
        logger.info(f"Terminating stream {self.status_id} for player {self.player.id}")
        if stream is not None:
            stream.close()

    def mark_completed(self):
        with self.lock:
            if self.is_active:
                self.state = StreamState.COMPLETED
            self.updated_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.status_id,
            "player_id": self.player.id,
            "path": self.media_file.path if self.media_file else None,
            "bytes_transferred": self.bytes_transferred,
            "state": self.state.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class StatusService:
    """按播放器登记的流状态"""

    def __init__(self):
        self._statuses: Dict[str, List[StreamStatus]] = {}
        self.lock = threading.Lock()

    def create_stream_status(self, player: Player, media_file: Optional[MediaFile] = None) -> StreamStatus:
        status = StreamStatus(player=player, media_file=media_file)
        with self.lock:
            self._statuses.setdefault(player.id, []).append(status)
        return status

    def get_stream_statuses_for_player(self, player: Player) -> List[StreamStatus]:
        with self.lock:
            return list(self._statuses.get(player.id, []))

    def get_all_stream_statuses(self) -> List[StreamStatus]:
        with self.lock:
            return [s for statuses in self._statuses.values() for s in statuses]

    def remove_stream_status(self, status: Optional[StreamStatus]):
        if status is None:
            return
        status.mark_completed()
        with self.lock:
            statuses = self._statuses.get(status.player.id)
            if statuses and status in statuses:
                statuses.remove(status)
                if not statuses:
                    del self._statuses[status.player.id]

    def terminate_all(self):
        """停止所有传输（服务关闭时）"""
        for status in self.get_all_stream_statuses():
            status.terminate()
