"""Transcoding, player and user settings repositories."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Protocol

from .domain import Player, Transcoding, UserSettings

logger = logging.getLogger(__name__)


class TranscodingSource(Protocol):
    """Read access to the transcodings enabled for a player."""

    def get_all_transcodings(self) -> List[Transcoding]:
        """Return every registered transcoding."""

    def get_transcodings_for_player(self, player: Player) -> List[Transcoding]:
        """Return the transcodings enabled for the given player, in order."""


class SettingsProvider(Protocol):
    """Read access to per-user settings."""

    def get_user_settings(self, username: str) -> UserSettings:
        """Return the settings of the given user."""


class TranscodingRepository:
    """In-memory transcoding registry with per-player activation."""

    def __init__(self, transcodings: Optional[Iterable[Transcoding]] = None):
        self._transcodings: Dict[int, Transcoding] = {}
        self._player_transcodings: Dict[str, List[int]] = {}
        self._next_id = 1
        self.lock = threading.RLock()
        for transcoding in transcodings or []:
            self._add(transcoding)

    @classmethod
    def from_config(cls, entries: Iterable[dict]) -> 'TranscodingRepository':
        return cls(Transcoding.from_dict(entry) for entry in entries)

    def _add(self, transcoding: Transcoding) -> Transcoding:
        if transcoding.id is None or transcoding.id in self._transcodings:
            transcoding.id = self._next_id
        self._next_id = max(self._next_id, transcoding.id + 1)
        self._transcodings[transcoding.id] = transcoding
        return transcoding

    def get_all_transcodings(self) -> List[Transcoding]:
        with self.lock:
            return list(self._transcodings.values())

    def get_transcodings_for_player(self, player: Player) -> List[Transcoding]:
        with self.lock:
            ids = self._player_transcodings.get(player.id)
            if ids is None:
                return [t for t in self._transcodings.values() if t.default_active]
            return [self._transcodings[i] for i in ids if i in self._transcodings]

    def set_transcodings_for_player(self, player: Player, transcoding_ids: Iterable[int]):
        with self.lock:
            self._player_transcodings[player.id] = [i for i in transcoding_ids if i in self._transcodings]

    def register_player(self, player: Player):
        """新播放器默认启用所有 default_active 的方案"""
        with self.lock:
            if player.id not in self._player_transcodings:
                self._player_transcodings[player.id] = [
                    t.id for t in self._transcodings.values() if t.default_active]

    def create_transcoding(self, transcoding: Transcoding) -> Transcoding:
        """创建转码方案，default_active 时为所有已知播放器启用"""
        with self.lock:
            created = self._add(transcoding)
            if created.default_active:
                for ids in self._player_transcodings.values():
                    ids.append(created.id)
            logger.info(f"Created transcoding {created.id} ({created.name})")
            return created

    def update_transcoding(self, transcoding: Transcoding):
        with self.lock:
            if transcoding.id not in self._transcodings:
                raise KeyError(f"Transcoding not found: {transcoding.id}")
            self._transcodings[transcoding.id] = copy.copy(transcoding)

    def delete_transcoding(self, transcoding_id: int):
        with self.lock:
            if self._transcodings.pop(transcoding_id, None) is not None:
                for ids in self._player_transcodings.values():
                    if transcoding_id in ids:
                        ids.remove(transcoding_id)
                logger.info(f"Deleted transcoding {transcoding_id}")


class InMemorySettings:
    """User settings keyed by username."""

    def __init__(self, users: Optional[Iterable[UserSettings]] = None):
        self._users: Dict[str, UserSettings] = {u.username: u for u in users or []}
        self.lock = threading.Lock()

    def get_user_settings(self, username: str) -> UserSettings:
        with self.lock:
            settings = self._users.get(username)
            if settings is None:
                settings = UserSettings(username)
                self._users[username] = settings
            return settings

    def update_user_settings(self, settings: UserSettings):
        with self.lock:
            self._users[settings.username] = settings


__all__ = ["TranscodingSource", "SettingsProvider", "TranscodingRepository", "InMemorySettings"]
