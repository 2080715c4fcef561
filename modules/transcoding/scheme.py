"""码率上限方案，用于播放器和用户的转码策略"""

from enum import Enum
from typing import Optional


class TranscodeScheme(Enum):
    """码率上限（kbps），OFF 表示不限制"""

    OFF = 0
    MAX_32 = 32
    MAX_40 = 40
    MAX_48 = 48
    MAX_56 = 56
    MAX_64 = 64
    MAX_80 = 80
    MAX_96 = 96
    MAX_112 = 112
    MAX_128 = 128
    MAX_160 = 160
    MAX_192 = 192
    MAX_224 = 224
    MAX_256 = 256
    MAX_320 = 320
    MAX_1411 = 1411

    @property
    def max_bit_rate(self) -> int:
        return self.value

    def strictest(self, other: Optional['TranscodeScheme']) -> 'TranscodeScheme':
        """返回两者中更严格的上限

        OFF 与任何有限上限比较时，有限上限胜出。
        """
        if other is None or other is TranscodeScheme.OFF:
            return self
        if self is TranscodeScheme.OFF:
            return other
        return self if self.value <= other.value else other

    @classmethod
    def ceilings(cls):
        return [s for s in cls if s is not cls.OFF]

    @classmethod
    def from_max_bit_rate(cls, max_bit_rate: Optional[int]) -> 'TranscodeScheme':
        """把任意码率换算为不超过它的最大标准上限

        0 或 None 表示不限制；低于最小上限时取最小上限。
        """
        if not max_bit_rate or max_bit_rate <= 0:
            return cls.OFF
        result = None
        for scheme in cls.ceilings():
            if scheme.value <= max_bit_rate:
                result = scheme
        return result or cls.MAX_32

    @classmethod
    def quantize(cls, bit_rate: int) -> int:
        """向下取整到标准上限，低于最小上限时原样返回"""
        result = bit_rate
        for scheme in cls.ceilings():
            if scheme.value <= bit_rate:
                result = scheme.value
        return result

    @classmethod
    def from_name(cls, name: Optional[str]) -> 'TranscodeScheme':
        if not name:
            return cls.OFF
        try:
            return cls[str(name).upper()]
        except KeyError:
            return cls.from_max_bit_rate(int(name)) if str(name).isdigit() else cls.OFF
