# stats_cache.py - Packed (count, last activity, has data) statistics snapshot

from dataclasses import dataclass

TIMESTAMP_SHIFT = 32
HAS_DATA_SHIFT = 64
UINT32_MASK = (1 << 32) - 1
WORD_MASK = (1 << 256) - 1


@dataclass(frozen=True)
class TrustStatistics:
    event_count: int
    last_activity: int
    has_data: bool


def pack_statistics(event_count, last_activity):
    """Single 256-bit word: bits 0-31 count, 32-63 timestamp, bit 64 has-data"""
    word = event_count & UINT32_MASK
    word |= (last_activity & UINT32_MASK) << TIMESTAMP_SHIFT
    if event_count > 0:
        word |= 1 << HAS_DATA_SHIFT
    return word


def unpack_statistics(word):
    if word < 0 or word > WORD_MASK:
        raise ValueError("statistics word must fit in 256 bits")
    return TrustStatistics(
        event_count=word & UINT32_MASK,
        last_activity=(word >> TIMESTAMP_SHIFT) & UINT32_MASK,
        has_data=bool((word >> HAS_DATA_SHIFT) & 1),
    )


class StatisticsCache:
    """Per-user packed snapshot; refreshed opportunistically, may be stale"""

    def __init__(self):
        self._words = {}

    def store(self, user, event_count, last_activity):
        self._words[user] = pack_statistics(event_count, last_activity)

    def word(self, user):
        return self._words.get(user, 0)

    def read(self, user):
        return unpack_statistics(self.word(user))
