# test_stats_cache.py - Packed statistics snapshot
import pytest

from stats_cache import StatisticsCache, TrustStatistics, pack_statistics, unpack_statistics


def test_bit_layout():
    word = pack_statistics(3, 0x65000000)
    assert word & 0xFFFFFFFF == 3
    assert (word >> 32) & 0xFFFFFFFF == 0x65000000
    assert (word >> 64) & 1 == 1
    assert word >> 65 == 0


def test_no_data_flag_for_zero_count():
    assert pack_statistics(0, 1_700_000_000) >> 64 == 0
    assert unpack_statistics(pack_statistics(0, 1_700_000_000)).has_data is False


def test_unpack():
    word = (1 << 64) | (1_700_000_000 << 32) | 42
    assert unpack_statistics(word) == TrustStatistics(42, 1_700_000_000, True)


def test_unpack_rejects_oversized_word():
    with pytest.raises(ValueError):
        unpack_statistics(1 << 256)


def test_cache_defaults_and_store():
    cache = StatisticsCache()
    assert cache.word("0xalice") == 0
    assert cache.read("0xalice") == TrustStatistics(0, 0, False)
    cache.store("0xalice", 5, 1_700_000_123)
    assert cache.read("0xalice") == TrustStatistics(5, 1_700_000_123, True)
    assert cache.read("0xbob") == TrustStatistics(0, 0, False)
