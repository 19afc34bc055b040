# tests/unit/adaptive_helpers/test_ring_buffer.py

import pytest

from alex_adaptation.adaptive_helpers.ring_buffer import RingBuffer


class TestRingBuffer:

    def test_append_evicts_oldest_when_full(self):
        buf = RingBuffer(3)
        for i in range(5):
            buf.append(i)
        assert len(buf) == 3
        assert buf.to_list() == [2, 3, 4]
        assert buf.is_full()

    def test_latest_returns_most_recent_oldest_first(self):
        buf = RingBuffer(10)
        for i in range(6):
            buf.append(i)
        assert buf.latest(2) == [4, 5]
        assert buf.latest(50) == [0, 1, 2, 3, 4, 5]
        assert buf.latest(0) == []

    def test_last_and_empty_behaviour(self):
        buf = RingBuffer(2)
        assert not buf
        with pytest.raises(IndexError):
            buf.last()
        buf.append("a")
        assert buf
        assert buf.last() == "a"

    def test_clear(self):
        buf = RingBuffer(2)
        buf.append(1)
        buf.clear()
        assert len(buf) == 0
        assert buf.to_list() == []

    @pytest.mark.parametrize("capacity", [0, -5, "10", None])
    def test_invalid_capacity_defaults_to_one(self, capacity):
        buf = RingBuffer(capacity)  # type: ignore[arg-type]
        assert buf.capacity == 1
        buf.append(1)
        buf.append(2)
        assert buf.to_list() == [2]

    def test_iteration_is_a_snapshot(self):
        buf = RingBuffer(3)
        buf.append(1)
        buf.append(2)
        seen = []
        for item in buf:
            seen.append(item)
            buf.append(item * 10)
        assert seen == [1, 2]
