import pytest
import sys
from dataclasses import FrozenInstanceError, replace

from backtest_loop.event import Batch, Event, Status

class TestEvent:
    def test_immutable(self):
        e = Event(100, "candles", {"t": 100})
        with pytest.raises(FrozenInstanceError):
            e.timestamp = 200
        with pytest.raises(TypeError):
            e.payload["t"] = 200
        assert e.stale is False

    def test_payload_view_tracks_equality(self):
        assert Event(1, "A", {"t": 1}) == Event(1, "A", {"t": 1})
        assert Event(1, "A", {"t": 1}) != Event(1, "B", {"t": 1})

    def test_replace_keeps_payload(self):
        e = Event(1, "A", {"t": 1})
        stale = replace(e, stale=True)
        assert stale.stale
        assert stale.payload is e.payload

    def test_ordering(self):
        assert Event(1, "A", {}) < Event(2, "A", {})
        assert not Event(2, "A", {}) < Event(1, "A", {})


class TestBatch:
    def test_container(self):
        batch = Batch(1, 5, (Event(5, "A", {}), Event(5, "B", {}), Event(5, "A", {})))
        assert len(batch) == 3
        assert bool(batch)
        assert [e.series_name for e in batch] == ["A", "B", "A"]
        assert len(batch.by_series("A")) == 2

    def test_empty(self):
        assert not Batch(1, 5)
        assert len(Batch(1, 5)) == 0

    def test_status_values(self):
        assert Status.OPEN == "open"
        assert Status.CLOSED.value == "closed"

if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
