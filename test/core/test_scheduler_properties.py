"""随机序列上的性质测试"""
import pytest
import random
import sys

from backtest_loop import MergeScheduler, TimeSeries, Status, EXHAUSTED

SEEDS = list(range(20))

def random_series(rng: random.Random, n_series: int = 3, step: int = 1):
    series = []
    for k in range(n_series):
        t = rng.randint(0, 20) * step
        records = []
        for i in range(rng.randint(1, 30)):
            records.append({"t": t, "k": k, "i": i})
            # 允许重复时间戳和不规则间隔
            t += rng.choice([0, 1, 1, 2, 5]) * step + rng.choice([0, 0, 0, 1])
        series.append(TimeSeries(f"S{k}", records, "t"))
    return series

def build(series, **kwargs):
    scheduler = MergeScheduler(**kwargs)
    for s in series:
        # 每次构建都复制 records, 压缩会原地修改
        scheduler.add_series(TimeSeries(s.name, list(s.records), s.timestamp_key))
    scheduler.start()
    return scheduler

def run_to_close(scheduler, on_tick=None):
    batches = []
    times = [scheduler.current_time]
    while True:
        if on_tick is not None:
            on_tick(scheduler)
        result = scheduler.advance()
        times.append(scheduler.current_time)
        if result.events:
            batches.append(result.batch)
        if result.status is Status.CLOSED:
            return batches, times

def flatten(batches):
    return [
        (b.tick, b.timestamp, e.series_name, e.timestamp, dict(e.payload), e.stale)
        for b in batches for e in b.events
    ]

class TestProperties:
    @pytest.mark.parametrize("seed", SEEDS)
    @pytest.mark.parametrize("step_size", [None, 1, 3])
    def test_clock_is_monotonic(self, seed, step_size):
        scheduler = build(random_series(random.Random(seed)), step_size=step_size)
        _, times = run_to_close(scheduler)
        assert all(a <= b for a, b in zip(times, times[1:]))

    @pytest.mark.parametrize("seed", SEEDS)
    def test_event_driven_batches_share_min_timestamp(self, seed):
        scheduler = build(random_series(random.Random(seed)))
        expected = []

        def record_min(s):
            pending = [c.peek() for c in s.cursors.values() if c.peek() is not EXHAUSTED]
            expected.append(min(e.timestamp for e in pending) if pending else None)

        batches, _ = run_to_close(scheduler, on_tick=record_min)
        assert len(batches) == len(expected)
        for batch, t in zip(batches, expected):
            assert {e.timestamp for e in batch.events} == {t}
            assert batch.timestamp == t

    @pytest.mark.parametrize("seed", SEEDS)
    def test_event_driven_emits_every_record(self, seed):
        series = random_series(random.Random(seed))
        scheduler = build(series)
        batches, _ = run_to_close(scheduler)
        events = [e for b in batches for e in b.events]
        for s in series:
            assert sum(1 for e in events if e.series_name == s.name) == len(s.records)
        # 合并后整体有序
        stamps = [e.timestamp for e in events]
        assert stamps == sorted(stamps)

    @pytest.mark.parametrize("seed", SEEDS)
    @pytest.mark.parametrize("step_size", [1, 2, 7])
    def test_stepped_emitted_plus_dropped(self, seed, step_size):
        series = random_series(random.Random(seed))
        scheduler = build(series, step_size=step_size)
        batches, _ = run_to_close(scheduler)
        events = [e for b in batches for e in b.events]
        for s in series:
            cursor = scheduler.cursors[s.name]
            emitted = sum(1 for e in events if e.series_name == s.name)
            assert emitted == cursor.emitted_count
            assert emitted + cursor.dropped_count == len(s.records)
        # 步进模式下每个事件都落在所在 tick 的时间上
        for b in batches:
            assert all(e.timestamp == b.timestamp for e in b.events)

    @pytest.mark.parametrize("seed", SEEDS)
    @pytest.mark.parametrize("step_size", [None, 2])
    def test_compaction_preserves_output(self, seed, step_size):
        series = random_series(random.Random(seed))
        compacted = build(series, step_size=step_size, compaction_threshold=1)
        plain = build(series, step_size=step_size, compaction_threshold=None)
        out_compacted, _ = run_to_close(compacted)
        out_plain, _ = run_to_close(plain)
        assert flatten(out_compacted) == flatten(out_plain)
        assert compacted.compaction_count > 0

    @pytest.mark.parametrize("seed", SEEDS[:5])
    def test_advance_after_close(self, seed):
        scheduler = build(random_series(random.Random(seed)), step_size=1)
        run_to_close(scheduler)
        now = scheduler.current_time
        result = scheduler.advance()
        assert result.events == ()
        assert result.status is Status.CLOSED
        assert scheduler.current_time == now

if __name__ == "__main__":
    sys.exit(pytest.main(["-v", __file__]))
