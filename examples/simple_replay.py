"""
Simple example demonstrating the replay loop.

This example shows:
1. Registering candle and funding series with different timestamp formats
2. Stepped replay on a one-minute cadence
3. A consumer that acknowledges every batch before the next tick is computed
"""

from backtest_loop import MergeScheduler, TimeSeries, BatchCollector, EventPrinter

MINUTE = 60_000


def main():
    candles = TimeSeries("candles", [
        {"open_time": 0, "close": 150.0},
        {"open_time": MINUTE, "close": 151.0},
        {"open_time": 2 * MINUTE, "close": 152.0},
        {"open_time": 3 * MINUTE, "close": 151.5},
    ], "open_time")

    funding = TimeSeries("funding", [
        {"time": "1970-01-01T00:01:00Z", "rate": 0.0001},
        {"time": "1970-01-01T00:03:00Z", "rate": -0.0002},
    ], "time")

    scheduler = MergeScheduler(step_size=MINUTE, acknowledge=True)
    scheduler.add_series(candles)
    scheduler.add_series(funding)

    collector = BatchCollector(acknowledge=scheduler.acknowledge)
    scheduler.add_component(EventPrinter(tips="[replay]"))
    scheduler.add_component(collector)
    scheduler.run()

    print(f"\n{len(collector.batches)} batches, {len(collector.events)} events")
    print(scheduler.summary())


if __name__ == "__main__":
    main()
