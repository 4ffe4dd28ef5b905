from typing import Callable, Optional

from loguru import logger

from backtest_loop.event import Batch, StatusEvent
from backtest_loop.event_engine import Component, EventEngine


class EventPrinter(Component):
    def __init__(self, tips: str = "", series_names: list = None):
        super().__init__()
        self.tips = tips
        self.series_names = set(series_names) if series_names is not None else None

    def on_batch(self, batch: Batch):
        for event in batch:
            if self.series_names is not None and event.series_name not in self.series_names:
                continue
            print(f"{self.tips} {batch.timestamp} {event.series_name} {dict(event.payload)}")

    def start(self, engine: EventEngine):
        self.event_engine = engine
        engine.register(Batch, self.on_batch)

    def stop(self):
        pass


class StatusTracer(Component):
    def on_status(self, status: StatusEvent):
        logger.info(f"StatusTracer: {status.timestamp} {status.status.value}")

    def start(self, engine: EventEngine):
        engine.register(StatusEvent, self.on_status)

    def stop(self):
        pass


class BatchCollector(Component):
    """
    收集所有批次和状态
    acknowledge 传入调度器的 acknowledge 方法时, 每收到一个批次立即确认
    """

    def __init__(self, acknowledge: Optional[Callable[[], bool]] = None):
        super().__init__()
        self.acknowledge = acknowledge
        self.batches: list[Batch] = []
        self.statuses: list = []

    @property
    def events(self) -> list:
        return [event for batch in self.batches for event in batch]

    def on_batch(self, batch: Batch):
        self.batches.append(batch)
        if self.acknowledge is not None:
            self.acknowledge()

    def on_status(self, status: StatusEvent):
        self.statuses.append(status.status)

    def start(self, engine: EventEngine):
        engine.register(Batch, self.on_batch)
        engine.register(StatusEvent, self.on_status)

    def stop(self):
        pass
