import json

from backtest_loop.event import Batch
from backtest_loop.event_engine import Component, EventEngine


class BatchRecorder(Component):
    """
    批次记录器
    把每个发出的事件写成 csv 一行: tick,timestamp,series,stale,payload(json)
    缓冲写入, 缓冲区满或 stop 时落盘
    """
    def __init__(self, path: str, buffer_size: int = 1000):
        self.path = path
        self.buffer_size = buffer_size
        self.buffer = []
        self.file = None

    def start(self, event_engine: EventEngine):
        self.engine = event_engine
        event_engine.register(Batch, self.on_batch)
        # 初始化文件并打开
        self.file = open(self.path, "w", encoding="utf-8-sig")
        # 写入表头
        self.buffer.append("tick,timestamp,series,stale,payload\n")

    def stop(self):
        if self.file is None:
            return
        self.flush(flush_to_disk=True)
        self.file.close()

    def on_batch(self, batch: Batch):
        for event in batch:
            payload = json.dumps(dict(event.payload), default=str).replace('"', '""')
            line = f'{batch.tick},{event.timestamp},{event.series_name},{int(event.stale)},"{payload}"\n'
            self.buffer.append(line)
        # 如果缓冲区满了，写入文件
        if len(self.buffer) >= self.buffer_size:
            self.flush()

    def flush(self, flush_to_disk: bool = False):
        # 强制写入缓冲区到文件
        if not self.buffer:
            return
        if not self.file or self.file.closed:
            return
        self.file.writelines(self.buffer)
        if flush_to_disk:
            self.file.flush()
        self.buffer.clear()
