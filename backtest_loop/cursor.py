from typing import Union

from loguru import logger

from backtest_loop.event import Event
from backtest_loop.timeseries import TimeSeries


class _Exhausted:
    __slots__ = ()

    def __repr__(self) -> str:
        return "EXHAUSTED"

    def __bool__(self) -> bool:
        return False


EXHAUSTED = _Exhausted()


class StreamCursor:
    """
    单条序列的惰性游标
    持有读取位置 consumed_count 与一条前瞻事件 pending
    pending 在第一次 peek 时才计算, 之后每次 advance 丢弃并重算

    consumed_count 统计已经从 records 中取出的条数 (包含当前 pending),
    因此 records[:consumed_count] 可以被安全压缩掉
    """

    def __init__(self, series: TimeSeries):
        self.series = series
        self.consumed_count = 0
        self.emitted_count = 0
        self.dropped_count = 0
        self._pending: Union[Event, _Exhausted, None] = None

    @property
    def name(self) -> str:
        return self.series.name

    @property
    def pending(self) -> Union[Event, _Exhausted]:
        return self.peek()

    def peek(self) -> Union[Event, _Exhausted]:
        if self._pending is None:
            self._pending = self._next_event()
        return self._pending

    @property
    def exhausted(self) -> bool:
        return self.peek() is EXHAUSTED

    @property
    def completed(self) -> bool:
        return self.exhausted and not self.series.extendable

    def advance(self) -> Union[Event, _Exhausted]:
        """丢弃当前 pending, 计算下一条"""
        self._pending = self._next_event()
        return self._pending

    def take(self) -> Event:
        """取出 pending 作为已发出事件并前进"""
        event = self.peek()
        assert event is not EXHAUSTED
        self.advance()
        # 前进成功后才计数, 追加数据校验失败时 pending 保持不变
        self.emitted_count += 1
        return event

    def drop(self) -> Event:
        """滞后丢弃: 不发出, 只前进"""
        event = self.peek()
        assert event is not EXHAUSTED
        self.advance()
        self.dropped_count += 1
        return event

    def _next_event(self) -> Union[Event, _Exhausted]:
        records = self.series.records
        if self.consumed_count >= len(records) and not self._request_more():
            return EXHAUSTED
        record = records[self.consumed_count]
        self.consumed_count += 1
        return Event(self.series.timestamp_of(record), self.series.name, record)

    def _request_more(self) -> bool:
        """
        内存中的数据读完后向外部拉取下一页
        拉取结果为空视为数据源耗尽, 序列被标记为不可扩展
        """
        series = self.series
        if not series.extendable:
            return False
        if series.request_more_data is None:
            series.extendable = False
            return False
        more = series.request_more_data()
        more = list(more) if more is not None else []
        if not more:
            logger.debug(f"[StreamCursor] {series.name} drained")
            series.extendable = False
            return False
        added = series.extend(more)
        logger.debug(f"[StreamCursor] {series.name} extended by {added} records")
        return True

    def compact(self) -> int:
        """丢弃已消费前缀, 不改变 pending, 返回丢弃条数"""
        n = self.consumed_count
        if n:
            del self.series.records[:n]
            self.consumed_count = 0
        return n

    def reset(self):
        """回到位置 0, 用于序列数据被整体替换之后"""
        self.consumed_count = 0
        self.emitted_count = 0
        self.dropped_count = 0
        self._pending = None

    def __repr__(self) -> str:
        return f"StreamCursor({self.name!r}, consumed={self.consumed_count}, pending={self._pending!r})"
