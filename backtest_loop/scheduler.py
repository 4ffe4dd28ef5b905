"""
多序列合并调度器
收取多条按时间排序的序列, 每条序列建立一个游标
每次 advance 推进仿真时钟一个 tick, 把到期的事件打包成一个批次发布到输出通道
步进模式: 时钟按固定步长前进, 落后于时钟的事件按 lag_policy 丢弃或补发
事件驱动模式: 时钟跳到所有游标中最早的待发事件, 同一时间戳的事件一起发出
可选确认闸门: 非空批次发出后, 直到消费方 acknowledge 才计算下一个 tick
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Union

import pandas as pd
from loguru import logger

from backtest_loop.clock import SimulationClock
from backtest_loop.cursor import EXHAUSTED, StreamCursor
from backtest_loop.errors import DuplicateStartError, InvalidSeriesError, NotInitializedError
from backtest_loop.event import Batch, Event, Status, StatusEvent
from backtest_loop.event_engine import Component, EventEngine
from backtest_loop.gate import AcknowledgementGate
from backtest_loop.normalise import to_timestamp
from backtest_loop.timeseries import TimeSeries

DEFAULT_COMPACTION_THRESHOLD = 20_000

_UPDATABLE_FIELDS = {"records", "timestamp_key", "extendable", "request_more_data", "page_token"}


class LagPolicy(str, Enum):
    # 落后于时钟的事件直接丢弃
    DROP = "drop"
    # 落后于时钟的事件以 stale=True 补发
    EMIT = "emit"


@dataclass
class SchedulerConfig:
    """
    step_size: 步进模式步长 (毫秒), None 为事件驱动模式
    compaction_threshold: 每隔多少个 tick 压缩一次已消费数据, None 关闭压缩
    acknowledge: 是否启用确认闸门
    lag_policy: 步进模式下滞后事件的处理策略
    """
    step_size: Optional[int] = None
    compaction_threshold: Optional[int] = DEFAULT_COMPACTION_THRESHOLD
    acknowledge: bool = False
    lag_policy: LagPolicy = LagPolicy.DROP

    def __post_init__(self):
        self.lag_policy = LagPolicy(self.lag_policy)
        threshold = self.compaction_threshold
        if threshold is not None:
            if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold <= 0:
                raise ValueError(f"compaction_threshold must be a positive int or None, got {threshold!r}")


@dataclass(frozen=True)
class TickResult:
    batch: Batch
    status: Status
    suspended: bool = False

    @property
    def events(self) -> tuple:
        return self.batch.events

    @property
    def timestamp(self) -> Optional[int]:
        return self.batch.timestamp


class MergeScheduler:

    def __init__(self, config: Optional[SchedulerConfig] = None, **kwargs):
        if config is None:
            config = SchedulerConfig(**kwargs)
        elif kwargs:
            config = replace(config, **kwargs)
        self.config = config

        self.engine = EventEngine()
        self.components: list[Component] = []

        self.clock = SimulationClock(config.step_size)
        self.gate: Optional[AcknowledgementGate] = AcknowledgementGate() if config.acknowledge else None

        self.series: dict[str, TimeSeries] = {}
        self.cursors: dict[str, StreamCursor] = {}

        self._data_start: Optional[int] = None
        self._data_end: Optional[int] = None
        self._start_override: Optional[int] = None
        self._end_override: Optional[int] = None

        self.iteration = 0
        self.tick_count = 0
        self.compaction_count = 0
        self.is_initialised = False
        self.is_active = False
        self.status: Optional[Status] = None
        self.failed = False

    # ------------------------------------------------------------------
    # 数据注入
    # ------------------------------------------------------------------
    def add_series(self, series: Optional[TimeSeries] = None, **fields) -> "MergeScheduler":
        """
        注册一条序列, 校验失败抛出 InvalidSeriesError
        start() 之后序列集合冻结, 再次调用只记录警告
        """
        if series is None:
            series = TimeSeries(**fields)
        if self.is_initialised:
            logger.warning(f"[MergeScheduler] series set is frozen after start, ignoring {series.name!r}")
            return self
        series.validate()
        if series.name in self.series:
            logger.warning(f"[MergeScheduler] replacing series {series.name!r}")
        self.series[series.name] = series
        self._refresh_bounds()
        return self

    def set_data(self, dataset: Iterable[Union[TimeSeries, dict]]) -> "MergeScheduler":
        for item in dataset:
            if isinstance(item, TimeSeries):
                self.add_series(item)
            else:
                self.add_series(**item)
        return self

    def get_series(self, name: str) -> Optional[TimeSeries]:
        return self.series.get(name)

    def update_series(self, name: str, **fields) -> bool:
        """
        修改已注册序列的属性
        替换 records / timestamp_key 会重新校验并把该序列的游标复位到起点
        """
        series = self.series.get(name)
        if series is None:
            logger.warning(f"[MergeScheduler] unknown series {name!r}")
            return False
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields {sorted(unknown)} of series {name!r}")

        if "records" in fields or "timestamp_key" in fields:
            candidate = TimeSeries(
                name,
                fields.get("records", series.records),
                fields.get("timestamp_key", series.timestamp_key),
            )
            candidate.validate()
            series.records = candidate.records
            series.timestamp_key = candidate.timestamp_key
            series.first_timestamp = candidate.first_timestamp
            series.last_timestamp = candidate.last_timestamp
            cursor = self.cursors.get(name)
            if cursor is not None:
                cursor.reset()
            self._refresh_bounds()

        for key in ("extendable", "request_more_data", "page_token"):
            if key in fields:
                setattr(series, key, fields[key])
        return True

    def _refresh_bounds(self):
        firsts = [s.first_timestamp for s in self.series.values()]
        lasts = [s.last_timestamp for s in self.series.values()]
        self._data_start = min(firsts) if firsts else None
        self._data_end = max(lasts) if lasts else None

    def set_start_time(self, timestamp: Any):
        """显式指定回放起点, 早于起点的事件在 start() 时被丢弃"""
        if self.is_initialised:
            logger.warning("[MergeScheduler] start time is frozen after start")
            return
        self._start_override = to_timestamp(timestamp)

    def set_end_time(self, timestamp: Any):
        """显式指定回放终点, 时钟越过终点即结束回放"""
        if self.is_initialised:
            logger.warning("[MergeScheduler] end time is frozen after start")
            return
        self._end_override = to_timestamp(timestamp)

    @property
    def start_time(self) -> Optional[int]:
        return self._start_override if self._start_override is not None else self._data_start

    @property
    def end_time(self) -> Optional[int]:
        return self._end_override if self._end_override is not None else self._data_end

    @property
    def current_time(self) -> Optional[int]:
        return self.clock.current_time

    # ------------------------------------------------------------------
    # 输出通道
    # ------------------------------------------------------------------
    def subscribe(self, listener: Callable[[Batch], None]):
        self.engine.register(Batch, listener)

    def subscribe_status(self, listener: Callable[[StatusEvent], None]):
        self.engine.register(StatusEvent, listener)

    def add_component(self, component: Component):
        self.components.append(component)

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------
    def start(self) -> "MergeScheduler":
        if self.is_initialised:
            logger.warning(f"[MergeScheduler] {DuplicateStartError.__name__}: backtest has already started")
            return self
        if not self.series:
            logger.warning("[MergeScheduler] no series registered, nothing to start")
            return self

        # 注册之后序列可能被外部修改, 启动前重新校验
        for series in self.series.values():
            series.validate()
        self._refresh_bounds()

        self.cursors = {name: StreamCursor(series) for name, series in self.series.items()}
        self.clock.initialise(self.start_time)
        if self.gate is not None:
            self.gate.clear()

        if self._start_override is not None:
            for cursor in self.cursors.values():
                self._drop_before(cursor, self._start_override)

        self.iteration = 0
        self.tick_count = 0
        self.is_initialised = True
        self.is_active = True
        self.status = Status.OPEN
        logger.info(
            f"[MergeScheduler] open: {len(self.cursors)} series, "
            f"[{self.start_time}, {self.end_time}], clock={self.clock}"
        )
        self.engine.put(StatusEvent(Status.OPEN, self.clock.current_time))
        return self

    def terminate(self):
        """立即拆除全部游标与时钟状态, 只能在两个 tick 之间调用"""
        was_open = self.status is Status.OPEN
        timestamp = self.clock.current_time
        self._clear_state()
        if was_open:
            logger.info("[MergeScheduler] terminated")
            self.engine.put(StatusEvent(Status.CLOSED, timestamp))

    reset = terminate

    def _clear_state(self):
        self.series.clear()
        self.cursors.clear()
        self.clock.clear()
        if self.gate is not None:
            self.gate.clear()
        self.engine.clear()
        self._data_start = None
        self._data_end = None
        self._start_override = None
        self._end_override = None
        self.iteration = 0
        self.tick_count = 0
        self.is_initialised = False
        self.is_active = False
        self.status = None
        self.failed = False

    def _close(self):
        self.status = Status.CLOSED
        self.is_active = False
        logger.info(f"[MergeScheduler] closed after {self.tick_count} ticks at {self.clock.current_time}")
        self.engine.put(StatusEvent(Status.CLOSED, self.clock.current_time))

    # ------------------------------------------------------------------
    # 推进
    # ------------------------------------------------------------------
    @property
    def is_ready(self) -> bool:
        return self.gate is None or self.gate.is_ready

    def acknowledge(self) -> bool:
        if self.gate is None:
            logger.warning("[MergeScheduler] acknowledgement gate is disabled")
            return False
        return self.gate.acknowledge()

    def has_more_data(self) -> bool:
        if not self.is_initialised:
            return bool(self.series)
        return any(not cursor.completed for cursor in self.cursors.values())

    def advance(self) -> Optional[TickResult]:
        """
        推进一个 tick
        未 start: 返回 None
        已关闭: 返回空批次, 无副作用
        闸门等待确认: 返回 suspended=True 的空批次, 不推进
        """
        if not self.is_initialised:
            logger.warning(f"[MergeScheduler] {NotInitializedError.__name__}: advance() called before start()")
            return None
        if self.status is Status.CLOSED:
            return TickResult(self._empty_batch(), Status.CLOSED)
        if not self.is_ready:
            return TickResult(self._empty_batch(), Status.OPEN, suspended=True)

        events: list[Event] = []
        try:
            within_bounds = self._process_next_time_step(events)
        except InvalidSeriesError:
            # 追加数据校验失败: 本 tick 已取出的事件不会发出, 计数回退, 回放终止
            for event in events:
                self.cursors[event.series_name].emitted_count -= 1
            self.failed = True
            logger.error(f"[MergeScheduler] tick {self.tick_count + 1} aborted, {len(events)} collected events discarded")
            self._close()
            raise
        if not within_bounds:
            # 时钟越过显式终点
            self._close()
            return TickResult(self._empty_batch(), Status.CLOSED)

        self.tick_count += 1
        batch = Batch(self.tick_count, self.clock.current_time, tuple(events))

        self.iteration += 1
        threshold = self.config.compaction_threshold
        if threshold is not None and self.iteration >= threshold:
            self.compact()

        if batch:
            if self.gate is not None:
                self.gate.engage(batch)
            self.engine.put(batch)

        if not self.has_more_data():
            self._close()
        return TickResult(batch, self.status)

    def _process_next_time_step(self, events: list) -> bool:
        """把本 tick 到期的事件收集进 events, 时钟越过显式终点时返回 False"""
        active = [cursor for cursor in self.cursors.values() if not cursor.completed]
        end = self._end_override

        if self.clock.is_stepped:
            now = self.clock.step()
            if end is not None and now > end:
                return False
            for cursor in active:
                self._collect_lagging(cursor, now, events)
                self._collect_at(cursor, now, events)
            return True

        # 事件驱动: 先处理落后于时钟的事件 (序列被替换后可能出现), 再找全局最小时间戳
        now = self.clock.current_time
        for cursor in active:
            self._collect_lagging(cursor, now, events)
        pending = [cursor for cursor in active if cursor.peek() is not EXHAUSTED]
        if not pending:
            return True
        target = min(cursor.peek().timestamp for cursor in pending)
        if end is not None and target > end:
            return False
        self.clock.jump_to(target)
        for cursor in pending:
            self._collect_at(cursor, target, events)
        return True

    def _collect_at(self, cursor: StreamCursor, timestamp: int, events: list):
        # 同一序列内相同时间戳的记录一起发出
        while True:
            event = cursor.peek()
            if event is EXHAUSTED or event.timestamp != timestamp:
                return
            events.append(cursor.take())

    def _collect_lagging(self, cursor: StreamCursor, now: int, events: list):
        emit_stale = self.config.lag_policy is LagPolicy.EMIT
        while True:
            event = cursor.peek()
            if event is EXHAUSTED or event.timestamp >= now:
                return
            if emit_stale:
                events.append(replace(cursor.take(), stale=True))
            else:
                cursor.drop()

    def _drop_before(self, cursor: StreamCursor, timestamp: int):
        while True:
            event = cursor.peek()
            if event is EXHAUSTED or event.timestamp >= timestamp:
                return
            cursor.drop()

    def _empty_batch(self) -> Batch:
        return Batch(self.tick_count, self.clock.current_time, ())

    def compact(self) -> int:
        """丢弃所有游标已消费的前缀数据, 不影响时钟和下一个待发事件"""
        removed = sum(cursor.compact() for cursor in self.cursors.values())
        self.iteration = 0
        self.compaction_count += 1
        logger.debug(f"[MergeScheduler] compaction #{self.compaction_count} removed {removed} records")
        return removed

    # ------------------------------------------------------------------
    # 驱动
    # ------------------------------------------------------------------
    def run(self):
        """
        一次性跑完整个回放
        启用闸门时必须有组件或监听器在回调中 acknowledge, 否则抛出 RuntimeError
        """
        with self:
            if not self.is_initialised:
                self.start()
            while True:
                result = self.advance()
                if result is None or result.status is Status.CLOSED:
                    break
                if result.suspended:
                    raise RuntimeError("[MergeScheduler] batch was not acknowledged by any consumer")

    def summary(self) -> pd.DataFrame:
        """各序列的发出 / 丢弃统计"""
        rows = [
            {
                "series": name,
                "emitted": cursor.emitted_count,
                "dropped": cursor.dropped_count,
                "buffered": len(cursor.series.records) - cursor.consumed_count,
                "completed": cursor.completed,
            }
            for name, cursor in self.cursors.items()
        ]
        return pd.DataFrame(rows, columns=["series", "emitted", "dropped", "buffered", "completed"]).set_index("series")

    def __enter__(self):
        for component in self.components:
            component.start(self.engine)
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        for component in self.components:
            component.stop()
        return False
