from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional


class Status(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Event:
    """
    单条回放事件
    timestamp: 毫秒时间戳
    series_name: 来源序列名
    payload: 原始记录的只读视图
    stale: 步进模式下滞后事件在 emit 策略中被补发时为 True
    """
    timestamp: int
    series_name: str
    payload: Mapping[str, Any]
    stale: bool = False

    def __post_init__(self):
        if not isinstance(self.payload, MappingProxyType):
            object.__setattr__(self, "payload", MappingProxyType(self.payload))

    def __lt__(self, other: "Event") -> bool:
        return self.timestamp < other.timestamp


@dataclass(frozen=True)
class Batch:
    """一次 tick 发出的事件集合, 批内事件无先后之分"""
    tick: int
    timestamp: int
    events: tuple = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def __bool__(self) -> bool:
        return bool(self.events)

    def by_series(self, name: str) -> list:
        return [e for e in self.events if e.series_name == name]


@dataclass(frozen=True)
class StatusEvent:
    status: Status
    timestamp: Optional[int] = None
