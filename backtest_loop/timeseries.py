from collections.abc import Mapping, Sequence
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from backtest_loop.errors import InvalidSeriesError
from backtest_loop.normalise import TimestampKey, extract_timestamp


def validate_records(
    name: str,
    records: Any,
    timestamp_key: TimestampKey,
    not_before: Optional[int] = None,
) -> tuple[int, int]:
    """
    校验一段记录
    要求: 非空列表, 每条记录可提取合法时间戳, 时间戳单调不减
    not_before 用于追加数据时与已有尾部衔接
    返回 (首时间戳, 尾时间戳)
    """
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(records, Sequence):
        raise InvalidSeriesError(name, f"records must be a list, got {type(records).__name__}")
    if len(records) == 0:
        raise InvalidSeriesError(name, "records are empty")
    last = not_before
    first = None
    for i, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InvalidSeriesError(name, f"record #{i} is not a mapping")
        try:
            ts = extract_timestamp(record, timestamp_key)
        except ValueError as e:
            raise InvalidSeriesError(name, f"record #{i}: {e}") from e
        if last is not None and ts < last:
            raise InvalidSeriesError(name, f"record #{i}: timestamp {ts} < previous {last}")
        if first is None:
            first = ts
        last = ts
    return first, last


class TimeSeries:
    """
    单条命名时间序列
    records 只由 cursor 读取, 由调度器的压缩步骤裁剪已消费前缀
    extendable 为 True 时, 数据读完后通过 request_more_data 拉取下一页
    page_token 为调用方自己维护的分页状态, 核心不解释
    """

    def __init__(
        self,
        name: str,
        records: Sequence[Mapping],
        timestamp_key: TimestampKey = "timestamp",
        extendable: bool = False,
        request_more_data: Optional[Callable[[], Optional[Iterable[Mapping]]]] = None,
        page_token: Any = None,
    ):
        self.name = name
        self.records = list(records) if isinstance(records, (list, tuple)) else records
        self.timestamp_key = timestamp_key
        self.extendable = extendable
        self.request_more_data = request_more_data
        self.page_token = page_token
        self.first_timestamp: Optional[int] = None
        self.last_timestamp: Optional[int] = None

    def validate(self) -> tuple[int, int]:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidSeriesError(self.name, "name must be a non-empty string")
        if not (isinstance(self.timestamp_key, str) or callable(self.timestamp_key)):
            raise InvalidSeriesError(self.name, "timestamp_key must be a field name or a callable")
        self.first_timestamp, self.last_timestamp = validate_records(
            self.name, self.records, self.timestamp_key
        )
        return self.first_timestamp, self.last_timestamp

    def extend(self, records: Sequence[Mapping]) -> int:
        """追加一页数据, 新数据不能早于当前尾部, 返回追加条数"""
        records = list(records)
        _, last = validate_records(self.name, records, self.timestamp_key, not_before=self.last_timestamp)
        self.records.extend(records)
        self.last_timestamp = last
        return len(records)

    def timestamp_of(self, record: Mapping) -> int:
        return extract_timestamp(record, self.timestamp_key)

    def __len__(self) -> int:
        return len(self.records)

    def __repr__(self) -> str:
        return (
            f"TimeSeries(name={self.name!r}, records={len(self.records)}, "
            f"extendable={self.extendable})"
        )

    @classmethod
    def from_dataframe(cls, name: str, df: pd.DataFrame, timestamp_key: TimestampKey = "timestamp", **kwargs):
        return cls(name, df.to_dict("records"), timestamp_key, **kwargs)

    @classmethod
    def from_source(cls, name: str, source: Iterable[list], timestamp_key: TimestampKey = "timestamp"):
        """
        由分块数据源构建可扩展序列
        首个非空块作为初始数据, 之后每次 request_more_data 拉取下一块
        """
        chunks = iter(source)
        first = []
        for chunk in chunks:
            if len(chunk):
                first = chunk
                break

        def request_more_data():
            return next(chunks, [])

        return cls(
            name,
            first,
            timestamp_key,
            extendable=True,
            request_more_data=request_more_data,
        )
