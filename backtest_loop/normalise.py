"""
时间戳归一化
统一把各种时间表示转换为毫秒级 epoch 整数:
int / float / numpy 数值, ISO 字符串, datetime / date, pandas.Timestamp, numpy.datetime64
无时区的时间按 UTC 处理
"""
import math
from datetime import date, datetime
from typing import Any, Callable, Mapping, Union

import numpy as np
import pandas as pd

TimestampKey = Union[str, Callable[[Mapping], Any]]

NS_PER_MS = 1_000_000
_WALL_CLOCK_WORDS = {"now", "today"}


def to_timestamp(value: Any) -> int:
    """转换为毫秒时间戳, 无法解析时抛出 ValueError"""
    # bool 是 int 的子类, 需要先排除
    if isinstance(value, (bool, np.bool_)):
        raise ValueError(f"boolean is not a timestamp: {value!r}")
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if not math.isfinite(value):
            raise ValueError(f"non-finite timestamp: {value!r}")
        # 非整数毫秒四舍五入
        return int(round(float(value)))
    if isinstance(value, str):
        if not value.strip():
            raise ValueError("empty timestamp string")
        # pandas 会把这两个词解析成当前墙钟时间, 回放结果将不可复现
        if value.strip().lower() in _WALL_CLOCK_WORDS:
            raise ValueError(f"relative timestamp string is not allowed: {value!r}")
        return _from_datetime_like(value)
    if isinstance(value, (datetime, date, pd.Timestamp, np.datetime64)):
        return _from_datetime_like(value)
    raise ValueError(f"unsupported timestamp type: {type(value).__name__}")


def _from_datetime_like(value: Any) -> int:
    try:
        ts = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"unparseable timestamp: {value!r}") from e
    if ts is pd.NaT:
        raise ValueError(f"unparseable timestamp: {value!r}")
    # naive Timestamp 的 value 即视为 UTC 纳秒
    return ts.value // NS_PER_MS


def is_valid_timestamp(value: Any) -> bool:
    try:
        to_timestamp(value)
    except ValueError:
        return False
    return True


def extract_timestamp(record: Mapping, key: TimestampKey) -> int:
    """
    从记录中提取时间戳
    key 为字段名或 record -> value 的函数
    """
    if callable(key):
        raw = key(record)
    else:
        try:
            raw = record[key]
        except (KeyError, TypeError, IndexError) as e:
            raise ValueError(f"missing timestamp field {key!r}") from e
    return to_timestamp(raw)
