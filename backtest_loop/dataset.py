from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional

import pandas as pd
from pyarrow import parquet as pq

from backtest_loop.normalise import TimestampKey
from backtest_loop.timeseries import TimeSeries


class Dataset(ABC):
    """
    分块数据源抽象基类
    __iter__方法需要被子类实现
    每次迭代返回一块记录 (list[dict]), 块内和块间都按时间排序
    作为可扩展序列的 request_more_data 后端, 模拟分页拉取
    """

    def __init__(
        self,
        chunksize: int = 10**5,
        tag_dict: dict = None,  # 会覆盖dataframe中的同名列
        transform: Callable[[pd.DataFrame], pd.DataFrame] = None,
    ):
        if chunksize <= 0:
            raise ValueError("chunksize must be > 0")
        self.chunksize = chunksize
        self.tag_dict = tag_dict
        self.transform = transform

    @abstractmethod
    def iter_frames(self) -> Iterator[pd.DataFrame]:
        pass

    def __iter__(self) -> Iterator[list]:
        for df in self.iter_frames():
            if self.tag_dict is not None:
                for k, v in self.tag_dict.items():
                    df[k] = v
            if self.transform is not None:
                df = self.transform(df)
            yield df.to_dict("records")

    def to_series(self, name: str, timestamp_key: TimestampKey = "timestamp") -> TimeSeries:
        return TimeSeries.from_source(name, self, timestamp_key)


class DataFrameSource(Dataset):
    """内存中的 DataFrame 按 chunksize 切块"""

    def __init__(self, df: pd.DataFrame, **kwargs):
        super().__init__(**kwargs)
        self.df = df

    def iter_frames(self):
        for start in range(0, len(self.df), self.chunksize):
            yield self.df.iloc[start:start + self.chunksize].copy()


class ParquetSource(Dataset):
    """
    parquet格式数据源
    要求无索引，自带类型，包含时间列
    分批读取
    """

    def __init__(self, path: str, columns: Optional[list] = None, **kwargs):
        super().__init__(**kwargs)
        self.path = path
        self.columns = columns

    def iter_frames(self):
        pq_file = pq.ParquetFile(self.path)
        for batch in pq_file.iter_batches(batch_size=self.chunksize, columns=self.columns):
            yield batch.to_pandas()


class CsvSource(Dataset):
    """
    CSV格式数据源
    """

    def __init__(self, path: str, compression: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.path = path
        self.compression = compression

    def iter_frames(self):
        yield from pd.read_csv(self.path, chunksize=self.chunksize, compression=self.compression)
