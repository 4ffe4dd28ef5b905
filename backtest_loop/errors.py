class BacktestLoopError(Exception):
    """backtest_loop 所有异常的基类"""


class InvalidSeriesError(BacktestLoopError, ValueError):
    """
    时间序列非法
    空数据 / 非列表 / 时间戳无法解析 / 时间戳倒序
    在 add_series 阶段同步抛出, 该序列不会进入回放
    """

    def __init__(self, name, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid timeseries {name!r}: {reason}")


class NotInitializedError(BacktestLoopError, RuntimeError):
    """
    警告类别, 调度器不会抛出
    start() 之前调用 advance() 时, 以类名为前缀记录 warning 日志并返回 None
    """


class DuplicateStartError(BacktestLoopError, RuntimeError):
    """
    警告类别, 调度器不会抛出
    重复调用 start() 时, 以类名为前缀记录 warning 日志, 第二次调用被忽略
    """


class ClockRegressionError(BacktestLoopError, RuntimeError):
    """仿真时钟被要求回退"""

    def __init__(self, current_time: int, target_time: int):
        self.current_time = current_time
        self.target_time = target_time
        super().__init__(f"clock regression: {target_time} < {current_time}")
