from typing import Optional

from backtest_loop.errors import ClockRegressionError


class SimulationClock:
    """
    仿真时钟
    step_size 不为 None 时为步进模式: 每个 tick 固定前进 step_size
    step_size 为 None 时为事件驱动模式: 时间直接跳到下一个事件的时间戳
    模式在构造后不可修改, current_time 只增不减
    """

    def __init__(self, step_size: Optional[int] = None):
        if step_size is not None:
            if isinstance(step_size, bool) or not isinstance(step_size, int) or step_size <= 0:
                raise ValueError(f"step_size must be a positive int, got {step_size!r}")
        self._step_size = step_size
        self.current_time: Optional[int] = None

    @property
    def step_size(self) -> Optional[int]:
        return self._step_size

    @property
    def is_stepped(self) -> bool:
        return self._step_size is not None

    def initialise(self, start_time: int):
        """步进模式从 start_time - step_size 起步, 第一次 step 正好落在 start_time"""
        if self.is_stepped:
            self.current_time = start_time - self._step_size
        else:
            self.current_time = start_time

    def step(self) -> int:
        assert self.is_stepped, "step() is only valid in stepped mode"
        self.current_time += self._step_size
        return self.current_time

    def jump_to(self, timestamp: int) -> int:
        assert not self.is_stepped, "jump_to() is only valid in event-driven mode"
        if self.current_time is not None and timestamp < self.current_time:
            raise ClockRegressionError(self.current_time, timestamp)
        self.current_time = timestamp
        return self.current_time

    def clear(self):
        self.current_time = None

    def __repr__(self) -> str:
        mode = f"stepped({self._step_size})" if self.is_stepped else "event-driven"
        return f"SimulationClock({mode}, current_time={self.current_time})"
