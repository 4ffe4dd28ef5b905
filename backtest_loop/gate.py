from enum import Enum
from typing import Optional

from backtest_loop.event import Batch


class GateState(str, Enum):
    IDLE = "idle"
    AWAITING_ACK = "awaiting_ack"


class AcknowledgementGate:
    """
    单槽确认闸门
    非空批次发出后进入 AWAITING_ACK, 消费方 acknowledge 之后回到 IDLE
    调度器在 AWAITING_ACK 状态下不推进, 由驱动方轮询 is_ready
    同一时刻最多只有一个未确认批次
    """

    def __init__(self):
        self.state = GateState.IDLE
        self.outstanding: Optional[Batch] = None

    @property
    def is_ready(self) -> bool:
        return self.state is GateState.IDLE

    def engage(self, batch: Batch):
        assert self.state is GateState.IDLE, "previous batch not acknowledged"
        if not batch:
            return
        self.state = GateState.AWAITING_ACK
        self.outstanding = batch

    def acknowledge(self) -> bool:
        """没有待确认批次时为空操作, 返回 False"""
        if self.state is GateState.IDLE:
            return False
        self.state = GateState.IDLE
        self.outstanding = None
        return True

    def clear(self):
        self.state = GateState.IDLE
        self.outstanding = None
