from abc import ABC, abstractmethod
from collections import deque
from itertools import chain
from typing import Any, Callable, Type

Listener = Callable[[Any], None]


class EventEngine:
    """
    输出通道
    负责接受消息 (Batch / StatusEvent) 并推送给注册的监听器
    监听器通过 register 方法注册, 消息通过 put 方法推送
    监听器只严格监听注册的消息类型, 不含其父类或子类
    监听器回调中再次 put 的消息进入队列, 按顺序派发, 不会嵌套派发
    """

    def __init__(self):
        self.senior_global_listeners: list[Listener] = []
        self.junior_global_listeners: list[Listener] = []
        self.listener_dict: dict[Type, list[Listener]] = {}
        self._queue: deque = deque()
        self._dispatching: bool = False

    def register(self, event_type: Type, listener: Listener):
        assert isinstance(event_type, type)
        assert not self._dispatching
        lst = self.listener_dict.setdefault(event_type, [])
        # 重复注册属于错误
        assert listener not in lst
        lst.append(listener)

    def unregister(self, event_type: Type, listener: Listener):
        assert not self._dispatching
        lst = self.listener_dict.get(event_type)
        if lst and listener in lst:
            lst.remove(listener)

    def global_register(self, listener: Listener, is_senior: bool = False):
        """注册全局监听器，监听所有消息类型"""
        assert not self._dispatching
        lst = self.senior_global_listeners if is_senior else self.junior_global_listeners
        assert listener not in lst
        lst.append(listener)

    def put(self, event: Any):
        self._queue.append(event)
        if not self._dispatching:
            self._drain()

    def _drain(self):
        self._dispatching = True
        event_queue = self._queue
        listener_dict = self.listener_dict
        try:
            while event_queue:
                event = event_queue.popleft()
                # 已经禁止派发期修改监听器集合，因此不拷贝
                lst_local = listener_dict.get(type(event)) or ()
                for listener in chain(self.senior_global_listeners, lst_local, self.junior_global_listeners):
                    listener(event)
        finally:
            self._dispatching = False

    def clear(self):
        self._queue.clear()


class Component(ABC):
    """
    组件抽象基类

    添加组件的生命周期管理接口
    init阶段只传递配置参数
    组件需要在start方法中绑定事件引擎
    组件需要在stop方法中释放资源
    """

    @abstractmethod
    def start(self, engine: EventEngine):
        pass

    @abstractmethod
    def stop(self):
        pass
