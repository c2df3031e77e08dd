"""事件通道：状态、缓冲区、记录更新三类订阅"""

import asyncio
from threading import Lock
from typing import Any, Callable, List, Optional, Tuple

from .trackers import StreamState

Listener = Callable[[Any], None]


class EventChannel:
    """简单的发布/订阅通道，监听器异常不会中断发布"""

    def __init__(self, name: str):
        self.name = name
        self._listeners: List[Listener] = []
        self._lock = Lock()
        self.published = 0
        self.listener_errors = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """订阅，返回取消订阅函数"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Any):
        with self._lock:
            listeners = list(self._listeners)
            self.published += 1

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                self.listener_errors += 1
                print(f"⚠️ 事件监听器异常 [{self.name}]: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


class EventStream:
    """
    将处理器的三个通道汇总为异步迭代器

    创建时立即订阅，因此应在 start() 之前打开，避免错过同步发出的事件。
    迭代产出 (kind, event)，kind 为 "state" / "buffer" / "update"，
    收到终止阶段的状态事件后结束并自动取消订阅。
    """

    def __init__(self, state_channel: EventChannel, buffer_channel: EventChannel,
                 update_channel: EventChannel, include_buffer: bool = True):
        self._queue: "asyncio.Queue[Tuple[str, Any]]" = asyncio.Queue()
        self._done = False
        self._unsubscribers = [
            state_channel.subscribe(lambda e: self._queue.put_nowait(("state", e))),
            update_channel.subscribe(lambda e: self._queue.put_nowait(("update", e))),
        ]
        if include_buffer:
            self._unsubscribers.append(
                buffer_channel.subscribe(lambda e: self._queue.put_nowait(("buffer", e)))
            )

    def __aiter__(self):
        return self

    async def __anext__(self) -> Tuple[str, Any]:
        if self._done:
            raise StopAsyncIteration

        kind, event = await self._queue.get()
        if kind == "state" and isinstance(event, StreamState) and event.stage.is_terminal:
            self.close()
        return kind, event

    async def next_event(self, timeout: Optional[float] = None) -> Tuple[str, Any]:
        return await asyncio.wait_for(self.__anext__(), timeout)

    def close(self):
        self._done = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    @property
    def closed(self) -> bool:
        return self._done

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()
