"""
更新发送器

结构性更新与完成事件立即发送；内容更新在流式阶段按节流间隔合并，
同一时刻最多只有一个待发送的内容更新，新的更新会替换旧的。
"""

import asyncio
import time
from enum import Enum
from threading import Lock
from typing import Dict, Any, Callable, Optional

from cardstream.core.constants import DEFAULT_UPDATE_THROTTLE

from .models import RecordUpdate


class EmitMode(Enum):
    IMMEDIATE = "immediate"
    BUFFERED = "buffered"


class UpdateEmitter:
    """节流更新发送器"""

    def __init__(
        self,
        publish: Callable[[RecordUpdate], None],
        throttle_interval: float = DEFAULT_UPDATE_THROTTLE,
        is_streaming: Optional[Callable[[], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._publish = publish
        self.throttle_interval = throttle_interval
        self._is_streaming = is_streaming or (lambda: True)
        self._clock = clock
        self._lock = Lock()

        self._pending: Optional[RecordUpdate] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._last_emit: Optional[float] = None

        self._stats = {
            "emitted": 0,
            "buffered": 0,
            "superseded": 0,
        }

    @property
    def pending(self) -> Optional[RecordUpdate]:
        return self._pending

    def _should_emit_now(self, update: RecordUpdate) -> bool:
        if not self._is_streaming():
            return True
        if update.is_structural or update.is_completion:
            return True
        if self._last_emit is None:
            return True
        return self._clock() - self._last_emit >= self.throttle_interval

    def emit(self, update: RecordUpdate) -> EmitMode:
        """发送或缓冲一个更新"""
        if self._should_emit_now(update):
            self._drop_pending()
            self._deliver(update)
            return EmitMode.IMMEDIATE

        with self._lock:
            if self._pending is not None:
                self._stats["superseded"] += 1
            self._pending = update
            self._stats["buffered"] += 1

        if self._timer is None:
            elapsed = self._clock() - (self._last_emit or 0.0)
            delay = max(0.0, self.throttle_interval - elapsed)
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # 没有事件循环时无法定时，直接发送
                self.flush()
                return EmitMode.IMMEDIATE
            self._timer = loop.call_later(delay, self._on_timer)

        return EmitMode.BUFFERED

    def _on_timer(self):
        self._timer = None
        self.flush()

    def _deliver(self, update: RecordUpdate):
        self._last_emit = self._clock()
        self._stats["emitted"] += 1
        self._publish(update)

    def _drop_pending(self):
        """立即发送会取代尚未发送的缓冲更新"""
        with self._lock:
            if self._pending is not None:
                self._pending = None
                self._stats["superseded"] += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def flush(self) -> Optional[RecordUpdate]:
        """发送待发送的更新（如果有）"""
        with self._lock:
            update = self._pending
            self._pending = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if update is not None:
            self._deliver(update)
        return update

    def cancel(self):
        """丢弃待发送的更新和定时器"""
        with self._lock:
            self._pending = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "pending": self._pending is not None,
        }
