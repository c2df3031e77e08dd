"""
流式处理器

对外的引擎入口：启动/停止流式会话、查询状态与记录，并通过三个事件通道
（状态、缓冲区、记录更新）推送变化。每个处理器同一时刻只有一个会话。
"""

import asyncio
from threading import Lock
from typing import Dict, Any, Optional

from cardstream.core.config import StreamingConfig

from .channels import EventChannel, EventStream
from .errors import StreamingError
from .models import Record, RecordUpdate
from .session import StreamSession
from .trackers import SectionCompletion, StreamStage, StreamState


class StreamProcessor:
    """渐进式记录流处理器"""

    def __init__(self, config: Optional[StreamingConfig] = None):
        """
        初始化处理器

        Args:
            config: 流式参数，默认使用内置默认值；无效配置抛出 ConfigError
        """
        self.config = (config or StreamingConfig()).validate()
        self.debug_mode = False
        self._lock = Lock()

        self.state_channel = EventChannel("state")
        self.buffer_channel = EventChannel("buffer")
        self.update_channel = EventChannel("update")

        self._state = StreamState()
        self._session: Optional[StreamSession] = None
        self.last_error: Optional[StreamingError] = None

        self._stats = {
            "sessions_started": 0,
            "sessions_completed": 0,
            "sessions_aborted": 0,
            "sessions_failed": 0,
            "updates_published": 0,
        }

    def enable_debug(self, enabled: bool = True):
        """启用调试模式"""
        self.debug_mode = enabled

    def _log_debug(self, message: str):
        """调试日志"""
        if self.debug_mode:
            print(f"[流处理] {message}")

    # ---------- 会话控制 ----------

    def start(self, payload: str, instant: bool = False) -> str:
        """
        开始新的流式会话，返回会话id

        会先静默取消上一个会话。流式模式需要在运行中的事件循环内调用；
        即时模式同步执行完毕后返回。没有运行中的事件循环时，流式模式抛出
        RuntimeError，且不改变当前会话与状态。
        """
        loop = None if instant else asyncio.get_running_loop()

        previous = self._session
        if previous is not None:
            previous.cancel()
            self._log_debug(f"取消上一个会话 {previous.session_id[:8]}")

        with self._lock:
            self._session = None
            self._state = StreamState()
            self.last_error = None

        session = StreamSession(
            payload,
            self.config,
            on_state=self._on_session_state,
            on_buffer=self._on_session_buffer,
            on_update=self._on_session_update,
            instant=instant,
            log=self._log_debug,
            loop=loop,
        )
        self._session = session
        self._stats["sessions_started"] += 1
        session.run()
        return session.session_id

    def stop(self) -> bool:
        """中止当前会话，没有进行中的会话时不做任何事"""
        session = self._session
        if session is None or session.stage.is_terminal:
            return False

        session.cancel()
        with self._lock:
            self._session = None
            self._state = StreamState(stage=StreamStage.ABORTED)
            state = self._state
        self._stats["sessions_aborted"] += 1
        self._log_debug(f"会话 {session.session_id[:8]} 已中止")
        self.state_channel.publish(state)
        return True

    async def wait(self, timeout: Optional[float] = None) -> StreamState:
        """等待当前会话结束"""
        session = self._session
        if session is not None:
            await asyncio.wait_for(session.finished.wait(), timeout)
        return self.get_state()

    def open_event_stream(self, include_buffer: bool = True) -> EventStream:
        """打开事件流，应在 start() 之前调用"""
        return EventStream(self.state_channel, self.buffer_channel, self.update_channel, include_buffer)

    # ---------- 会话回调 ----------

    def _on_session_state(self, session: StreamSession, **changes):
        if session is not self._session:
            return

        with self._lock:
            if "progress" in changes:
                # 进度单调不减
                changes["progress"] = max(self._state.progress, changes["progress"])
            self._state = self._state.evolve(**changes)
            state = self._state

        stage = changes.get("stage")
        if stage is StreamStage.COMPLETE:
            self._stats["sessions_completed"] += 1
        elif stage is StreamStage.ERROR:
            self._stats["sessions_failed"] += 1
            self.last_error = session.error

        self.state_channel.publish(state)

    def _on_session_buffer(self, session: StreamSession, buffer: str):
        if session is self._session:
            self.buffer_channel.publish(buffer)

    def _on_session_update(self, session: StreamSession, update: RecordUpdate):
        if session is not self._session:
            return
        self._stats["updates_published"] += 1
        self._log_debug(
            f"更新: {update.change_type.value}, 分区 {len(update.record.sections)}, "
            f"完成 {list(update.completed_section_indices or [])}"
        )
        self.update_channel.publish(update)

    # ---------- 查询 ----------

    def get_state(self) -> StreamState:
        with self._lock:
            return self._state

    @property
    def is_active(self) -> bool:
        return self.get_state().is_active

    @property
    def session_id(self) -> Optional[str]:
        session = self._session
        return session.session_id if session else None

    def get_record(self) -> Optional[Record]:
        """当前组装中的记录，没有会话或尚无内容时返回None"""
        session = self._session
        if session is None:
            return None
        record = session.assembly.record
        if not record.title and not record.sections:
            return None
        return record

    def get_completion(self) -> Dict[str, SectionCompletion]:
        session = self._session
        if session is None:
            return {}
        return session.tracker.snapshot()

    def get_preview(self) -> Optional[Dict[str, Any]]:
        """包含尾部未闭合分区的实时预览"""
        session = self._session
        if session is None:
            return None
        return session.scanner.preview()

    def get_stats(self) -> Dict[str, Any]:
        """获取处理统计信息"""
        session = self._session
        return {
            **self._stats,
            "state": self.get_state().to_dict(),
            "session": session.get_stats() if session else None,
            "listeners": {
                "state": len(self.state_channel),
                "buffer": len(self.buffer_channel),
                "update": len(self.update_channel),
            },
        }


def get_stream_processor(config: Optional[StreamingConfig] = None) -> StreamProcessor:
    """创建流处理器实例"""
    return StreamProcessor(config=config)
