"""SSE格式化器，将引擎事件转换为 text/event-stream 帧"""

import json
import time
from typing import Dict, Any, Optional

from .errors import StreamingError
from .models import RecordUpdate
from .trackers import StreamState

DONE_EVENT = "data: [DONE]\n\n"


class SSEFormatter:
    """SSE格式化器"""

    def __init__(self, session_id: str, include_state: bool = False):
        self._session_id = session_id
        self.include_state = include_state
        self._sequence = 0

    def _next_event_id(self) -> str:
        self._sequence += 1
        return f"{self._session_id[:8]}-seq{self._sequence:06d}"

    def format_sse_event(
        self,
        data: Dict[str, Any],
        event_id: Optional[str] = None,
        event_type: Optional[str] = None
    ) -> str:
        """格式化为SSE事件"""
        lines = []
        if event_id:
            lines.append(f"id: {event_id}")
        if event_type:
            lines.append(f"event: {event_type}")
        lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
        return "\n".join(lines) + "\n\n"

    def create_state_event(self, state: StreamState) -> str:
        return self.format_sse_event(state.to_dict(), self._next_event_id(), "state")

    def create_buffer_event(self, buffer: str) -> str:
        data = {"buffer": buffer, "length": len(buffer)}
        return self.format_sse_event(data, self._next_event_id(), "buffer")

    def create_update_event(self, update: RecordUpdate) -> str:
        return self.format_sse_event(update.to_dict(self.include_state), self._next_event_id(), "update")

    def create_error_event(self, error: StreamingError) -> str:
        return self.format_sse_event(error.to_dict(), self._next_event_id(), "error")

    def create_heartbeat_event(self) -> str:
        """心跳（SSE注释行，客户端忽略）"""
        return f": heartbeat {int(time.time())}\n\n"

    def format_event(self, kind: str, event: Any) -> str:
        """按事件类型分派"""
        if kind == "state":
            return self.create_state_event(event)
        if kind == "buffer":
            return self.create_buffer_event(event)
        if kind == "update":
            return self.create_update_event(event)
        raise ValueError(f"unknown event kind: {kind}")
