"""
流式会话

每次 start() 创建一个新会话，会话持有自己的定时器句柄和取消标记。
流式模式与即时模式执行同一套状态转换：流式模式用 loop.call_later 延迟调度，
即时模式以零延迟同步执行（不需要运行中的事件循环）。
"""

import asyncio
import math
import time
import uuid
from collections import deque
from typing import Callable, Optional, Set

from cardstream.core.config import StreamingConfig

from .assembly import AssemblyModel
from .chunker import Chunker
from .emitter import UpdateEmitter
from .errors import EmptyPayloadError, IncompleteDocumentError, StreamingError, StreamTimeoutError
from .models import ChangeType, RecordUpdate
from .parsers import PartialJSONScanner, ScanResult
from .trackers import CompletionTracker, StreamStage


class StreamSession:
    """单次流式模拟"""

    def __init__(
        self,
        payload: str,
        config: StreamingConfig,
        on_state: Callable[..., None],
        on_buffer: Callable[["StreamSession", str], None],
        on_update: Callable[["StreamSession", RecordUpdate], None],
        instant: bool = False,
        log: Optional[Callable[[str], None]] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.session_id = str(uuid.uuid4())
        self.config = config
        self.instant = instant
        self._on_state = on_state
        self._on_buffer = on_buffer
        self._on_update = on_update
        self._log = log or (lambda message: None)

        self.chunker = Chunker(config.min_chunk_size, config.max_chunk_size)
        self.target = Chunker.normalize(payload or "")
        self.chunks: deque = deque()
        self.buffer = ""

        self.scanner = PartialJSONScanner(config.title_key, config.sections_key)
        self.assembly = AssemblyModel(config.placeholder_value, config.title_key, config.sections_key)
        self.tracker = CompletionTracker(config.placeholder_value, config.progress_update_threshold)
        self.emitter = UpdateEmitter(
            self._publish_update,
            config.update_throttle,
            is_streaming=lambda: not self.instant and self.stage is StreamStage.STREAMING,
        )

        self.stage = StreamStage.IDLE
        self.error: Optional[StreamingError] = None
        self.cancelled = False
        self.started_at: Optional[float] = None
        self.finished = asyncio.Event()
        self.fragments_processed = 0
        self._handles: Set[asyncio.TimerHandle] = set()
        self._loop = loop

    # ---------- 调度 ----------

    def _schedule(self, delay: float, callback: Callable[[], None]):
        if self.instant:
            callback()
            return

        handle: Optional[asyncio.TimerHandle] = None

        def fire():
            self._handles.discard(handle)
            if not self.cancelled:
                callback()

        handle = self._loop.call_later(delay, fire)
        self._handles.add(handle)

    def _cancel_timers(self):
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()
        self.emitter.cancel()

    def fragment_delay(self, fragment: str) -> float:
        """按模拟的token速率计算分片间隔"""
        tokens = max(1, math.ceil(len(fragment) / self.config.chars_per_token))
        return tokens / self.config.tokens_per_second

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    # ---------- 状态转换 ----------

    def _set_state(self, **changes):
        if "stage" in changes:
            self.stage = changes["stage"]
        self._on_state(self, **changes)

    def run(self):
        """开始会话：空载荷立即进入错误阶段

        流式模式在发布任何状态之前取得事件循环，没有运行中的循环时直接抛出 RuntimeError。
        """
        if not self.instant and self._loop is None:
            self._loop = asyncio.get_running_loop()
        self.started_at = time.monotonic()

        if not self.target:
            self._fail(EmptyPayloadError("payload is empty"))
            return

        chunks = self.chunker.chunk(self.target)
        if self.instant:
            chunks = ["".join(chunks)]
        self.chunks = deque(chunks)
        self._log(f"会话 {self.session_id[:8]} 开始: {len(self.target)} 字符, {len(self.chunks)} 个分片")

        self._set_state(
            is_active=True,
            stage=StreamStage.THINKING,
            progress=0.0,
            buffer_length=0,
            target_length=len(self.target),
            error=None,
        )

        timeout = self.config.stream_timeout
        if timeout and not self.instant:
            self._schedule(timeout, self._on_timeout)

        self._schedule(self.config.thinking_delay, self._begin_streaming)

    def _begin_streaming(self):
        if self.cancelled:
            return
        self._set_state(stage=StreamStage.STREAMING)
        self._process_next()

    def _process_next(self):
        if self.cancelled or self.stage.is_terminal:
            return

        if not self.chunks:
            self._schedule(self.config.final_delay, self._finish)
            return

        fragment = self.chunks.popleft()
        self.buffer += fragment
        self.fragments_processed += 1
        self._on_buffer(self, self.buffer)

        self._apply(self.scanner.scan(self.buffer))

        self._set_state(
            progress=min(1.0, len(self.buffer) / len(self.target)),
            buffer_length=len(self.buffer),
        )
        self._schedule(self.fragment_delay(fragment), self._process_next)

    def _apply(self, result: ScanResult):
        """合并扫描结果、评估完成度并发出更新"""
        patch = self.assembly.apply(result.record)
        report = self.tracker.evaluate(patch.record)

        structural = bool(patch.new_section_indices or report.completed)
        if not structural and not patch.changed and not report.progressed:
            return

        update = RecordUpdate(
            record=patch.record,
            change_type=ChangeType.STRUCTURAL if structural else ChangeType.CONTENT,
            completed_section_indices=tuple(report.completed) or None,
            changed_paths=tuple(patch.changed_paths),
        )
        mode = self.emitter.emit(update)
        if patch.new_section_indices:
            self._log(f"新分区: {patch.new_section_indices} ({mode.value})")

    def _finish(self):
        if self.cancelled or self.stage.is_terminal:
            return

        result = self.scanner.scan(self.buffer)
        patch = self.assembly.apply(result.record)
        changed_paths = list(patch.changed_paths)

        if not result.complete:
            self._log("⚠️ 完整解析失败，以部分记录结束")

        # 即时模式一次性给出最终记录，无论是否完整解析都清除占位并标记全部完成
        if result.complete or self.instant:
            changed_paths.extend(self.assembly.finalize().changed_paths)
            completed = self.tracker.mark_all_complete(self.assembly.record)
        else:
            completed = self.tracker.evaluate(self.assembly.record).completed

        record = self.assembly.record
        if not record.title and not record.sections:
            self._fail(IncompleteDocumentError("no title or section could be located in the payload"))
            return

        self.emitter.emit(RecordUpdate(
            record=record,
            change_type=ChangeType.STRUCTURAL,
            completed_section_indices=tuple(completed),
            changed_paths=tuple(changed_paths),
        ))
        self._cancel_timers()
        self._set_state(
            is_active=False,
            stage=StreamStage.COMPLETE,
            progress=1.0,
            buffer_length=len(self.buffer),
        )
        self.finished.set()
        self._log(f"会话 {self.session_id[:8]} 完成: {len(record.sections)} 个分区, 耗时 {self.elapsed:.3f}s")

    def _fail(self, error: StreamingError):
        self.error = error
        self._cancel_timers()
        self._set_state(is_active=False, stage=StreamStage.ERROR, error=error.message)
        self.finished.set()
        print(f"❌ 流式会话失败 [{error.code}]: {error.message}")

    def _on_timeout(self):
        if self.stage.is_terminal:
            return
        timeout = self.config.stream_timeout
        self._fail(StreamTimeoutError(f"stream exceeded {timeout}s", timeout))

    def _publish_update(self, update: RecordUpdate):
        if not self.cancelled:
            self._on_update(self, update)

    def cancel(self):
        """取消会话：之后不再有任何回调生效"""
        self.cancelled = True
        self._cancel_timers()
        self.finished.set()

    def get_stats(self):
        return {
            "session_id": self.session_id,
            "instant": self.instant,
            "stage": self.stage.value,
            "fragments_processed": self.fragments_processed,
            "fragments_pending": len(self.chunks),
            "elapsed": self.elapsed,
            "chunker": self.chunker.get_stats(),
            "scanner": self.scanner.get_stats(),
            "tracker": self.tracker.get_stats(),
            "emitter": self.emitter.get_stats(),
        }
