"""流式状态追踪器：阶段枚举、会话状态、分区完成度追踪"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from threading import Lock
from typing import Dict, Any, Optional, List, Set

from cardstream.core.constants import DEFAULT_PLACEHOLDER_VALUE, DEFAULT_PROGRESS_UPDATE_THRESHOLD

from .models import Record, RecordField, RecordItem, Section

# 自动生成的条目标题
AUTO_ITEM_TITLE = re.compile(r"^Item \d+$")


class StreamStage(Enum):
    """流式会话阶段"""
    IDLE = "idle"               # 无活动会话
    THINKING = "thinking"       # 首个分片前的等待
    STREAMING = "streaming"     # 正在消费分片
    COMPLETE = "complete"
    ABORTED = "aborted"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamStage.COMPLETE, StreamStage.ABORTED, StreamStage.ERROR)


@dataclass(frozen=True)
class StreamState:
    """会话状态快照"""
    is_active: bool = False
    stage: StreamStage = StreamStage.IDLE
    progress: float = 0.0
    buffer_length: int = 0
    target_length: int = 0
    error: Optional[str] = None

    def evolve(self, **changes) -> "StreamState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isActive": self.is_active,
            "stage": self.stage.value,
            "progress": self.progress,
            "bufferLength": self.buffer_length,
            "targetLength": self.target_length,
            "error": self.error,
        }


@dataclass(frozen=True)
class SectionCompletion:
    is_complete: bool = False
    percentage: float = 0.0


@dataclass
class CompletionReport:
    completed: List[int] = field(default_factory=list)    # 新完成的分区，需要结构性通知
    progressed: List[int] = field(default_factory=list)   # 完成度跃升超过阈值的分区，内容更新候选

    def __bool__(self) -> bool:
        return bool(self.completed or self.progressed)


@dataclass
class CompletionTracker:
    """
    分区完成度追踪器

    以分区id为key记录完成状态与完成度。完成度只增不减，
    已完成的分区不会回退，已宣告为结构性变更的分区不会重复宣告。
    """
    placeholder_value: Any = DEFAULT_PLACEHOLDER_VALUE
    progress_threshold: float = DEFAULT_PROGRESS_UPDATE_THRESHOLD
    states: Dict[str, SectionCompletion] = field(default_factory=dict)
    structural_ids: Set[str] = field(default_factory=set)
    evaluations: int = 0
    completions: int = 0
    progress_events: int = 0
    # 锁
    _lock: Lock = field(default_factory=Lock)

    def is_field_placeholder(self, record_field: RecordField) -> bool:
        value = record_field.value
        return record_field.placeholder or value is None or value == self.placeholder_value

    def is_item_placeholder(self, item: RecordItem) -> bool:
        if item.placeholder:
            return True
        auto_title = not item.title or bool(AUTO_ITEM_TITLE.match(item.title))
        return auto_title and not item.description

    def is_section_complete(self, section: Section) -> bool:
        if any(self.is_field_placeholder(f) for f in section.fields):
            return False
        return not any(self.is_item_placeholder(i) for i in section.items)

    def completion_percentage(self, section: Section) -> float:
        total = len(section.fields) + len(section.items)
        if total == 0:
            return 0.5 if section.title else 0.0

        completed = sum(1 for f in section.fields if not self.is_field_placeholder(f))
        completed += sum(1 for i in section.items if not self.is_item_placeholder(i))
        return completed / total

    def evaluate(self, record: Record) -> CompletionReport:
        """评估记录中各分区的完成度，返回新完成与显著进展的分区索引"""
        with self._lock:
            self.evaluations += 1
            report = CompletionReport()

            for index, section in enumerate(record.sections):
                previous = self.states.get(section.id)
                if previous is not None and previous.is_complete:
                    continue

                if self.is_section_complete(section):
                    self.states[section.id] = SectionCompletion(True, 1.0)
                    if section.id not in self.structural_ids:
                        self.structural_ids.add(section.id)
                        report.completed.append(index)
                        self.completions += 1
                    continue

                percentage = self.completion_percentage(section)
                previous_percentage = previous.percentage if previous else 0.0
                self.states[section.id] = SectionCompletion(False, max(previous_percentage, percentage))
                if percentage > previous_percentage + self.progress_threshold:
                    report.progressed.append(index)
                    self.progress_events += 1

            return report

    def mark_all_complete(self, record: Record) -> List[int]:
        """将全部分区标记为完成，返回此前未宣告的分区索引"""
        with self._lock:
            announced = []
            for index, section in enumerate(record.sections):
                self.states[section.id] = SectionCompletion(True, 1.0)
                if section.id not in self.structural_ids:
                    self.structural_ids.add(section.id)
                    announced.append(index)
                    self.completions += 1
            return announced

    def get(self, section_id: str) -> Optional[SectionCompletion]:
        with self._lock:
            return self.states.get(section_id)

    def snapshot(self) -> Dict[str, SectionCompletion]:
        with self._lock:
            return dict(self.states)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "tracked_sections": len(self.states),
                "complete_sections": sum(1 for s in self.states.values() if s.is_complete),
                "evaluations": self.evaluations,
                "completions": self.completions,
                "progress_events": self.progress_events,
            }
