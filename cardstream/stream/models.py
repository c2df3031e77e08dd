"""
记录数据模型

Record → Section → RecordField / RecordItem，全部为不可变快照。
每个分片处理后生成新快照，未变更的子树直接复用上一快照中的对象。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, Tuple

# 变更路径，例如 ("sections", 0, "fields", 2)
ChangePath = Tuple[Any, ...]


class ChangeType(Enum):
    """更新类型"""
    STRUCTURAL = "structural"   # 新分区出现或分区完成
    CONTENT = "content"         # 已知分区内的内容细化


@dataclass(frozen=True)
class RecordField:
    id: str
    label: str
    value: Any = None
    placeholder: bool = False
    attrs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, include_state: bool = False) -> Dict[str, Any]:
        data = {"id": self.id, "label": self.label, "value": self.value, **self.attrs}
        if include_state:
            data["placeholder"] = self.placeholder
        return data


@dataclass(frozen=True)
class RecordItem:
    id: str
    title: str
    description: Optional[str] = None
    placeholder: bool = False
    attrs: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self, include_state: bool = False) -> Dict[str, Any]:
        data = {"id": self.id, "title": self.title, **self.attrs}
        if self.description is not None:
            data["description"] = self.description
        if include_state:
            data["placeholder"] = self.placeholder
        return data


@dataclass(frozen=True)
class Section:
    """
    命名分区

    kind 在JSON中对应 "type" 键；attrs 保存其余展示属性并原样序列化。
    """
    id: str
    title: str
    kind: str = "info"
    fields: Tuple[RecordField, ...] = ()
    items: Tuple[RecordItem, ...] = ()
    attrs: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_placeholder(self) -> bool:
        return any(f.placeholder for f in self.fields) or any(i.placeholder for i in self.items)

    def to_dict(self, include_state: bool = False) -> Dict[str, Any]:
        data = {"id": self.id, "title": self.title, "type": self.kind, **self.attrs}
        data["fields"] = [f.to_dict(include_state) for f in self.fields]
        data["items"] = [i.to_dict(include_state) for i in self.items]
        if include_state:
            data["placeholder"] = self.is_placeholder
        return data


@dataclass(frozen=True)
class Record:
    title: str = ""
    sections: Tuple[Section, ...] = ()

    def section_ids(self) -> Tuple[str, ...]:
        return tuple(s.id for s in self.sections)

    def to_dict(self, include_state: bool = False) -> Dict[str, Any]:
        return {
            "title": self.title,
            "sections": [s.to_dict(include_state) for s in self.sections],
        }


@dataclass(frozen=True)
class RecordUpdate:
    """对外发送的记录更新事件"""
    record: Record
    change_type: ChangeType
    completed_section_indices: Optional[Tuple[int, ...]] = None
    changed_paths: Tuple[ChangePath, ...] = ()

    @property
    def is_structural(self) -> bool:
        return self.change_type is ChangeType.STRUCTURAL

    @property
    def is_completion(self) -> bool:
        return bool(self.completed_section_indices)

    def to_dict(self, include_state: bool = False) -> Dict[str, Any]:
        data = {
            "record": self.record.to_dict(include_state),
            "changeType": self.change_type.value,
            "changedPaths": [list(p) for p in self.changed_paths],
        }
        if self.completed_section_indices is not None:
            data["completedSectionIndices"] = list(self.completed_section_indices)
        return data
