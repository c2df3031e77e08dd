"""
组装模型

持有正在构建的记录，负责为缺少id的分区/字段/条目分配稳定id。
每次 apply 基于上一快照打补丁：只为变更的子树创建新对象，并返回变更路径列表。
"""

from dataclasses import dataclass, field, replace
from typing import Dict, Any, List, Optional, Set, Tuple

from cardstream.core.constants import DEFAULT_PLACEHOLDER_VALUE

from .models import ChangePath, Record, RecordField, RecordItem, Section
from .trackers import AUTO_ITEM_TITLE

SECTION_KEYS = {"id", "title", "type", "kind", "fields", "items"}
FIELD_KEYS = {"id", "label", "value", "placeholder"}
ITEM_KEYS = {"id", "title", "description", "placeholder"}


@dataclass
class RecordPatch:
    """一次 apply 的结果"""
    record: Record
    changed_paths: List[ChangePath] = field(default_factory=list)
    new_section_indices: List[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changed_paths)


def _is_flagged(data: Dict[str, Any]) -> bool:
    """显式占位标记: placeholder=true 或 meta.placeholder=true"""
    if data.get("placeholder") is True:
        return True
    meta = data.get("meta")
    return isinstance(meta, dict) and meta.get("placeholder") is True


def _attrs(data: Dict[str, Any], reserved: Set[str]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k not in reserved}


def _unique_id(candidate: Any, fallback: str, used: Set[str]) -> str:
    """同一父节点下保持id唯一，冲突时退回生成的id"""
    for value in (candidate, fallback):
        if value not in (None, "") and str(value) not in used:
            return str(value)
    suffix = 2
    while f"{fallback}_{suffix}" in used:
        suffix += 1
    return f"{fallback}_{suffix}"


def _as_dicts(values: Any) -> List[Dict[str, Any]]:
    if not isinstance(values, list):
        return []
    return [v if isinstance(v, dict) else {"value": v} for v in values]


class AssemblyModel:
    """正在构建的记录"""

    def __init__(
        self,
        placeholder_value: Any = DEFAULT_PLACEHOLDER_VALUE,
        title_key: str = "title",
        sections_key: str = "sections",
    ):
        self.placeholder_value = placeholder_value
        self.title_key = title_key
        self.sections_key = sections_key
        self.record = Record()
        self.known_section_count = 0
        self.patches_applied = 0

    # ---------- 占位创建 ----------

    def _placeholder_field(self, data: Dict[str, Any], section_index: int, field_index: int, used: Set[str]) -> RecordField:
        field_id = _unique_id(data.get("id"), f"field_{section_index}_{field_index}", used)
        used.add(field_id)
        return RecordField(
            id=field_id,
            label=data.get("label") or data.get("title") or f"Field {field_index + 1}",
            value=data.get("value"),
            placeholder=True,
            attrs=_attrs(data, FIELD_KEYS),
        )

    def _placeholder_item(self, data: Dict[str, Any], section_index: int, item_index: int, used: Set[str]) -> RecordItem:
        item_id = _unique_id(data.get("id"), f"item_{section_index}_{item_index}", used)
        used.add(item_id)
        return RecordItem(
            id=item_id,
            title=data.get("title") or f"Item {item_index + 1}",
            description=data.get("description"),
            placeholder=True,
            attrs=_attrs(data, ITEM_KEYS),
        )

    def _placeholder_section(self, data: Dict[str, Any], index: int, used: Set[str]) -> Section:
        section_id = _unique_id(data.get("id"), f"section_{index}", used)
        used.add(section_id)
        field_ids: Set[str] = set()
        item_ids: Set[str] = set()
        return Section(
            id=section_id,
            title=data.get("title") or f"Section {index + 1}",
            kind=data.get("type") or data.get("kind") or "info",
            fields=tuple(
                self._placeholder_field(f, index, i, field_ids) for i, f in enumerate(_as_dicts(data.get("fields")))
            ),
            items=tuple(
                self._placeholder_item(it, index, i, item_ids) for i, it in enumerate(_as_dicts(data.get("items")))
            ),
            attrs=_attrs(data, SECTION_KEYS),
        )

    # ---------- 补丁 ----------

    def _has_real_value(self, data: Dict[str, Any]) -> bool:
        value = data.get("value")
        return not _is_flagged(data) and value is not None and value != self.placeholder_value

    def _has_real_item(self, data: Dict[str, Any]) -> bool:
        if _is_flagged(data):
            return False
        title = data.get("title")
        description = data.get("description")
        real_title = bool(title) and not AUTO_ITEM_TITLE.match(str(title))
        return real_title or bool(description)

    def _patch_field(self, existing: RecordField, data: Dict[str, Any]) -> RecordField:
        value = data.get("value")
        patched = replace(
            existing,
            label=data.get("label") or data.get("title") or existing.label,
            value=value if value is not None else existing.value,
            placeholder=existing.placeholder and not self._has_real_value(data),
            attrs={**existing.attrs, **_attrs(data, FIELD_KEYS)},
        )
        return existing if patched == existing else patched

    def _patch_item(self, existing: RecordItem, data: Dict[str, Any]) -> RecordItem:
        description = data.get("description")
        patched = replace(
            existing,
            title=data.get("title") or existing.title,
            description=description if description is not None else existing.description,
            placeholder=existing.placeholder and not self._has_real_item(data),
            attrs={**existing.attrs, **_attrs(data, ITEM_KEYS)},
        )
        return existing if patched == existing else patched

    def _patch_entries(
        self,
        existing: Tuple[Any, ...],
        incoming: List[Dict[str, Any]],
        section_index: int,
        kind: str,
        paths: List[ChangePath],
    ) -> Tuple[Any, ...]:
        """按位置就地更新数组：必要时增长，保持已有条目的位置与id"""
        entries = list(existing)
        used = {e.id for e in entries}
        create = self._placeholder_field if kind == "fields" else self._placeholder_item
        patch = self._patch_field if kind == "fields" else self._patch_item

        while len(entries) < len(incoming):
            position = len(entries)
            entries.append(create(incoming[position], section_index, position, used))
            paths.append(("sections", section_index, kind, position))

        for position, data in enumerate(incoming):
            patched = patch(entries[position], data)
            if patched is not entries[position]:
                entries[position] = patched
                path = ("sections", section_index, kind, position)
                if path not in paths:
                    paths.append(path)

        return tuple(entries)

    def _patch_section(self, existing: Section, data: Dict[str, Any], index: int) -> Tuple[Section, List[ChangePath]]:
        paths: List[ChangePath] = []
        fields = self._patch_entries(existing.fields, _as_dicts(data.get("fields")), index, "fields", paths)
        items = self._patch_entries(existing.items, _as_dicts(data.get("items")), index, "items", paths)

        patched = replace(
            existing,
            title=data.get("title") or existing.title,
            kind=data.get("type") or data.get("kind") or existing.kind,
            fields=fields,
            items=items,
            attrs={**existing.attrs, **_attrs(data, SECTION_KEYS)},
        )
        if (patched.title, patched.kind, patched.attrs) != (existing.title, existing.kind, existing.attrs):
            paths.insert(0, ("sections", index))
        if not paths:
            return existing, paths
        return patched, paths

    def apply(self, incoming: Optional[Dict[str, Any]]) -> RecordPatch:
        """将解析出的记录字典合并进当前快照"""
        if not incoming:
            return RecordPatch(self.record)

        changed_paths: List[ChangePath] = []
        new_indices: List[int] = []

        title = incoming.get(self.title_key)
        new_title = self.record.title
        if isinstance(title, str) and title and title != self.record.title:
            new_title = title
            changed_paths.append(("title",))

        sections = list(self.record.sections)
        incoming_sections = _as_dicts(incoming.get(self.sections_key))

        # 每个分区索引只初始化一次占位
        if len(incoming_sections) > self.known_section_count:
            used = {s.id for s in sections}
            for index in range(self.known_section_count, len(incoming_sections)):
                sections.append(self._placeholder_section(incoming_sections[index], index, used))
                new_indices.append(index)
                changed_paths.append(("sections", index))
            self.known_section_count = len(incoming_sections)

        for index, data in enumerate(incoming_sections[:len(sections)]):
            patched, paths = self._patch_section(sections[index], data, index)
            if patched is not sections[index]:
                sections[index] = patched
                if index not in new_indices:
                    changed_paths.extend(paths)

        if changed_paths:
            self.record = Record(title=new_title, sections=tuple(sections))
            self.patches_applied += 1
        return RecordPatch(self.record, changed_paths, new_indices)

    def finalize(self) -> RecordPatch:
        """清除全部占位标记（最终遍历/即时模式）"""
        changed_paths: List[ChangePath] = []
        sections = []
        for index, section in enumerate(self.record.sections):
            fields = self._clear_flags(section.fields, index, "fields", changed_paths)
            items = self._clear_flags(section.items, index, "items", changed_paths)
            if fields is section.fields and items is section.items:
                sections.append(section)
            else:
                sections.append(replace(section, fields=fields, items=items))

        if changed_paths:
            self.record = Record(title=self.record.title, sections=tuple(sections))
        return RecordPatch(self.record, changed_paths)

    @staticmethod
    def _clear_flags(entries: Tuple[Any, ...], index: int, kind: str, paths: List[ChangePath]) -> Tuple[Any, ...]:
        if not any(e.placeholder for e in entries):
            return entries
        cleared = []
        for position, entry in enumerate(entries):
            if entry.placeholder:
                entry = replace(entry, placeholder=False)
                paths.append(("sections", index, kind, position))
            cleared.append(entry)
        return tuple(cleared)
