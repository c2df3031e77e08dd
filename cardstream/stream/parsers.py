"""增量JSON扫描器，从语法不完整的缓冲区中提取已闭合的分区"""

import json
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Set

from .errors import SectionParseError
from .heuristics import build_preview, extract_string_value, extract_value_after_array, find_array_start


@dataclass
class ScanResult:
    """单次扫描结果"""
    record: Optional[Dict[str, Any]] = None
    complete: bool = False                                  # 完整解析成功
    newly_balanced: List[int] = field(default_factory=list)  # 本次首次闭合的分区索引


def find_balanced_end(text: str, start: int) -> int:
    """
    从 text[start] 处的 '{' 开始查找匹配的 '}'

    跟踪字符串模式与转义模式，字符串内的括号和 \\" 不影响深度。
    未闭合时返回 -1。
    """
    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\" and in_string:
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i

    return -1


def _content_count(section: Dict[str, Any]) -> int:
    return len(section.get("fields") or []) + len(section.get("items") or [])


class PartialJSONScanner:
    """
    部分JSON扫描器

    先尝试完整解析；失败时用括号平衡扫描提取标题和已闭合的分区。
    已闭合的分区索引跨调用保留，合并时不会用更少内容的版本覆盖已有版本。
    """

    def __init__(self, title_key: str = "title", sections_key: str = "sections"):
        self.title_key = title_key
        self.sections_key = sections_key
        self.partial_sections: List[Dict[str, Any]] = []
        self.balanced_indices: Set[int] = set()
        self.partial_title = ""
        self.full_parses = 0
        self.partial_scans = 0
        self.parse_errors = 0
        self._tail_text = ""

    def _is_record(self, doc: Any) -> bool:
        if not isinstance(doc, dict):
            return False
        sections = doc.get(self.sections_key)
        title = doc.get(self.title_key)
        if sections is not None and not isinstance(sections, list):
            return False
        return isinstance(sections, list) or isinstance(title, str)

    def try_parse(self, buffer: str) -> Optional[Dict[str, Any]]:
        """完整解析，失败或不是记录时返回None"""
        try:
            doc = json.loads(buffer)
        except (json.JSONDecodeError, ValueError):
            return None
        return doc if self._is_record(doc) else None

    def scan(self, buffer: str) -> ScanResult:
        """扫描当前缓冲区"""
        doc = self.try_parse(buffer)
        if doc is not None:
            self.full_parses += 1
            return self._accept_full(doc)

        self.partial_scans += 1
        return self.scan_partial(buffer)

    def _accept_full(self, doc: Dict[str, Any]) -> ScanResult:
        sections = [s for s in (doc.get(self.sections_key) or []) if isinstance(s, dict)]
        newly_balanced = []
        for index, section in enumerate(sections):
            self._store_section(index, section)
            if index not in self.balanced_indices:
                self.balanced_indices.add(index)
                newly_balanced.append(index)

        title = doc.get(self.title_key)
        if isinstance(title, str):
            self.partial_title = title
        self._tail_text = ""

        record = dict(doc)
        record[self.sections_key] = sections
        return ScanResult(record=record, complete=True, newly_balanced=newly_balanced)

    def _store_section(self, index: int, section: Dict[str, Any]) -> None:
        """合并分区：新版本内容数不少于已有版本时才替换"""
        if index < len(self.partial_sections):
            existing = self.partial_sections[index]
            if _content_count(section) >= _content_count(existing):
                self.partial_sections[index] = section
        else:
            self.partial_sections.append(section)

    def _parse_section(self, text: str, index: int) -> Dict[str, Any]:
        try:
            section = json.loads(text)
        except json.JSONDecodeError as e:
            raise SectionParseError(f"section {index} is not valid JSON", index, e)
        if not isinstance(section, dict):
            raise SectionParseError(f"section {index} is not an object", index)
        return section

    def scan_partial(self, buffer: str) -> ScanResult:
        """括号平衡扫描，只返回已闭合的分区"""
        sections_start = find_array_start(buffer, self.sections_key)
        head = buffer if sections_start == -1 else buffer[:sections_start]

        title = extract_string_value(head, self.title_key)
        if not title and sections_start != -1:
            # 标题写在分区数组之后
            title = extract_value_after_array(buffer, sections_start, self.title_key)
        if title:
            self.partial_title = title

        if sections_start == -1:
            self._tail_text = ""
            if self.partial_title:
                return ScanResult(record={self.title_key: self.partial_title, self.sections_key: []})
            return ScanResult()

        content = buffer[sections_start:]
        newly_balanced = []
        section_index = 0
        i = 0

        while i < len(content):
            while i < len(content) and content[i] in " \t\r\n,":
                i += 1

            if i >= len(content) or content[i] == "]":
                break

            if content[i] != "{":
                i += 1
                continue

            section_end = find_balanced_end(content, i)
            if section_end == -1:
                # 尚未闭合，不输出半个分区
                break

            try:
                section = self._parse_section(content[i:section_end + 1], section_index)
            except SectionParseError:
                self.parse_errors += 1
                break

            self._store_section(section_index, section)
            if section_index not in self.balanced_indices:
                self.balanced_indices.add(section_index)
                newly_balanced.append(section_index)

            i = section_end + 1
            section_index += 1

        self._tail_text = content[i:]

        if not self.partial_sections and not self.partial_title:
            return ScanResult(newly_balanced=newly_balanced)

        record = {
            self.title_key: self.partial_title,
            self.sections_key: list(self.partial_sections),
        }
        return ScanResult(record=record, complete=False, newly_balanced=newly_balanced)

    def preview(self) -> Optional[Dict[str, Any]]:
        """最近一次扫描的实时预览（包含尾部未闭合分区的启发式提取）"""
        return build_preview(
            self.partial_title,
            self.partial_sections,
            self._tail_text,
            title_key=self.title_key,
            sections_key=self.sections_key,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "full_parses": self.full_parses,
            "partial_scans": self.partial_scans,
            "parse_errors": self.parse_errors,
            "balanced_sections": len(self.balanced_indices),
        }

    def clear(self):
        self.partial_sections = []
        self.balanced_indices = set()
        self.partial_title = ""
        self._tail_text = ""
