"""
不完整JSON的正则启发式提取

仅作为最后手段：提取缺少结束引号的字符串值、为尚未闭合的尾部分区构建预览。
分区是否"可用"始终由 parsers 中的括号平衡扫描决定，而不是这里。
"""

import json
import re
from typing import Dict, Any, List, Optional

# 匹配一个JSON对象（允许一层嵌套，允许缺少结束括号）
_OBJECT_PATTERN = re.compile(r'\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}?')


def _string_pattern(key: str) -> "re.Pattern[str]":
    return re.compile(r'"' + re.escape(key) + r'"\s*:\s*"((?:[^"\\]|\\.)*)("?)')


def _decode(raw: str) -> str:
    """解码JSON转义，截断处的孤立反斜杠直接丢弃"""
    trailing = len(raw) - len(raw.rstrip("\\"))
    if trailing % 2 == 1:
        raw = raw[:-1]
    try:
        return json.loads('"' + raw + '"')
    except json.JSONDecodeError:
        return raw


def extract_string_value(text: str, key: str) -> Optional[str]:
    """提取 key 对应的字符串值，即使结束引号尚未到达"""
    match = _string_pattern(key).search(text)
    if not match:
        return None
    return _decode(match.group(1))


def find_array_start(text: str, key: str) -> int:
    """返回 "key": [ 之后第一个字符的位置，未找到返回 -1"""
    match = re.search(r'"' + re.escape(key) + r'"\s*:\s*\[', text)
    if not match:
        return -1
    return match.end()


def _array_end(array_text: str) -> int:
    """返回数组结束括号的位置，数组未闭合时返回文本长度"""
    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(array_text):
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
        if char in "{[":
            depth += 1
        elif char in "}]":
            if depth == 0:
                return i
            depth -= 1
    return len(array_text)


def extract_value_after_array(text: str, array_start: int, key: str) -> Optional[str]:
    """在数组闭合之后的文本中提取 key 的字符串值，数组未闭合时返回 None"""
    end = array_start + _array_end(text[array_start:])
    if end >= len(text):
        return None
    return extract_string_value(text[end + 1:], key)


def extract_partial_entries(array_text: str, keys: List[str]) -> List[Dict[str, Any]]:
    """从不完整的数组文本中提取条目，只保留 keys 中出现的字符串属性"""
    entries = []
    array_text = array_text[:_array_end(array_text)]
    for match in _OBJECT_PATTERN.finditer(array_text):
        entry = {}
        for key in keys:
            value = extract_string_value(match.group(0), key)
            if value is not None:
                entry[key] = value
        if entry:
            entries.append(entry)
    return entries


def extract_partial_section(section_text: str) -> Optional[Dict[str, Any]]:
    """
    从尚未闭合的分区文本中提取可用属性

    至少需要 title 或 type 才返回结果。
    """
    section: Dict[str, Any] = {}

    fields_start = find_array_start(section_text, "fields")
    items_start = find_array_start(section_text, "items")
    nested_starts = [p for p in (fields_start, items_start) if p != -1]
    head = section_text[:min(nested_starts)] if nested_starts else section_text

    for key in ("title", "type", "description"):
        value = extract_string_value(head, key)
        if value is not None:
            section[key] = value

    if not section.get("title") and not section.get("type"):
        return None

    if fields_start != -1:
        section["fields"] = extract_partial_entries(section_text[fields_start:], ["label", "value", "type"])
    if items_start != -1:
        section["items"] = extract_partial_entries(section_text[items_start:], ["title", "description", "value"])

    return section


def build_preview(
    title: Optional[str],
    balanced_sections: List[Dict[str, Any]],
    tail_text: str,
    title_key: str = "title",
    sections_key: str = "sections",
) -> Optional[Dict[str, Any]]:
    """构建实时预览：已闭合的分区 + 尾部未闭合分区的启发式提取"""
    sections = [dict(s) for s in balanced_sections]
    tail = tail_text.lstrip(" \t\r\n,")
    if tail.startswith("{"):
        partial = extract_partial_section(tail)
        if partial is not None:
            sections.append(partial)

    if not title and not sections:
        return None
    return {title_key: title or "", sections_key: sections}
