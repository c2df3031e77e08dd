"""分块器，将目标载荷切分为模拟逐token到达的分片"""

from typing import Dict, Any, List

from cardstream.core.config import ConfigError
from cardstream.core.constants import (
    CHUNK_BOUNDARY_CHARS,
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MIN_CHUNK_SIZE,
)


class Chunker:
    """
    按最小/最大长度和自然边界切分载荷

    分片在达到最大长度时输出，或在达到最小长度且当前字符为边界
    （换行、逗号、右大括号、右中括号）时输出。末尾剩余部分作为最后一个分片。
    """

    def __init__(self, min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE, max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE):
        if min_chunk_size < 1 or max_chunk_size < 1 or min_chunk_size > max_chunk_size:
            raise ConfigError([
                f"invalid chunk sizes: min={min_chunk_size}, max={max_chunk_size}"
            ])
        self.min_chunk_size = min_chunk_size
        self.max_chunk_size = max_chunk_size
        self.total_input = 0
        self.total_output = 0
        self.chunks_created = 0

    @staticmethod
    def normalize(payload: str) -> str:
        """统一换行符"""
        return payload.replace("\r\n", "\n")

    def chunk(self, payload: str) -> List[str]:
        """切分载荷，空载荷返回空列表"""
        sanitized = self.normalize(payload or "")
        self.total_input += len(sanitized)

        chunks = []
        pending = []
        pending_len = 0

        for char in sanitized:
            pending.append(char)
            pending_len += 1

            reached_max = pending_len >= self.max_chunk_size
            reached_boundary = pending_len >= self.min_chunk_size and char in CHUNK_BOUNDARY_CHARS
            if reached_max or reached_boundary:
                chunks.append("".join(pending))
                pending = []
                pending_len = 0

        if pending:
            chunks.append("".join(pending))

        self.chunks_created += len(chunks)
        self.total_output += sum(len(c) for c in chunks)
        return chunks

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_input": self.total_input,
            "total_output": self.total_output,
            "chunks_created": self.chunks_created,
        }
