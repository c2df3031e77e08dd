"""流式处理错误类型"""

import time
from typing import Dict, Any, Optional


class StreamingError(Exception):
    """流式错误基类"""
    code = "STREAMING_ERROR"
    recoverable = False

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp,
        }


class EmptyPayloadError(StreamingError):
    """目标载荷为空，无法分块"""
    code = "EMPTY_PAYLOAD"


class IncompleteDocumentError(StreamingError):
    """流结束时仍未定位到标题或任何分区"""
    code = "INCOMPLETE_DOCUMENT"


class StreamTimeoutError(StreamingError):
    """超过最大流持续时间"""
    code = "STREAM_TIMEOUT"
    recoverable = True

    def __init__(self, message: str, timeout: float, original_error: Optional[BaseException] = None):
        super().__init__(message, original_error)
        self.timeout = timeout

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["timeout"] = self.timeout
        return data


class SectionParseError(StreamingError):
    """分区大括号已闭合但JSON无效，下一个分片时重试"""
    code = "SECTION_PARSE_ERROR"
    recoverable = True

    def __init__(self, message: str, section_index: int, original_error: Optional[BaseException] = None):
        super().__init__(message, original_error)
        self.section_index = section_index
