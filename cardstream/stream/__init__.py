"""流式处理模块"""

from .errors import (
    StreamingError,
    EmptyPayloadError,
    IncompleteDocumentError,
    StreamTimeoutError,
    SectionParseError,
)
from .models import ChangeType, Record, RecordField, RecordItem, RecordUpdate, Section
from .chunker import Chunker
from .parsers import PartialJSONScanner, ScanResult
from .trackers import CompletionTracker, SectionCompletion, StreamStage, StreamState
from .assembly import AssemblyModel, RecordPatch
from .emitter import EmitMode, UpdateEmitter
from .channels import EventChannel, EventStream
from .sse_formatter import DONE_EVENT, SSEFormatter
from .session import StreamSession
from .processor import StreamProcessor, get_stream_processor

__all__ = [
    "StreamingError",
    "EmptyPayloadError",
    "IncompleteDocumentError",
    "StreamTimeoutError",
    "SectionParseError",
    "ChangeType",
    "Record",
    "RecordField",
    "RecordItem",
    "RecordUpdate",
    "Section",
    "Chunker",
    "PartialJSONScanner",
    "ScanResult",
    "CompletionTracker",
    "SectionCompletion",
    "StreamStage",
    "StreamState",
    "AssemblyModel",
    "RecordPatch",
    "EmitMode",
    "UpdateEmitter",
    "EventChannel",
    "EventStream",
    "DONE_EVENT",
    "SSEFormatter",
    "StreamSession",
    "StreamProcessor",
    "get_stream_processor",
]
