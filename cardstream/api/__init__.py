"""API接口模块"""

from cardstream.api.routes import (
    APIKeyAuthMiddleware,
    ConnectionCompatibilityMiddleware,
    StreamRequest,
    create_app,
)
from cardstream.api.client import StreamClient, StreamClientError, parse_sse_lines

__all__ = [
    'APIKeyAuthMiddleware',
    'ConnectionCompatibilityMiddleware',
    'StreamRequest',
    'StreamClient',
    'StreamClientError',
    'create_app',
    'parse_sse_lines',
]
