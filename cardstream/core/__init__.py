"""核心模块"""

from .constants import *
from .config import (
    ConfigError,
    StreamingConfig,
    build_streaming_config,
    load_config,
)

__all__ = [
    'PORT_API',
    'PORT_WS',
    'CONFIG_FILE',
    'ConfigError',
    'StreamingConfig',
    'build_streaming_config',
    'load_config',
]
