"""配置加载与校验"""

import copy
import json
import os
from dataclasses import asdict, dataclass, fields
from typing import Dict, Any, List, Optional

from .constants import (
    CONFIG_FILE,
    DEFAULT_CHARS_PER_TOKEN,
    DEFAULT_FINAL_DELAY,
    DEFAULT_MAX_CHUNK_SIZE,
    DEFAULT_MIN_CHUNK_SIZE,
    DEFAULT_PLACEHOLDER_VALUE,
    DEFAULT_PROGRESS_UPDATE_THRESHOLD,
    DEFAULT_SECTIONS_KEY,
    DEFAULT_STREAM_TIMEOUT,
    DEFAULT_THINKING_DELAY,
    DEFAULT_TITLE_KEY,
    DEFAULT_TOKENS_PER_SECOND,
    DEFAULT_UPDATE_THROTTLE,
)


class ConfigError(ValueError):
    """配置校验失败，errors 中列出全部问题"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class StreamingConfig:
    """流式模拟参数（时间单位为秒）"""
    min_chunk_size: int = DEFAULT_MIN_CHUNK_SIZE
    max_chunk_size: int = DEFAULT_MAX_CHUNK_SIZE
    thinking_delay: float = DEFAULT_THINKING_DELAY
    chars_per_token: float = DEFAULT_CHARS_PER_TOKEN
    tokens_per_second: float = DEFAULT_TOKENS_PER_SECOND
    update_throttle: float = DEFAULT_UPDATE_THROTTLE
    final_delay: float = DEFAULT_FINAL_DELAY
    placeholder_value: str = DEFAULT_PLACEHOLDER_VALUE
    progress_update_threshold: float = DEFAULT_PROGRESS_UPDATE_THRESHOLD
    stream_timeout: Optional[float] = DEFAULT_STREAM_TIMEOUT
    title_key: str = DEFAULT_TITLE_KEY
    sections_key: str = DEFAULT_SECTIONS_KEY

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StreamingConfig":
        """从字典构建配置，忽略未知键"""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in (data or {}).items() if k in known}
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> "StreamingConfig":
        """校验参数，失败时抛出 ConfigError"""
        errors = []

        if self.min_chunk_size < 1:
            errors.append(f"min_chunk_size must be >= 1 (got {self.min_chunk_size})")
        if self.max_chunk_size < 1:
            errors.append(f"max_chunk_size must be >= 1 (got {self.max_chunk_size})")
        if self.min_chunk_size > self.max_chunk_size:
            errors.append(
                f"min_chunk_size ({self.min_chunk_size}) must be <= max_chunk_size ({self.max_chunk_size})"
            )

        for name in ("thinking_delay", "update_throttle", "final_delay"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} must be >= 0 (got {value})")

        if self.chars_per_token <= 0:
            errors.append(f"chars_per_token must be > 0 (got {self.chars_per_token})")
        if self.tokens_per_second <= 0:
            errors.append(f"tokens_per_second must be > 0 (got {self.tokens_per_second})")

        if not 0 <= self.progress_update_threshold <= 1:
            errors.append(
                f"progress_update_threshold must be between 0 and 1 (got {self.progress_update_threshold})"
            )

        if self.stream_timeout is not None and self.stream_timeout <= 0:
            errors.append(f"stream_timeout must be > 0 or null (got {self.stream_timeout})")

        if not self.title_key or not self.sections_key:
            errors.append("title_key and sections_key must be non-empty")

        if errors:
            raise ConfigError(errors)
        return self


DEFAULT_CONFIG: Dict[str, Any] = {
    "enable_websocket": True,
    "debug": False,
    "streaming": StreamingConfig().to_dict(),
}


def load_config(path: str = CONFIG_FILE) -> Dict[str, Any]:
    """加载配置，streaming 小节按键合并到默认值"""
    default_config = copy.deepcopy(DEFAULT_CONFIG)
    if not os.path.exists(path):
        return default_config
    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
            if "streaming" in config:
                default_config["streaming"].update(config["streaming"] or {})
                del config["streaming"]
            default_config.update(config)
            return default_config
    except Exception as e:
        print(f"⚠️ 加载配置失败: {e}")
        return copy.deepcopy(DEFAULT_CONFIG)


def build_streaming_config(config: Optional[Dict[str, Any]] = None) -> StreamingConfig:
    """从完整配置中构建并校验 StreamingConfig"""
    if config is None:
        config = load_config()
    return StreamingConfig.from_dict(config.get("streaming")).validate()
