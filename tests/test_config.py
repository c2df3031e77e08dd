import json

import pytest

from cardstream.core.config import (
    DEFAULT_CONFIG,
    ConfigError,
    StreamingConfig,
    build_streaming_config,
    load_config,
)


def test_defaults():
    config = StreamingConfig()
    assert config.min_chunk_size == 10
    assert config.max_chunk_size == 50
    assert config.thinking_delay == 0.1
    assert config.tokens_per_second == 80.0
    assert config.update_throttle == 0.05
    assert config.placeholder_value == "..."
    assert config.stream_timeout == 60.0
    assert config.validate() is config


def test_from_dict_ignores_unknown_keys():
    config = StreamingConfig.from_dict({"min_chunk_size": 3, "unknown": True})
    assert config.min_chunk_size == 3
    assert StreamingConfig.from_dict(None) == StreamingConfig()


def test_validate_lists_every_problem():
    config = StreamingConfig(
        min_chunk_size=0,
        thinking_delay=-1,
        chars_per_token=0,
        progress_update_threshold=2,
        stream_timeout=0,
    )
    with pytest.raises(ConfigError) as exc:
        config.validate()

    joined = " ".join(exc.value.errors)
    assert len(exc.value.errors) == 5
    assert "min_chunk_size" in joined
    assert "thinking_delay" in joined
    assert "stream_timeout" in joined


def test_timeout_can_be_disabled():
    assert StreamingConfig(stream_timeout=None).validate().stream_timeout is None


def test_load_config_missing_file(tmp_path):
    assert load_config(str(tmp_path / "missing.json")) == DEFAULT_CONFIG


def test_load_config_merges_streaming_section(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"debug": True, "streaming": {"max_chunk_size": 80}}), encoding="utf-8")

    config = load_config(str(path))
    assert config["debug"] is True
    assert config["streaming"]["max_chunk_size"] == 80
    assert config["streaming"]["min_chunk_size"] == 10
    assert DEFAULT_CONFIG["streaming"]["max_chunk_size"] == 50


def test_load_config_invalid_file(tmp_path, capsys):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    assert load_config(str(path)) == DEFAULT_CONFIG
    assert "加载配置失败" in capsys.readouterr().out


def test_build_streaming_config():
    config = build_streaming_config({"streaming": {"tokens_per_second": 500}})
    assert config.tokens_per_second == 500

    with pytest.raises(ConfigError):
        build_streaming_config({"streaming": {"max_chunk_size": 1, "min_chunk_size": 2}})
