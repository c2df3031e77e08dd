import json

import pytest

from cardstream.core.config import StreamingConfig


CARD = {
    "title": "Ada Lovelace",
    "sections": [
        {
            "id": "contact",
            "title": "Contact",
            "type": "contact",
            "fields": [
                {"id": "name", "label": "Name", "value": "Ada"},
                {"id": "email", "label": "Email", "value": "ada@example.com"},
            ],
            "items": [],
        },
        {
            "id": "timeline",
            "title": "Timeline",
            "type": "list",
            "fields": [],
            "items": [
                {"id": "note", "title": "Notes on the Engine", "description": "1843"},
            ],
        },
    ],
}


@pytest.fixture
def card():
    return json.loads(json.dumps(CARD))


@pytest.fixture
def card_payload():
    return json.dumps(CARD, indent=2)


@pytest.fixture
def fast_config():
    """几乎无延迟的流式参数"""
    return StreamingConfig(
        min_chunk_size=5,
        max_chunk_size=12,
        thinking_delay=0.0,
        tokens_per_second=100000.0,
        update_throttle=0.0,
        final_delay=0.0,
        stream_timeout=5.0,
    )


@pytest.fixture
def slow_config():
    """足够慢，便于在流中途操作"""
    return StreamingConfig(
        min_chunk_size=5,
        max_chunk_size=10,
        thinking_delay=0.0,
        chars_per_token=1.0,
        tokens_per_second=200.0,
        update_throttle=0.0,
        final_delay=0.0,
        stream_timeout=10.0,
    )
