import asyncio

import pytest

from cardstream.stream.emitter import EmitMode, UpdateEmitter
from cardstream.stream.models import ChangeType, Record, RecordUpdate


def _update(title, change_type=ChangeType.CONTENT, completed=None):
    return RecordUpdate(record=Record(title=title), change_type=change_type, completed_section_indices=completed)


def _emitter(published, streaming=True, interval=0.05):
    # 固定时钟：除第一次外都处于节流窗口内
    return UpdateEmitter(published.append, interval, is_streaming=lambda: streaming, clock=lambda: 100.0)


def test_not_streaming_is_always_immediate():
    published = []
    emitter = _emitter(published, streaming=False)

    assert emitter.emit(_update("a")) is EmitMode.IMMEDIATE
    assert emitter.emit(_update("b")) is EmitMode.IMMEDIATE
    assert [u.record.title for u in published] == ["a", "b"]


def test_structural_and_completion_are_immediate():
    published = []
    emitter = _emitter(published)
    emitter.emit(_update("first"))

    assert emitter.emit(_update("s", ChangeType.STRUCTURAL)) is EmitMode.IMMEDIATE
    assert emitter.emit(_update("c", completed=(0,))) is EmitMode.IMMEDIATE
    assert len(published) == 3


@pytest.mark.asyncio
async def test_buffered_updates_keep_only_latest():
    published = []
    emitter = _emitter(published)

    assert emitter.emit(_update("first")) is EmitMode.IMMEDIATE
    assert emitter.emit(_update("second")) is EmitMode.BUFFERED
    assert emitter.emit(_update("third")) is EmitMode.BUFFERED
    assert emitter.pending.record.title == "third"

    await asyncio.sleep(0.15)

    assert [u.record.title for u in published] == ["first", "third"]
    stats = emitter.get_stats()
    assert stats["emitted"] == 2
    assert stats["buffered"] == 2
    assert stats["superseded"] == 1
    assert not stats["pending"]


@pytest.mark.asyncio
async def test_immediate_update_supersedes_pending():
    published = []
    emitter = _emitter(published)
    emitter.emit(_update("first"))
    emitter.emit(_update("buffered"))

    assert emitter.emit(_update("structural", ChangeType.STRUCTURAL)) is EmitMode.IMMEDIATE
    await asyncio.sleep(0.15)

    assert [u.record.title for u in published] == ["first", "structural"]


@pytest.mark.asyncio
async def test_cancel_drops_pending():
    published = []
    emitter = _emitter(published)
    emitter.emit(_update("first"))
    emitter.emit(_update("buffered"))

    emitter.cancel()
    await asyncio.sleep(0.15)

    assert [u.record.title for u in published] == ["first"]
    assert emitter.pending is None


@pytest.mark.asyncio
async def test_flush_delivers_pending_now():
    published = []
    emitter = _emitter(published)
    emitter.emit(_update("first"))
    emitter.emit(_update("buffered"))

    assert emitter.flush().record.title == "buffered"
    await asyncio.sleep(0.15)
    assert [u.record.title for u in published] == ["first", "buffered"]
