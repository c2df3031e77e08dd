import asyncio

import pytest

from cardstream.stream.channels import EventChannel, EventStream
from cardstream.stream.trackers import StreamStage, StreamState


def test_subscribe_and_unsubscribe():
    channel = EventChannel("state")
    received = []
    unsubscribe = channel.subscribe(received.append)

    channel.publish(1)
    unsubscribe()
    channel.publish(2)

    assert received == [1]
    assert len(channel) == 0
    assert channel.published == 2


def test_listener_error_does_not_stop_delivery(capsys):
    channel = EventChannel("update")
    received = []

    def broken(event):
        raise RuntimeError("boom")

    channel.subscribe(broken)
    channel.subscribe(received.append)
    channel.publish("event")

    assert received == ["event"]
    assert channel.listener_errors == 1
    assert "boom" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_event_stream_ends_at_terminal_state():
    state, buffer, update = EventChannel("state"), EventChannel("buffer"), EventChannel("update")
    stream = EventStream(state, buffer, update, include_buffer=True)

    state.publish(StreamState(is_active=True, stage=StreamStage.STREAMING))
    buffer.publish('{"ti')
    state.publish(StreamState(stage=StreamStage.COMPLETE, progress=1.0))
    buffer.publish("ignored")

    events = [kind async for kind, _ in stream]

    assert events == ["state", "buffer", "state"]
    assert stream.closed
    assert len(state) == 0 and len(buffer) == 0 and len(update) == 0


@pytest.mark.asyncio
async def test_event_stream_without_buffer():
    state, buffer, update = EventChannel("state"), EventChannel("buffer"), EventChannel("update")
    stream = EventStream(state, buffer, update, include_buffer=False)

    buffer.publish("x")
    state.publish(StreamState(stage=StreamStage.ABORTED))

    assert [kind async for kind, _ in stream] == ["state"]


@pytest.mark.asyncio
async def test_next_event_with_timeout():
    state, buffer, update = EventChannel("state"), EventChannel("buffer"), EventChannel("update")
    stream = EventStream(state, buffer, update)

    with pytest.raises(asyncio.TimeoutError):
        await stream.next_event(timeout=0.01)

    buffer.publish('{"title"')
    assert await stream.next_event(timeout=1) == ("buffer", '{"title"')
    stream.close()
